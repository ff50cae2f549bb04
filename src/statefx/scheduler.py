"""Delay scheduling for debounced effects.

By default a delayed call goes through the running asyncio loop's
call_later(). Outside a loop it falls back to a daemon threading.Timer. An
application can install its own scheduler once at startup:

    statefx.set_scheduler(lambda delay, fn, *args: my_loop.call_later(delay, fn, *args))

The scheduler must return a handle with a cancel() method.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Protocol


class Cancellable(Protocol):
    def cancel(self) -> Any: ...


Scheduler = Callable[..., Cancellable]

_scheduler: Scheduler | None = None


def set_scheduler(scheduler: Scheduler | None) -> None:
    """Install the delay primitive. Pass None to restore the default."""
    global _scheduler
    _scheduler = scheduler


def get_scheduler() -> Scheduler | None:
    return _scheduler


def call_later(delay: float, fn: Callable[..., object], *args: object) -> Cancellable:
    """Run fn(*args) after delay seconds. Returns a cancellable handle."""
    if _scheduler is not None:
        return _scheduler(delay, fn, *args)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        timer = threading.Timer(delay, fn, args=args)
        timer.daemon = True
        timer.start()
        return timer
    return loop.call_later(delay, fn, *args)
