"""Observable hub — the minimal broadcaster every other component builds on.

Subscribers are kept in registration order and behave like a set: subscribing
the same callable twice registers it once. dispatch() iterates over a snapshot,
so subscribers added or removed while a dispatch is running do not change who
receives that dispatch.
"""

from __future__ import annotations

from typing import Callable

Listener = Callable[..., object]
Disposer = Callable[[], None]


class Observable:
    """Ordered set of listeners with synchronous dispatch."""

    __slots__ = ("_subscribers",)

    def __init__(self) -> None:
        # dict preserves insertion order and gives set semantics
        self._subscribers: dict[Listener, None] = {}

    def subscribe(self, listener: Listener) -> Disposer:
        """Register a listener. Returns a function that removes it."""
        self._subscribers[listener] = None

        def _unsubscribe() -> None:
            self._subscribers.pop(listener, None)

        return _unsubscribe

    def dispatch(self, *args: object) -> None:
        """Call every current listener with args, in registration order."""
        for listener in list(self._subscribers):
            listener(*args)

    def clear(self) -> None:
        self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)

    def __repr__(self) -> str:
        return f"Observable({len(self._subscribers)} subscribers)"
