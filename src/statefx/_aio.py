"""Asyncio plumbing — in-flight values are always futures.

A coroutine can only be awaited once, but a state's in-flight value is read
by many consumers, so every awaitable entering the engine is turned into an
asyncio.Future on the running loop.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Generator, Iterable


def is_awaitable(value: object) -> bool:
    return inspect.isawaitable(value)


def to_future(value: Awaitable[Any]) -> asyncio.Future:
    """Return an asyncio.Future for value, scheduling coroutines as tasks."""
    if isinstance(value, AsyncCall):
        return value.future
    if asyncio.isfuture(value):
        return value  # type: ignore[return-value]
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        if inspect.iscoroutine(value):
            value.close()
        raise RuntimeError(
            "statefx needs a running asyncio event loop to handle awaitable values"
        ) from None
    return asyncio.ensure_future(value, loop=loop)


def then(source: Awaitable[Any], callback: Callable[[Any], Any]) -> asyncio.Future:
    """Future of callback(await source), flattening an awaitable callback result."""
    future = to_future(source)

    async def _chain() -> Any:
        result = callback(await future)
        if inspect.isawaitable(result):
            result = await result
        return result

    return to_future(_chain())


def gather_all(values: Iterable[Awaitable[Any]]) -> asyncio.Future:
    return asyncio.gather(*(to_future(value) for value in values))


async def settle(value: Any) -> Any:
    """Await value if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


class AsyncCall:
    """Handle for an effect call that suspended.

    Awaiting it yields the call's final value. cancel() is cooperative: it
    flags the call's execution context, and the interpreter stops at its next
    resumption point. Work already in flight is not interrupted.
    """

    __slots__ = ("_future", "_context")

    def __init__(self, future: asyncio.Future, context: Any) -> None:
        self._future = future
        self._context = context

    @property
    def future(self) -> asyncio.Future:
        return self._future

    @property
    def payload(self) -> Any:
        return self._context.payload

    def cancel(self) -> None:
        self._context.cancel()

    def is_cancelled(self) -> bool:
        return self._context.cancelled

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> Any:
        return self._future.result()

    def exception(self) -> BaseException | None:
        return self._future.exception()

    def add_done_callback(self, fn: Callable[[AsyncCall], object]) -> None:
        self._future.add_done_callback(lambda _future: fn(self))

    def __await__(self) -> Generator[Any, None, Any]:
        return self._future.__await__()

    def __repr__(self) -> str:
        if self.is_cancelled():
            status = "cancelled"
        elif self._future.done():
            status = "done"
        else:
            status = "pending"
        return f"AsyncCall({status})"
