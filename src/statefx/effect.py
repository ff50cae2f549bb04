"""Effects — callables that mutate states and orchestrate async workflows.

An Effect wraps a body run by the Interpreter. Calling the effect starts a
new run; if the body never suspends the call returns synchronously, otherwise
it returns an AsyncCall that can be awaited or cancelled.

Usage:
    count = state(1)
    increase = effect((count, lambda value, payload: value + payload.get("by", 1)))
    increase({"by": 5})          # count == 6

    @effect
    async def poll(payload):
        while True:
            yield (asyncio.sleep, 1)
            yield (refresh, payload)

    search = effect(run_search).latest()   # each call cancels the previous one
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from statefx._aio import AsyncCall, is_awaitable, to_future
from statefx._tracking import untracked
from statefx._values import UNSET
from statefx.interpreter import ExecutionContext, Interpreter
from statefx.kinds import Kind
from statefx.loadable import Loadable, LoadableTracker
from statefx.middleware import effect_middleware
from statefx.observable import Disposer, Observable
from statefx.scheduler import Cancellable, call_later

logger = logging.getLogger("statefx.effect")


def _noop() -> None:
    return None


def _constant(expression: list | tuple) -> Callable[[], Any]:
    def _expression() -> Any:
        return expression

    return _expression


class Effect:
    """A runnable body plus dispatch notification and call-shaping helpers."""

    _kind = Kind.EFFECT

    def __init__(
        self,
        body: Callable[..., Any],
        *,
        success: Any = None,
        error: Any = None,
        done: Any = None,
        state_resolver: Callable[..., Any] | None = None,
    ) -> None:
        self._body = body
        self._interpreter = Interpreter(
            body,
            success=success,
            error=error,
            done=done,
            state_resolver=state_resolver,
        )
        self._last_result: Any = UNSET
        self._loadable = LoadableTracker(lambda: self._last_result)
        self._on_dispatch = Observable()
        self._latest: Callable[..., Any] | None = None

    def __call__(self, payload: Any = None) -> Any:
        if payload is None:
            payload = {}
        context = ExecutionContext(payload)
        is_async = False
        try:
            # effects never count as reads of an enclosing state evaluation
            with untracked():
                result = self._interpreter.run(context)
            if is_awaitable(result):
                is_async = True
                future = to_future(result)
                future.add_done_callback(self._dispatched)
                result = AsyncCall(future, context)
            self._last_result = result
            return result
        finally:
            if not is_async:
                self._on_dispatch.dispatch()

    def _dispatched(self, _future: Any) -> None:
        self._on_dispatch.dispatch()

    def run(self, payload: Any = None) -> Any:
        return self(payload)

    def cancel(self) -> None:
        """Cancel the latest call if it is still in flight."""
        if isinstance(self._last_result, AsyncCall) and not self._last_result.done():
            self._last_result.cancel()

    def value(self) -> Any:
        """Result of the latest call (an AsyncCall for async calls)."""
        if self._last_result is UNSET:
            return None
        return self._last_result

    def loadable(self) -> Loadable:
        return self._loadable.current()

    def on(self, listener: Callable[[], object]) -> Disposer:
        """Subscribe to dispatches. Fires once per call, after the call settles."""
        return self._on_dispatch.subscribe(listener)

    # --- Call shaping ---

    def latest(self) -> Callable[..., Any]:
        """Wrapper that cancels any in-flight call before starting a new one."""
        if self._latest is None:

            def _latest(payload: Any = None) -> Any:
                self.cancel()
                return self(payload)

            self._latest = _latest
        return self._latest

    def debounce(self, seconds: float) -> Callable[..., None]:
        """Wrapper that calls the effect once calls stop for `seconds`.

        Each call restarts the delay; only the last payload is used.
        """
        pending: Cancellable | None = None

        def _debounced(payload: Any = None) -> None:
            nonlocal pending
            if pending is not None:
                pending.cancel()
            pending = call_later(seconds, self, payload)

        return _debounced

    def throttle(self, seconds: float) -> Callable[..., Any]:
        """Wrapper that calls at most once per `seconds`.

        Suppressed calls return the result of the last real call.
        """
        last_time: float | None = None
        last_result: Any = None

        def _throttled(payload: Any = None) -> Any:
            nonlocal last_time, last_result
            now = time.monotonic()
            if last_time is None or now - last_time > seconds:
                last_time = now
                last_result = self(payload)
            else:
                logger.debug("throttled call to %r", self)
            return last_result

        return _throttled

    def __repr__(self) -> str:
        name = getattr(self._body, "__name__", type(self._body).__name__)
        return f"Effect({name})"


def effect(
    body: Callable[..., Any] | list | tuple | None = None,
    *,
    success: Any = None,
    error: Any = None,
    done: Any = None,
    state_resolver: Callable[..., Any] | None = None,
) -> Effect:
    """Create an effect.

    body may be a generator function, async generator function, coroutine
    function or plain function (each receives the call payload if it takes an
    argument), or a constant expression such as `(count, reducer)`.
    success/error/done are handler expressions: a state, an effect, a
    function, or a list of those. state_resolver(family, payload) picks the
    family member a reducer applies to.
    """
    if body is None:
        body = _noop
    elif isinstance(body, (list, tuple)):
        body = _constant(body)

    return effect_middleware.apply(
        Effect(body, success=success, error=error, done=done, state_resolver=state_resolver)
    )
