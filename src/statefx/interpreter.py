"""Effect interpreter: runs an effect body against the expression algebra.

An effect body is a generator function, an async generator function, a
coroutine function or a plain function. Every expression it yields (or, for a
plain function, returns) is handed to Interpreter.evaluate():

    (target, *args)           call an effect, set/reduce a state, call a function
    [(t1, ...), (t2, ...)]    several of the above; waits for all in-flight results
    some_state / some_effect  wait for its next change / dispatch
    {"a": s1, "b": e1}        wait for whichever fires first, resolves to it
    [{"a": s1, "b": e1}]      wait until every one has fired

A sync generator is stepped synchronously until an expression produces an
awaitable result; from there the run continues as an asyncio task. The task
is a plain loop over RUNNING / SUSPENDED phases that checks the execution
context's cancellation flag every time it resumes.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Awaitable, Callable

from statefx._aio import gather_all, is_awaitable, settle, to_future
from statefx.errors import UnsupportedExpressionError
from statefx.kinds import Kind, call_flexible, kind_of

logger = logging.getLogger("statefx.interpreter")


class Phase(Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    DONE = "done"


class ExecutionContext:
    """State of one effect call."""

    __slots__ = ("payload", "cancelled", "started", "phase", "_waiters")

    def __init__(self, payload: Any) -> None:
        self.payload = payload
        self.cancelled = False
        self.started = False
        self.phase = Phase.RUNNING
        self._waiters: set[asyncio.Future] = set()

    def cancel(self) -> None:
        """Stop the run at its next resumption point.

        Pending waits on states or effects are released right away so the run
        can reach that point. Anything else in flight is left to finish.
        """
        if self.cancelled:
            return
        self.cancelled = True
        logger.debug("cancelling effect call with payload %r", self.payload)
        for waiter in list(self._waiters):
            if not waiter.done():
                waiter.set_result(None)

    def track(self, waiter: asyncio.Future) -> None:
        self._waiters.add(waiter)
        waiter.add_done_callback(self._waiters.discard)

    def __repr__(self) -> str:
        return f"ExecutionContext({self.phase.value}, payload={self.payload!r})"


class _Suspended:
    """Marks a run that has to continue asynchronously."""

    __slots__ = ("awaitable",)

    def __init__(self, awaitable: Awaitable[Any]) -> None:
        self.awaitable = awaitable


def _wait_target(target: Any) -> Any:
    if kind_of(target) not in (Kind.STATE, Kind.EFFECT):
        raise UnsupportedExpressionError(target)
    return target


def _running_loop() -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise RuntimeError(
            "waiting for states or effects requires a running asyncio event loop"
        ) from None


class Interpreter:
    """Executes one effect body, applying its success/error/done handlers."""

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
        self._success = success
        self._error = error
        self._done = done
        self._state_resolver = state_resolver

    # --- Running ---

    def run(self, context: ExecutionContext) -> Any:
        """Run the body. Returns its outcome, or a future if it suspends."""
        suspended = False
        try:
            outcome = self._start(context)
            if isinstance(outcome, _Suspended):
                future = to_future(self._finish(context, outcome.awaitable))
                suspended = True
                context.phase = Phase.SUSPENDED
                return future
            if not context.cancelled:
                self._notify(context, self._success, outcome)
            return outcome
        except Exception as error:
            if self._error is None:
                raise
            self._notify(context, self._error, error)
            return None
        finally:
            if not suspended:
                context.phase = Phase.CANCELLED if context.cancelled else Phase.DONE
                self._notify(context, self._done)

    async def _finish(self, context: ExecutionContext, awaitable: Awaitable[Any]) -> Any:
        try:
            outcome = await awaitable
            if not context.cancelled:
                await settle(self._notify(context, self._success, outcome))
            return outcome
        except Exception as error:
            if self._error is None:
                raise
            await settle(self._notify(context, self._error, error))
            return None
        finally:
            context.phase = Phase.CANCELLED if context.cancelled else Phase.DONE
            if context.started:
                await settle(self._notify(context, self._done))

    def _start(self, context: ExecutionContext) -> Any:
        result = call_flexible(self._body, context.payload)
        if inspect.isgenerator(result):
            context.started = True
            return self._step_sync(context, result)
        if inspect.isasyncgen(result):
            return _Suspended(self._step_async(context, result, None))
        if is_awaitable(result):
            return _Suspended(self._plain_async(context, result))
        context.started = True
        return self._apply_result(context, result)

    def _apply_result(self, context: ExecutionContext, result: Any) -> Any:
        """Dispatch a plain body's return value once."""
        if not result:
            return None
        if not isinstance(result, (list, tuple)):
            raise UnsupportedExpressionError(result)
        outcome = self.apply(context, result)
        if is_awaitable(outcome):
            return _Suspended(outcome)
        return outcome

    async def _plain_async(self, context: ExecutionContext, awaitable: Awaitable[Any]) -> Any:
        if context.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return None
        context.started = True
        result = await awaitable
        if context.cancelled:
            return None
        outcome = self._apply_result(context, result)
        if isinstance(outcome, _Suspended):
            return await outcome.awaitable
        return outcome

    def _step_sync(self, context: ExecutionContext, generator: Any) -> Any:
        sent = None
        while True:
            if context.cancelled:
                generator.close()
                return None
            try:
                expression = generator.send(sent)
            except StopIteration as stop:
                return stop.value
            result = self.evaluate(context, expression)
            if is_awaitable(result):
                return _Suspended(self._step_async(context, generator, result))
            sent = result

    async def _step_async(self, context: ExecutionContext, iterator: Any, pending: Any) -> Any:
        is_async = inspect.isasyncgen(iterator)
        while True:
            if is_awaitable(pending):
                context.phase = Phase.SUSPENDED
                sent = await pending
            else:
                sent = pending
            if context.cancelled:
                context.phase = Phase.CANCELLED
                if is_async:
                    await iterator.aclose()
                else:
                    iterator.close()
                logger.debug("effect run stopped after cancellation")
                return None
            context.phase = Phase.RUNNING
            context.started = True
            try:
                if is_async:
                    expression = await iterator.asend(sent)
                else:
                    expression = iterator.send(sent)
            except StopIteration as stop:
                return stop.value
            except StopAsyncIteration:
                return None
            pending = self.evaluate(context, expression)

    def _notify(self, context: ExecutionContext, handler: Any, *args: Any) -> Any:
        """Run a success/error/done handler expression."""
        if handler is None:
            return None
        if isinstance(handler, (list, tuple)):
            results = [self._notify(context, item, *args) for item in handler]
            pending = [result for result in results if is_awaitable(result)]
            return gather_all(pending) if pending else None
        if kind_of(handler) is Kind.FUNCTION:
            result = call_flexible(handler, *args)
            return to_future(result) if is_awaitable(result) else result
        return self.apply(context, (handler, *args))

    # --- Expressions ---

    def evaluate(self, context: ExecutionContext, expression: Any) -> Any:
        """Resolve one yielded expression. May return an awaitable."""
        if isinstance(expression, (list, tuple)):
            if len(expression) == 1 and isinstance(expression[0], Mapping):
                targets = [_wait_target(target) for target in expression[0].values()]
                return self._wait_all(context, targets)
            return self.apply(context, expression)
        if kind_of(expression) in (Kind.STATE, Kind.EFFECT):
            return self._wait_any(context, [expression])
        if isinstance(expression, Mapping) and expression:
            targets = [_wait_target(target) for target in expression.values()]
            return self._wait_any(context, targets)
        raise UnsupportedExpressionError(expression)

    def apply(self, context: ExecutionContext, expression: Any) -> Any:
        """Apply a (target, *args) tuple, or a sequence of them."""
        if not expression:
            raise UnsupportedExpressionError(expression)
        if isinstance(expression[0], (list, tuple)):
            results = [self.apply(context, item) for item in expression]
            if any(is_awaitable(result) for result in results):
                return gather_all(settle(result) for result in results)
            return results

        target, *args = expression
        kind = kind_of(target)
        if kind is Kind.EFFECT:
            return target(args[0] if args else None)
        if kind is Kind.STATE:
            return self._mutate(context, target, args)
        if kind is Kind.FUNCTION:
            result = target(*args)
            return to_future(result) if is_awaitable(result) else result
        raise UnsupportedExpressionError(expression)

    def _mutate(self, context: ExecutionContext, target: Any, args: list) -> Any:
        payload = args[0] if args else None
        if not (callable(payload) and kind_of(payload) is Kind.FUNCTION):
            return target.set_value(payload)

        reducer = payload
        resolver = args[1] if len(args) > 1 else self._state_resolver
        if resolver is not None and getattr(target, "is_family_root", False):
            target = call_flexible(resolver, target, context.payload) or target
        return target.set_value(lambda value: call_flexible(reducer, value, context.payload))

    # --- Waiting ---

    def _signal(self, context: ExecutionContext, loop: asyncio.AbstractEventLoop, target: Any) -> asyncio.Future:
        """Future resolved with target the next time it fires."""
        future = loop.create_future()

        def _fire(*_args: Any) -> None:
            if not future.done():
                future.set_result(target)

        remove = target.on(_fire)
        future.add_done_callback(lambda _future: remove())
        context.track(future)
        return future

    def _wait_all(self, context: ExecutionContext, targets: list) -> asyncio.Future:
        loop = _running_loop()
        return asyncio.gather(*(self._signal(context, loop, target) for target in targets))

    def _wait_any(self, context: ExecutionContext, targets: list) -> asyncio.Future:
        loop = _running_loop()
        winner = loop.create_future()
        removers = []

        for target in targets:

            def _fire(*_args: Any, target: Any = target) -> None:
                if not winner.done():
                    winner.set_result(target)

            removers.append(target.on(_fire))

        def _teardown(_future: asyncio.Future) -> None:
            for remove in removers:
                remove()

        winner.add_done_callback(_teardown)
        context.track(winner)
        return winner
