"""Exception taxonomy for statefx.

Every error the engine raises on its own behalf derives from StatefxError.
Errors raised by user initializers, reducers and effect bodies are never
wrapped: they are cached or re-raised as-is.
"""

from __future__ import annotations

from typing import Any


class StatefxError(Exception):
    """Base class for errors raised by the engine itself."""


class NoActiveScopeError(StatefxError, RuntimeError):
    """A hook was called outside a state evaluation (or inside another hook)."""

    def __init__(self, hook: str) -> None:
        self.hook = hook
        super().__init__(
            f"{hook}() must be called directly inside a state initializer, "
            "not in loops, conditions, nested hooks or outside state evaluation"
        )


class HookOrderError(StatefxError, RuntimeError):
    """The hook at a given position changed kind between evaluations."""

    def __init__(self, index: int, expected: Any, actual: Any) -> None:
        self.index = index
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Hook #{index} was {expected.value} on a previous evaluation but is "
            f"now {actual.value}; hook calling order has changed"
        )


class DisposedStateError(StatefxError, RuntimeError):
    """An operation was attempted on a disposed state."""

    def __init__(self, state: Any) -> None:
        self.state = state
        super().__init__(f"{state!r} has been disposed")


class UnsupportedExpressionError(StatefxError, TypeError):
    """An effect yielded or returned a value the interpreter cannot handle."""

    def __init__(self, expression: Any) -> None:
        self.expression = expression
        super().__init__(
            f"Unsupported effect expression of type {type(expression).__name__}: "
            f"{expression!r}. Expected (State|Effect|callable, *args), a list of "
            "those, a State/Effect, a mapping of them, or [mapping]"
        )


class ReadonlyStateError(StatefxError, RuntimeError):
    """set_value() was called on a state created with readonly=True."""

    def __init__(self, state: Any) -> None:
        self.state = state
        super().__init__(f"{state!r} is read-only")


__all__ = [
    "DisposedStateError",
    "HookOrderError",
    "NoActiveScopeError",
    "ReadonlyStateError",
    "StatefxError",
    "UnsupportedExpressionError",
]
