"""Sentinels and value comparison shared by states, effects and watchers."""

from __future__ import annotations

UNSET = object()

# Equal instances of these immutable types count as the same value.
_SCALARS = (int, float, complex, str, bytes, bool, type(None))


class ErrorValue:
    """A cached failure. Reads re-raise the stored error until invalidation."""

    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error

    def __repr__(self) -> str:
        return f"ErrorValue({self.error!r})"


def same(a: object, b: object) -> bool:
    """Identity comparison, with value comparison for immutable scalars."""
    if a is b:
        return True
    return type(a) is type(b) and type(a) in _SCALARS and a == b


def same_items(a: tuple, b: tuple) -> bool:
    return len(a) == len(b) and all(same(x, y) for x, y in zip(a, b))


def public(value: object) -> object:
    """Hide internal sentinels from listeners."""
    if value is UNSET or isinstance(value, ErrorValue):
        return None
    return value
