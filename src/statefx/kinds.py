"""Kind tags — what an expression target is, resolved once.

States and effects carry a class-level `_kind` tag. Anything else that is
callable is a plain function; everything else is unknown.
"""

from __future__ import annotations

import inspect
from enum import Enum
from typing import Callable, TypeVar

T = TypeVar("T")


class Kind(Enum):
    STATE = "state"
    EFFECT = "effect"
    FUNCTION = "function"
    UNKNOWN = "unknown"


def kind_of(obj: object) -> Kind:
    """Classify obj as a state, an effect, a plain function or unknown."""
    kind = getattr(type(obj), "_kind", None)
    if isinstance(kind, Kind):
        return kind
    if callable(obj):
        return Kind.FUNCTION
    return Kind.UNKNOWN


def is_state(obj: object) -> bool:
    return kind_of(obj) is Kind.STATE


def is_effect(obj: object) -> bool:
    return kind_of(obj) is Kind.EFFECT


def _positional_capacity(fn: object) -> int | None:
    """How many positional arguments fn accepts; None means any number."""
    try:
        signature = inspect.signature(fn)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    count = 0
    for parameter in signature.parameters.values():
        if parameter.kind is parameter.VAR_POSITIONAL:
            return None
        if parameter.kind in (parameter.POSITIONAL_ONLY, parameter.POSITIONAL_OR_KEYWORD):
            count += 1
    return count


def call_flexible(fn: Callable[..., T], *args: object) -> T:
    """Call fn with as many leading args as its signature accepts.

    Lets bodies, reducers and handlers ignore trailing arguments they do not
    care about: `lambda: ...`, `lambda value: ...` and
    `lambda value, payload: ...` are all valid reducers.
    """
    capacity = _positional_capacity(fn)
    if capacity is None:
        return fn(*args)
    return fn(*args[:capacity])
