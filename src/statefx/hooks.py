"""Hooks — memoized sub-computations inside a state initializer.

Positional hooks are matched by call order within one evaluation, so they
must be called unconditionally and in the same order every time. The hook at
position N must keep the same kind across re-evaluations; a change raises
HookOrderError. memo() also accepts an explicit key, which stores the entry
under that identifier instead of its position and lifts the ordering rule.

Usage:
    rows = state(lambda table=None: ...)

    @state
    def summary(table=None):
        data = rows(table).value()
        index = memo(lambda: build_index(data), (data,))
        hits = ref(0)
        ...
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Generic, Hashable, Iterable, TypeVar

from statefx._tracking import active_scope, untracked
from statefx._values import UNSET, same_items
from statefx.errors import HookOrderError, NoActiveScopeError

T = TypeVar("T")


class HookKind(Enum):
    MEMO = "memo"
    REF = "ref"


class Ref(Generic[T]):
    """Mutable box that survives re-evaluations of its state."""

    __slots__ = ("current",)

    def __init__(self, current: T) -> None:
        self.current = current

    def __repr__(self) -> str:
        return f"Ref({self.current!r})"


class _Hook:
    __slots__ = ("kind", "deps", "value")

    def __init__(self, kind: HookKind) -> None:
        self.kind = kind
        self.deps: Any = UNSET
        self.value: Any = None


class HookStore:
    """Hook entries of one state, kept across its evaluations."""

    __slots__ = ("positional", "keyed")

    def __init__(self) -> None:
        self.positional: list[_Hook] = []
        self.keyed: dict[Hashable, _Hook] = {}

    def clear(self) -> None:
        self.positional.clear()
        self.keyed.clear()


def _positional_hook(name: str, kind: HookKind) -> _Hook:
    scope = active_scope()
    if scope is None:
        raise NoActiveScopeError(name)
    scope.hook_index += 1
    index = scope.hook_index
    entries = scope.hooks.positional
    if index == len(entries):
        hook = _Hook(kind)
        entries.append(hook)
        return hook
    hook = entries[index]
    if hook.kind is not kind:
        raise HookOrderError(index, hook.kind, kind)
    return hook


def _keyed_hook(key: Hashable) -> _Hook:
    scope = active_scope()
    if scope is None:
        raise NoActiveScopeError("memo")
    hook = scope.hooks.keyed.get(key)
    if hook is None:
        hook = scope.hooks.keyed[key] = _Hook(HookKind.MEMO)
    return hook


def memo(callback: Callable[[], T], deps: Iterable[Any] = (), *, key: Hashable | None = None) -> T:
    """Return callback()'s cached result, recomputing when deps change.

    The callback runs with no active scope: state reads inside it are not
    tracked and hooks cannot be nested.
    """
    hook = _positional_hook("memo", HookKind.MEMO) if key is None else _keyed_hook(key)
    deps = tuple(deps)
    if hook.deps is UNSET or not same_items(hook.deps, deps):
        with untracked():
            hook.value = callback()
        hook.deps = deps
    return hook.value


def ref(initial: T | None = None) -> Ref[T]:
    """Return the Ref stored at this hook position, creating it on first use."""
    hook = _positional_hook("ref", HookKind.REF)
    if hook.value is None:
        hook.value = Ref(initial)
    return hook.value
