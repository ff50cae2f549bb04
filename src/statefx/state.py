"""State — lazily computed, cached, dependency-tracked value cells.

A State wraps an initializer. The first value() call evaluates it inside an
evaluation scope, so every other state it reads becomes a dependency. When a
dependency changes, the cached value is recomputed and a change is dispatched
only if the result differs (by identity, see statefx._values.same).

States come in families. state() returns a StateFamily: calling it with
arguments addresses (and lazily creates) the member for that argument tuple,
calling it with none returns the default member. The family root also behaves
like its default member, so a plain `count = state(0)` reads naturally.

Usage:
    count = state(1)
    doubled = state(lambda: count.value() * 2)

    doubled.value()      # 2
    count.set_value(5)
    doubled.value()      # 10

    todo = state(lambda todo_id: fetch_todo(todo_id))
    todo(42) is todo(42)  # True
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, TypeVar

from statefx._aio import gather_all, is_awaitable, settle, then, to_future
from statefx._tracking import (
    EvaluationScope,
    active_scope,
    begin_batch,
    end_batch,
    evaluating,
    schedule,
    take_pending,
    untracked,
)
from statefx._values import UNSET, ErrorValue, public, same
from statefx.effect import effect
from statefx.errors import DisposedStateError, ReadonlyStateError
from statefx.hooks import HookStore
from statefx.keyed import KeyedCache
from statefx.kinds import Kind, call_flexible, is_state, kind_of
from statefx.loadable import Loadable, LoadableTracker
from statefx.middleware import state_middleware
from statefx.observable import Disposer, Observable

T = TypeVar("T")
U = TypeVar("U")

logger = logging.getLogger("statefx.state")


@dataclass(frozen=True)
class StateChange:
    """Payload of a state's change notification."""

    state: State
    args: tuple
    value: Any
    prev_value: Any


class State(Generic[T]):
    """A single family member: one cached value plus its dependency edges."""

    _kind = Kind.STATE
    is_family_root = False

    def __init__(
        self,
        initializer: Callable[..., T],
        args: tuple = (),
        *,
        family: StateFamily | None = None,
        readonly: bool = False,
    ) -> None:
        self._initializer = initializer
        self._args = args
        self._family = family
        self._readonly = readonly
        self._current: Any = UNSET
        self._explicitly_set = False
        self._disposed = False
        self._on_change = Observable()
        self._hooks = HookStore()
        self._scope: EvaluationScope | None = None
        self._dependencies: dict[State, Disposer] = {}
        self._rank = 0
        self._loadable = LoadableTracker(lambda: self._current)

    @property
    def args(self) -> tuple:
        return self._args

    @property
    def family(self) -> StateFamily | None:
        return self._family

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def readonly(self) -> bool:
        return self._readonly

    @property
    def rank(self) -> int:
        """Longest dependency chain below this state; 0 for a source."""
        return self._rank

    def _check_disposed(self) -> None:
        if self._disposed:
            raise DisposedStateError(self)

    # --- Reading ---

    def value(self) -> T:
        """Read the value. If inside another state's evaluation, registers the dependency."""
        self._check_disposed()
        scope = active_scope()
        try:
            return self._read()
        finally:
            # registered after the read so the rank of this state is known
            if scope is not None:
                scope.add_dependency(self)

    def _read(self) -> T:
        if take_pending(self):
            self._run()
        if self._current is UNSET:
            self._evaluate()
        current = self._current
        if isinstance(current, ErrorValue):
            raise current.error
        return current

    def _evaluate(self) -> None:
        """Run the initializer in a fresh scope and cache the outcome."""
        scope = self._scope = EvaluationScope(self, self._hooks)
        try:
            with evaluating(scope):
                value = self._initializer(*self._args)
                # the task must be created inside the scope to inherit it
                if is_awaitable(value):
                    value = to_future(value)
        except Exception as error:
            value = ErrorValue(error)
        self._current = value

    # --- Dependency edges ---

    def _add_dependency(self, source: State) -> None:
        if source in self._dependencies:
            return
        self._dependencies[source] = source.on(self._on_dependency_changed)
        self._rank = max(self._rank, source.rank + 1)

    def _clear_dependencies(self) -> None:
        if self._scope is not None:
            self._scope.stale = True
            self._scope = None
        for unsubscribe in self._dependencies.values():
            unsubscribe()
        self._dependencies.clear()
        self._rank = 0

    def _on_dependency_changed(self, change: StateChange | None = None) -> None:
        if self._explicitly_set or self._disposed:
            return
        schedule(self)

    def _run(self) -> None:
        if self._explicitly_set or self._disposed:
            return
        self._recompute()

    def _recompute(self) -> None:
        prev = self._current
        self._clear_dependencies()
        self._current = UNSET
        self._evaluate()
        if not same(self._current, prev):
            self._dispatch_change(prev)

    def _dispatch_change(self, prev: Any) -> None:
        change = StateChange(
            state=self,
            args=self._args,
            value=public(self._current),
            prev_value=public(prev),
        )
        begin_batch()
        try:
            with untracked():
                self._on_change.dispatch(change)
        finally:
            end_batch()

    @property
    def dependencies(self) -> tuple[State, ...]:
        """States read during the most recent evaluation."""
        return tuple(self._dependencies)

    # --- Writing ---

    def set_value(self, next_value: T | Callable[[T], T]) -> T | None:
        """Overwrite the value, or apply a reducer to the current one.

        An explicitly set state stops following its dependencies until
        reset(). Listeners are notified only if the value actually changed.
        """
        self._check_disposed()
        if self._readonly:
            raise ReadonlyStateError(self)
        if callable(next_value) and kind_of(next_value) is Kind.FUNCTION:
            next_value = self._reduce(next_value)
        elif is_awaitable(next_value):
            next_value = to_future(next_value)

        if not same(self._current, next_value):
            prev = self._current
            self._explicitly_set = True
            self._clear_dependencies()
            self._current = next_value
            self._dispatch_change(prev)
        return public(next_value)  # type: ignore[return-value]

    def _reduce(self, reducer: Callable[[Any], Any]) -> Any:
        current = self._read()
        if is_awaitable(current):
            return then(current, reducer)
        try:
            result = reducer(current)
        except Exception as error:
            return ErrorValue(error)
        if is_awaitable(result):
            return to_future(result)
        return result

    def reset(self) -> None:
        """Forget an explicit set_value() and derive from dependencies again."""
        self._check_disposed()
        self._explicitly_set = False
        self._recompute()

    # --- Observing ---

    def on(self, listener: Callable[[StateChange], object]) -> Disposer:
        """Subscribe to change notifications. Returns an unsubscribe function."""
        self._check_disposed()
        return self._on_change.subscribe(listener)

    def loadable(self) -> Loadable[T]:
        """Snapshot of the value as loading / hasValue / hasError."""
        self._check_disposed()
        if take_pending(self):
            self._run()
        if self._current is UNSET:
            self._evaluate()
        scope = active_scope()
        if scope is not None:
            scope.add_dependency(self)
        return self._loadable.current()

    def map(self, mapper: Callable[[T], U] | Any, optional: bool = False) -> StateFamily[U]:
        """Derived state applying mapper to this state's value.

        mapper may also be a key or attribute name. With optional=True, a None
        value maps to None instead of failing.
        """
        self._check_disposed()
        if not callable(mapper):
            mapper = _prop_mapper(mapper, optional)
        source = self

        def _mapped() -> Any:
            value = source.value()
            if is_awaitable(value):
                return then(value, mapper)
            return mapper(value)

        return state(_mapped)

    # --- Lifecycle ---

    def dispose(self) -> None:
        """Release listeners, dependency edges and loadable plumbing. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        take_pending(self)
        self._on_change.clear()
        self._clear_dependencies()
        self._loadable.dispose()
        logger.debug("disposed %r", self)

    def remove(self) -> None:
        """Dispose a family member and detach it from its family.

        The default member cannot be removed; this is a no-op for it.
        """
        if not self._args:
            return
        self.dispose()
        if self._family is not None:
            self._family._forget(self._args)
            logger.debug("removed family member %r", self._args)

    def __repr__(self) -> str:
        name = getattr(self._initializer, "__name__", type(self._initializer).__name__)
        if self._disposed:
            status = "disposed"
        elif self._current is UNSET:
            status = "unset"
        elif isinstance(self._current, ErrorValue):
            status = f"error={self._current.error!r}"
        else:
            status = f"value={self._current!r}"
        return f"State({name}{self._args!r}, {status})"


class StateFamily(Generic[T]):
    """Family root: a keyed set of States sharing one initializer.

    The root forwards the State surface to its default member.
    """

    _kind = Kind.STATE
    is_family_root = True

    def __init__(
        self,
        initializer: Callable[..., T],
        *,
        on_change: Callable[[StateChange], object] | None = None,
        readonly: bool = False,
    ) -> None:
        self._initializer = initializer
        self._on_change = on_change
        self._readonly = readonly
        self._members: KeyedCache[State[T]] = KeyedCache()
        self._disposed = False
        self._default = self._member(())

    def _member(self, args: tuple) -> State[T]:
        return self._members.get_or_add(args, self._create)

    def _create(self, args: tuple) -> State[T]:
        member = State(self._initializer, args, family=self, readonly=self._readonly)
        if self._on_change is not None:
            member.on(self._on_change)
        return state_middleware.apply(member)

    def _forget(self, args: tuple) -> None:
        self._members.delete(args)

    def __call__(self, *args: Any) -> State[T]:
        if self._disposed:
            raise DisposedStateError(self)
        if not args:
            return self._default
        return self._member(args)

    @property
    def default(self) -> State[T]:
        return self._default

    def members(self) -> Iterator[State[T]]:
        """Members created so far, default first."""
        return self._members.values()

    # --- Default-member surface ---

    def value(self) -> T:
        return self._default.value()

    def set_value(self, next_value: T | Callable[[T], T]) -> T | None:
        return self._default.set_value(next_value)

    def reset(self) -> None:
        self._default.reset()

    def on(self, listener: Callable[[StateChange], object]) -> Disposer:
        return self._default.on(listener)

    def loadable(self) -> Loadable[T]:
        return self._default.loadable()

    def map(self, mapper: Callable[[T], U] | Any, optional: bool = False) -> StateFamily[U]:
        return self._default.map(mapper, optional)

    def remove(self) -> None:
        """The default member cannot be removed."""

    def dispose(self) -> None:
        """Dispose every member and empty the family. Idempotent."""
        self._disposed = True
        for member in list(self._members.values()):
            member.dispose()
        self._members.clear()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __repr__(self) -> str:
        name = getattr(self._initializer, "__name__", type(self._initializer).__name__)
        return f"StateFamily({name}, {len(self._members)} members)"


# ─── Factory ─────────────────────────────────────────────────────────────────


def _prop_mapper(prop: Any, optional: bool) -> Callable[[Any], Any]:
    def _get(value: Any) -> Any:
        if value is None and optional:
            return None
        if isinstance(value, (Mapping, Sequence)):
            return value[prop]
        return getattr(value, prop)

    return _get


def _initializer_for(default: Any) -> tuple[Callable[..., Any], Callable[..., Any] | None]:
    """Initializer for default, plus the write-back update of a shape state."""
    if (
        isinstance(default, dict)
        and default
        and all(is_state(source) for source in default.values())
    ):
        entries = list(default.items())

        def _shape() -> dict:
            return {key: source.value() for key, source in entries}

        def _write_back(*args: Any) -> Callable[[dict], list]:
            return lambda value: [(source, value[key]) for key, source in entries]

        return _shape, _write_back

    if callable(default):
        return default, None
    return (lambda *args: default), None


def _log_failure(future: asyncio.Future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.error("compound state update failed", exc_info=future.exception())


def _compound(
    initializer: Callable[..., Any],
    update: Callable[..., Callable[..., Any]],
    on_change: Callable[[StateChange], object] | None,
    readonly: bool,
) -> StateFamily:
    """Family whose changes are fed through update(*args)(value, prev_value)."""
    shadow = effect(
        lambda payload: call_flexible(
            update(*payload["args"]), payload["value"], payload["prev_value"]
        )
    )
    latest: object = None

    def _on_change(change: StateChange) -> None:
        nonlocal latest
        if on_change is not None:
            on_change(change)
        marker = latest = object()
        if not (is_awaitable(change.value) or is_awaitable(change.prev_value)):
            shadow({"args": change.args, "value": change.value, "prev_value": change.prev_value})
            return

        async def _settle_both() -> None:
            value, prev_value = await gather_all(
                [settle(change.value), settle(change.prev_value)]
            )
            # a newer change superseded this one
            if marker is not latest:
                return
            await settle(shadow({"args": change.args, "value": value, "prev_value": prev_value}))

        to_future(_settle_both()).add_done_callback(_log_failure)

    return StateFamily(initializer, on_change=_on_change, readonly=readonly)


def state(
    default: Any = None,
    update: Callable[..., Callable[..., Any]] | None = None,
    *,
    on_change: Callable[[StateChange], object] | None = None,
    readonly: bool = False,
) -> StateFamily:
    """Create a state family.

    default is either a constant, an initializer taking the family key as
    positional arguments (possibly async), or a dict of states (a shape).
    update(*args) may return a function (value, prev_value) -> expression,
    run as an effect after every change.

    Usage:
        count = state(1)
        total = state(lambda: sum(item.value() for item in items))
        user = state(fetch_user)          # user(7) is the member for id 7
        form = state({"name": name, "age": age})
    """
    initializer, shape_update = _initializer_for(default)
    if update is None:
        update = shape_update
    if update is not None:
        return _compound(initializer, update, on_change, readonly)
    return StateFamily(initializer, on_change=on_change, readonly=readonly)
