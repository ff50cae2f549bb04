"""watch() — merge several states into one observable snapshot.

A Watcher reads an ordered list of states (or a single state) and exposes the
result as a tuple (or a single value). Listeners registered with
Watcher.watch() fire whenever any element of that snapshot changes.

In-flight values are resolved transparently: get() reports the last resolved
value of such a slot (None before the first resolution) and the snapshot is
refreshed when the future settles. A failed future leaves the slot at its
last resolved value; watch_loadable() reports the failure instead. An
optional resolver is called once per distinct in-flight future, so callers
can track outstanding async reads.

Usage:
    watcher = watch([first_name, last_name])
    unwatch = watcher.watch(lambda names: print(*names))
    watcher = watch([first_name, last_name], previous=watcher)  # same instance
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from statefx._aio import is_awaitable, to_future
from statefx._values import UNSET, same, same_items
from statefx.loadable import Loadable
from statefx.observable import Disposer, Observable

logger = logging.getLogger("statefx.watch")


def _normalize(targets: Any) -> tuple[bool, tuple]:
    if isinstance(targets, (list, tuple)):
        return False, tuple(targets)
    return True, (targets,)


class Watcher:
    """Snapshot of several states' values with change notification."""

    def __init__(self, targets: Any, resolver: Callable[[asyncio.Future], object] | None = None) -> None:
        self._single, self._targets = _normalize(targets)
        self._resolver = resolver
        self._resolved: dict[int, Any] = {}
        self._pending: dict[int, asyncio.Future] = {}
        self._snapshot: Any = UNSET
        self._changed = Observable()
        self._detach: list[Disposer] = []
        self._attached = False

    @property
    def targets(self) -> tuple:
        return self._targets

    def matches(self, targets: Any) -> bool:
        """Whether targets are the same states, in the same order."""
        single, normalized = _normalize(targets)
        return (
            single == self._single
            and len(normalized) == len(self._targets)
            and all(a is b for a, b in zip(normalized, self._targets))
        )

    def get(self) -> Any:
        """Current snapshot: a tuple, or a single value for a single target.

        A slot whose future failed or was cancelled keeps its last resolved
        value (None if it never resolved). Use watch_loadable() to see the
        error itself.
        """
        self._refresh()
        return self._snapshot

    def watch(self, on_change: Callable[[Any], object]) -> Disposer:
        """Call on_change(snapshot) whenever the snapshot changes. Returns unwatch."""
        if not self._attached:
            self._attach()
        remove = self._changed.subscribe(on_change)

        def _unwatch() -> None:
            remove()
            if not len(self._changed):
                self._release()

        return _unwatch

    def _attach(self) -> None:
        self._refresh()
        self._detach = [target.on(self._on_target_changed) for target in self._targets]
        self._attached = True

    def _release(self) -> None:
        for detach in self._detach:
            detach()
        self._detach = []
        self._attached = False

    def _on_target_changed(self, *_args: Any) -> None:
        if self._refresh():
            self._changed.dispatch(self._snapshot)

    def _refresh(self) -> bool:
        """Re-read every target. Returns True if the snapshot changed."""
        values = tuple(self._read(index, target) for index, target in enumerate(self._targets))
        snapshot = values[0] if self._single else values
        previous = self._snapshot
        self._snapshot = snapshot
        if previous is UNSET:
            return True
        if self._single:
            return not same(previous, snapshot)
        return not same_items(previous, snapshot)

    def _read(self, index: int, target: Any) -> Any:
        value = target.value()
        if not is_awaitable(value):
            self._pending.pop(index, None)
            return value

        future = to_future(value)
        if future.done():
            self._pending.pop(index, None)
            if not future.cancelled() and future.exception() is None:
                self._resolved[index] = future.result()
            return self._resolved.get(index)

        if self._pending.get(index) is not future:
            self._pending[index] = future
            if self._resolver is not None:
                self._resolver(future)
            future.add_done_callback(lambda settled: self._on_settled(index, settled))
        return self._resolved.get(index)

    def _on_settled(self, index: int, future: asyncio.Future) -> None:
        if self._pending.get(index) is not future:
            return
        del self._pending[index]
        if future.cancelled() or future.exception() is not None:
            logger.debug("watched value #%d settled without a result", index)
        self._on_target_changed()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self._targets)} targets, {len(self._changed)} listeners)"


class LoadableWatcher(Watcher):
    """Watcher whose snapshot holds a Loadable per target."""

    def __init__(self, targets: Any) -> None:
        super().__init__(targets)
        self._settlement: dict[int, tuple[Loadable, Disposer]] = {}

    def _read(self, index: int, target: Any) -> Loadable:
        loadable = target.loadable()
        tracked = self._settlement.get(index)
        if tracked is not None and tracked[0] is loadable:
            return loadable
        if tracked is not None:
            tracked[1]()
            del self._settlement[index]
        if loadable.is_loading:
            self._settlement[index] = (loadable, loadable.on(self._on_target_changed))
        return loadable

    def _release(self) -> None:
        super()._release()
        for _loadable, remove in self._settlement.values():
            remove()
        self._settlement.clear()


def watch(
    targets: Any,
    resolver: Callable[[asyncio.Future], object] | None = None,
    previous: Watcher | None = None,
) -> Watcher:
    """Watcher over targets; reuses previous if it watches the same states."""
    if previous is not None and type(previous) is Watcher and previous.matches(targets):
        return previous
    return Watcher(targets, resolver)


def watch_loadable(targets: Any, previous: LoadableWatcher | None = None) -> LoadableWatcher:
    """Like watch(), but the snapshot holds each target's Loadable."""
    if isinstance(previous, LoadableWatcher) and previous.matches(targets):
        return previous
    return LoadableWatcher(targets)
