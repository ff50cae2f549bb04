"""Dependency tracking engine — the evaluation scope stack.

Uses contextvars to know which state is currently being evaluated. Any
State.value() call made while a scope is active registers the read state as a
dependency of the scope's owner. The same scope carries the owner's hook
store, so memo()/ref() calls can be matched to their previous results.

Because tasks copy the current context when they are created, a coroutine
started by an asynchronous initializer keeps tracking reads after its first
await. A scope is marked stale once its owner is invalidated, so late reads
from an outdated evaluation are ignored.

Batching: change dispatches run inside a batch. Dependents invalidated during
the batch are queued and recomputed once at the end, lowest rank first, so a
state never recomputes against a half-updated graph.
"""

from __future__ import annotations

import contextvars
import heapq
import itertools
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from statefx.hooks import HookStore
    from statefx.state import State


class EvaluationScope:
    """One evaluation of one state's initializer."""

    __slots__ = ("owner", "hooks", "hook_index", "stale")

    def __init__(self, owner: State, hooks: HookStore) -> None:
        self.owner = owner
        self.hooks = hooks
        self.hook_index = -1
        self.stale = False

    def add_dependency(self, source: State) -> None:
        if self.stale or source is self.owner:
            return
        self.owner._add_dependency(source)

    def __repr__(self) -> str:
        return f"EvaluationScope({self.owner!r}, hook_index={self.hook_index})"


# The scope of the state currently being evaluated, if any.
current_scope: contextvars.ContextVar[EvaluationScope | None] = contextvars.ContextVar(
    "current_scope", default=None
)


def active_scope() -> EvaluationScope | None:
    return current_scope.get()


@contextmanager
def evaluating(scope: EvaluationScope | None) -> Iterator[EvaluationScope | None]:
    """Make scope the active scope for the duration of the block."""
    token = current_scope.set(scope)
    try:
        yield scope
    finally:
        current_scope.reset(token)


def untracked():
    """Run a block with no active scope: reads are not tracked, hooks fail."""
    return evaluating(None)


# Batch depth counter. When > 0, recomputations are deferred.
_batch_depth: int = 0

# Heap of (rank, sequence, state) awaiting recomputation.
_pending: list[tuple[int, int, State]] = []

# Live heap entries by state; entries whose sequence no longer matches are skipped.
_queued: dict[State, int] = {}

_sequence = itertools.count()


def begin_batch() -> None:
    """Enter a batching scope. Nested batches are supported."""
    global _batch_depth
    _batch_depth += 1


def end_batch() -> None:
    """Exit a batching scope. The outermost exit recomputes queued states."""
    global _batch_depth
    _batch_depth -= 1
    if _batch_depth == 0:
        _flush_pending()


def schedule(state: State) -> None:
    """Queue state for recomputation; runs right away outside a batch."""
    if state in _queued:
        return
    sequence = next(_sequence)
    _queued[state] = sequence
    heapq.heappush(_pending, (state.rank, sequence, state))
    if _batch_depth == 0:
        _flush_pending()


def take_pending(state: State) -> bool:
    """Remove state from the queue. Returns whether it was queued."""
    return _queued.pop(state, None) is not None


def _flush_pending() -> None:
    """Recompute queued states in rank order, including ones queued meanwhile."""
    global _batch_depth
    _batch_depth += 1
    try:
        while _pending:
            _rank, sequence, state = heapq.heappop(_pending)
            if _queued.get(state) != sequence:
                continue
            del _queued[state]
            state._run()
    except BaseException:
        _pending.clear()
        _queued.clear()
        raise
    finally:
        _batch_depth -= 1


def get_pending_count() -> int:
    """Number of states waiting to recompute. Useful for testing."""
    return len(_queued)
