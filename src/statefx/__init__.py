"""statefx: reactive states and generator-driven effects for Python."""

from importlib.metadata import version as _version

__version__ = _version("statefx")

from statefx._aio import AsyncCall
from statefx.effect import Effect, effect
from statefx.errors import (
    DisposedStateError,
    HookOrderError,
    NoActiveScopeError,
    ReadonlyStateError,
    StatefxError,
    UnsupportedExpressionError,
)
from statefx.hooks import Ref, memo, ref
from statefx.interpreter import ExecutionContext, Phase
from statefx.keyed import KeyedCache
from statefx.kinds import Kind, is_effect, is_state, kind_of
from statefx.loadable import Loadable, LoadableStatus
from statefx.middleware import use_effect_middleware, use_state_middleware
from statefx.observable import Observable
from statefx.scheduler import set_scheduler
from statefx.state import State, StateChange, StateFamily, state
from statefx.watch import LoadableWatcher, Watcher, watch, watch_loadable

__all__ = [
    "AsyncCall",
    "DisposedStateError",
    "Effect",
    "ExecutionContext",
    "HookOrderError",
    "KeyedCache",
    "Kind",
    "Loadable",
    "LoadableStatus",
    "LoadableWatcher",
    "NoActiveScopeError",
    "Observable",
    "Phase",
    "ReadonlyStateError",
    "Ref",
    "State",
    "StateChange",
    "StateFamily",
    "StatefxError",
    "UnsupportedExpressionError",
    "Watcher",
    "effect",
    "is_effect",
    "is_state",
    "kind_of",
    "memo",
    "ref",
    "set_scheduler",
    "state",
    "use_effect_middleware",
    "use_state_middleware",
    "watch",
    "watch_loadable",
]
