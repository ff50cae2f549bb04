"""Loadable — a point-in-time projection of a possibly asynchronous value.

A Loadable is either loading (the value is an unsettled future), has a value,
or has an error. Loading snapshots notify their `on` listeners exactly once,
when the future settles, unless the value they describe has been replaced in
the meantime.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from statefx._aio import is_awaitable, to_future
from statefx._values import UNSET, ErrorValue
from statefx.observable import Disposer, Observable

T = TypeVar("T")

logger = logging.getLogger("statefx.loadable")


class LoadableStatus(str, Enum):
    LOADING = "loading"
    HAS_VALUE = "hasValue"
    HAS_ERROR = "hasError"


@dataclass(frozen=True, eq=False)
class Loadable(Generic[T]):
    """Immutable snapshot. Compared by identity."""

    status: LoadableStatus
    value: T | None = None
    error: BaseException | None = None
    _settled: Observable = field(default_factory=Observable, repr=False)

    @property
    def is_loading(self) -> bool:
        return self.status is LoadableStatus.LOADING

    @property
    def has_value(self) -> bool:
        return self.status is LoadableStatus.HAS_VALUE

    @property
    def has_error(self) -> bool:
        return self.status is LoadableStatus.HAS_ERROR

    def on(self, listener: Callable[[], object]) -> Disposer:
        """Call listener once the underlying value settles."""
        return self._settled.subscribe(listener)


class LoadableTracker:
    """Caches the Loadable for whatever getter() currently returns.

    A new snapshot is built only when the source value changes by identity
    or a pending future settles.
    """

    __slots__ = ("_getter", "_source", "_loadable", "_settled")

    def __init__(self, getter: Callable[[], Any]) -> None:
        self._getter = getter
        self._source: Any = UNSET
        self._loadable: Loadable | None = None
        self._settled: Observable | None = None

    def current(self) -> Loadable:
        value = self._getter()
        if self._loadable is None or value is not self._source:
            self._rebuild(value)
        return self._loadable  # type: ignore[return-value]

    def _rebuild(self, value: Any) -> None:
        if self._settled is not None:
            self._settled.clear()
        settled = self._settled = Observable()
        self._source = value

        if isinstance(value, ErrorValue):
            self._loadable = Loadable(LoadableStatus.HAS_ERROR, error=value.error, _settled=settled)
        elif is_awaitable(value):
            future = to_future(value)
            self._loadable = Loadable(LoadableStatus.LOADING, _settled=settled)
            future.add_done_callback(lambda f: self._on_settled(value, f, settled))
        else:
            self._loadable = Loadable(
                LoadableStatus.HAS_VALUE,
                value=None if value is UNSET else value,
                _settled=settled,
            )

    def _on_settled(self, source: Any, future: asyncio.Future, settled: Observable) -> None:
        # replaced meanwhile, or disposed
        if settled is not self._settled or source is not self._getter():
            return
        if future.cancelled():
            self._loadable = Loadable(
                LoadableStatus.HAS_ERROR, error=asyncio.CancelledError(), _settled=settled
            )
        elif future.exception() is not None:
            self._loadable = Loadable(
                LoadableStatus.HAS_ERROR, error=future.exception(), _settled=settled
            )
        else:
            self._loadable = Loadable(
                LoadableStatus.HAS_VALUE, value=future.result(), _settled=settled
            )
        logger.debug("loadable settled: %s", self._loadable.status.value)
        settled.dispatch()

    def dispose(self) -> None:
        if self._settled is not None:
            self._settled.clear()
        self._settled = None
        self._loadable = None
        self._source = UNSET
