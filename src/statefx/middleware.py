"""Middleware — decorator chains applied to every new state or effect.

A middleware is a function of the freshly built instance returning a function
of `next`:

    def log_creation(instance):
        def wrap(next):
            logging.info("created %r", instance)
            return next(instance)
        return wrap

    unregister = use_state_middleware(log_creation)

Calling next() with a different object replaces the instance for the rest of
the chain; returning without calling next() short-circuits it. The chain is
snapshotted when applied, so registering or unregistering during construction
does not affect an application already in progress.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

Middleware = Callable[[Any], Callable[[Callable[[Any], Any]], Any]]

logger = logging.getLogger("statefx.middleware")


class MiddlewareRegistry:
    """Ordered list of middleware for one kind of instance."""

    __slots__ = ("_name", "_middleware")

    def __init__(self, name: str) -> None:
        self._name = name
        self._middleware: list[Middleware] = []

    def use(self, *middleware: Middleware) -> Callable[[], None]:
        """Register middleware. Returns a function that unregisters exactly these."""
        batch = list(middleware)
        self._middleware.extend(batch)
        logger.debug("registered %d %s middleware", len(batch), self._name)

        def _unregister() -> None:
            while batch:
                entry = batch.pop()
                for index, registered in enumerate(self._middleware):
                    if registered is entry:
                        del self._middleware[index]
                        break

        return _unregister

    def apply(self, instance: Any) -> Any:
        """Fold the registered middleware around instance."""
        chain = tuple(self._middleware)

        def _dispatch(index: int, value: Any) -> Any:
            if index == len(chain):
                return value
            return chain[index](value)(lambda replaced: _dispatch(index + 1, replaced))

        return _dispatch(0, instance)

    def __len__(self) -> int:
        return len(self._middleware)


state_middleware = MiddlewareRegistry("state")
effect_middleware = MiddlewareRegistry("effect")


def use_state_middleware(*middleware: Middleware) -> Callable[[], None]:
    """Apply middleware to every state family member created from now on."""
    return state_middleware.use(*middleware)


def use_effect_middleware(*middleware: Middleware) -> Callable[[], None]:
    """Apply middleware to every effect created from now on."""
    return effect_middleware.use(*middleware)
