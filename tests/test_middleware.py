"""Tests for state and effect middleware."""

from statefx import effect, state, use_effect_middleware, use_state_middleware
from statefx.middleware import MiddlewareRegistry


class TestRegistry:
    def test_chain_order(self):
        registry = MiddlewareRegistry("test")
        order = []

        def outer(instance):
            def wrap(next):
                order.append("outer")
                return next(instance)

            return wrap

        def inner(instance):
            def wrap(next):
                order.append("inner")
                return next(instance)

            return wrap

        registry.use(outer, inner)
        assert registry.apply("x") == "x"
        assert order == ["outer", "inner"]

    def test_replace_instance(self):
        registry = MiddlewareRegistry("test")
        registry.use(lambda instance: lambda next: next(instance.upper()))
        assert registry.apply("abc") == "ABC"

    def test_short_circuit(self):
        registry = MiddlewareRegistry("test")
        reached = []
        registry.use(lambda instance: lambda next: "stopped")
        registry.use(lambda instance: lambda next: reached.append(True) or next(instance))
        assert registry.apply("abc") == "stopped"
        assert reached == []

    def test_unregister(self):
        registry = MiddlewareRegistry("test")
        unregister = registry.use(lambda instance: lambda next: next(instance * 2))
        assert registry.apply(2) == 4
        unregister()
        unregister()  # should not raise
        assert registry.apply(2) == 2
        assert len(registry) == 0

    def test_unregister_only_own_entries(self):
        registry = MiddlewareRegistry("test")

        def double(instance):
            return lambda next: next(instance * 2)

        first = registry.use(double)
        registry.use(double)
        first()
        assert len(registry) == 1
        assert registry.apply(1) == 2


class TestGlobalMiddleware:
    def test_state_middleware_sees_members(self):
        created = []

        def record(instance):
            def wrap(next):
                created.append(instance.args)
                return next(instance)

            return wrap

        unregister = use_state_middleware(record)
        try:
            family = state(lambda key=None: key)
            family("a")
        finally:
            unregister()
        family("b")
        assert created == [(), ("a",)]

    def test_effect_middleware(self):
        created = []
        unregister = use_effect_middleware(lambda instance: lambda next: created.append(instance) or next(instance))
        try:
            run = effect()
        finally:
            unregister()
        effect()
        assert created == [run]
