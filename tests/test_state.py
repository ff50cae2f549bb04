"""Tests for state(): cached values, dependency tracking, writes and lifecycle."""

import pytest

from statefx import (
    DisposedStateError,
    ReadonlyStateError,
    StateChange,
    state,
)


class TestStateBasics:
    def test_constant_default(self):
        count = state(1)
        assert count.value() == 1

    def test_none_default(self):
        assert state().value() is None

    def test_lazy_eval(self):
        call_count = 0

        def load():
            nonlocal call_count
            call_count += 1
            return 5

        s = state(load)
        assert call_count == 0  # not yet evaluated
        assert s.value() == 5
        s.value()
        assert call_count == 1  # cached

    def test_set_value(self):
        count = state(1)
        assert count.set_value(2) == 2
        assert count.value() == 2

    def test_reducer(self):
        count = state(1)
        count.set_value(lambda value: value + 10)
        assert count.value() == 11

    def test_on_change_listener(self):
        count = state(0)
        count.value()
        changes = []
        count.on(changes.append)
        count.set_value(3)
        assert len(changes) == 1
        change = changes[0]
        assert isinstance(change, StateChange)
        assert (change.value, change.prev_value) == (3, 0)

    def test_same_value_no_notification(self):
        count = state(3)
        count.value()
        changes = []
        count.on(changes.append)
        count.set_value(3)
        assert changes == []

    def test_identity_comparison_for_objects(self):
        items = state(lambda: [1, 2])
        items.value()
        changes = []
        items.on(changes.append)
        items.set_value([1, 2])  # equal but a new object
        assert len(changes) == 1

    def test_unsubscribe(self):
        count = state(0)
        changes = []
        unsubscribe = count.on(changes.append)
        unsubscribe()
        count.set_value(1)
        assert changes == []

    def test_error_is_cached_and_reraised(self):
        calls = 0

        def broken():
            nonlocal calls
            calls += 1
            raise ValueError("boom")

        s = state(broken)
        with pytest.raises(ValueError):
            s.value()
        with pytest.raises(ValueError):
            s.value()
        assert calls == 1

    def test_reducer_error_is_stored(self):
        count = state(1)
        count.set_value(lambda value: value / 0)
        with pytest.raises(ZeroDivisionError):
            count.value()


class TestDerivedState:
    def test_doubled(self):
        count = state(1)
        doubled = state(lambda: count.value() * 2)
        assert doubled.value() == 2
        count.set_value(5)
        assert doubled.value() == 10

    def test_dependencies_recorded(self):
        a = state(1)
        b = state(2)
        total = state(lambda: a.value() + b.value())
        total.value()
        assert set(total.default.dependencies) == {a.default, b.default}

    def test_change_propagates_through_chain(self):
        count = state(1)
        doubled = state(lambda: count.value() * 2)
        quadrupled = state(lambda: doubled.value() * 2)
        assert quadrupled.value() == 4
        changes = []
        quadrupled.on(changes.append)
        count.set_value(2)
        assert quadrupled.value() == 8
        assert [c.value for c in changes] == [8]

    def test_unchanged_result_does_not_notify(self):
        count = state(1)
        parity = state(lambda: count.value() % 2)
        parity.value()
        changes = []
        parity.on(changes.append)
        count.set_value(3)
        assert changes == []

    def test_diamond_recomputes_once(self):
        source = state(1)
        plus_one = state(lambda: source.value() + 1)
        times_ten = state(lambda: source.value() * 10)
        evaluations = 0

        def both():
            nonlocal evaluations
            evaluations += 1
            return (plus_one.value(), times_ten.value())

        pair = state(both)
        assert pair.value() == (2, 10)
        seen = []
        pair.on(lambda change: seen.append(change.value))
        source.set_value(2)
        assert seen == [(3, 20)]
        assert evaluations == 2

    def test_uneven_paths_see_settled_sources(self):
        source = state(1)
        step = state(lambda: source.value() + 1)
        doubled_step = state(lambda: step.value() * 2)
        pair = state(lambda: (source.value(), doubled_step.value()))
        assert pair.value() == (1, 4)
        seen = []
        pair.on(lambda change: seen.append(change.value))
        source.set_value(2)
        assert seen == [(2, 6)]
        assert pair.default.rank == 3

    def test_listener_reads_current_values(self):
        source = state(1)
        doubled = state(lambda: source.value() * 2)
        doubled.value()
        seen = []
        source.on(lambda change: seen.append(doubled.value()))
        source.set_value(5)
        assert seen == [10]

    def test_dynamic_dependencies(self):
        flag = state(True)
        a = state(1)
        b = state(2)
        picked = state(lambda: a.value() if flag.value() else b.value())
        assert picked.value() == 1
        flag.set_value(False)
        assert picked.value() == 2
        assert a.default not in picked.default.dependencies
        a.set_value(100)  # no longer tracked
        assert picked.value() == 2

    def test_explicit_set_detaches_until_reset(self):
        count = state(1)
        doubled = state(lambda: count.value() * 2)
        doubled.value()
        doubled.set_value(100)
        count.set_value(2)
        assert doubled.value() == 100
        doubled.reset()
        assert doubled.value() == 4
        count.set_value(3)
        assert doubled.value() == 6

    def test_reset_constant(self):
        count = state(1)
        count.set_value(5)
        count.reset()
        assert count.value() == 1


class TestMap:
    def test_map_function(self):
        count = state(2)
        squared = count.map(lambda value: value * value)
        assert squared.value() == 4
        count.set_value(3)
        assert squared.value() == 9

    def test_map_key(self):
        person = state({"name": "Ada"})
        name = person.map("name")
        assert name.value() == "Ada"

    def test_map_attribute(self):
        class Point:
            x = 7

        point = state(Point())
        assert point.map("x").value() == 7

    def test_map_optional(self):
        person = state(None)
        with pytest.raises(AttributeError):
            person.map("name").value()
        assert person.map("name", optional=True).value() is None


class TestOptions:
    def test_readonly(self):
        config = state(1, readonly=True)
        with pytest.raises(ReadonlyStateError):
            config.set_value(2)
        assert config.value() == 1

    def test_on_change_option(self):
        changes = []
        count = state(0, on_change=changes.append)
        count.value()
        count.set_value(1)
        assert [(c.value, c.prev_value) for c in changes] == [(1, 0)]

    def test_compound_update(self):
        """update(*args)(value, prev_value) runs after every change."""
        history = state(lambda: [])
        count = state(
            0,
            lambda: lambda value, prev: (history, lambda items: items + [(prev, value)]),
        )
        count.value()
        count.set_value(1)
        count.set_value(2)
        assert history.value() == [(0, 1), (1, 2)]

    def test_shape_reads_members(self):
        first = state("Ada")
        last = state("Lovelace")
        name = state({"first": first, "last": last})
        assert name.value() == {"first": "Ada", "last": "Lovelace"}
        last.set_value("Byron")
        assert name.value() == {"first": "Ada", "last": "Byron"}

    def test_shape_writes_back(self):
        first = state("Ada")
        last = state("Lovelace")
        name = state({"first": first, "last": last})
        name.set_value({"first": "Grace", "last": "Hopper"})
        assert first.value() == "Grace"
        assert last.value() == "Hopper"


class TestLifecycle:
    def test_dispose(self):
        count = state(1)
        member = count.default
        member.dispose()
        assert member.disposed
        with pytest.raises(DisposedStateError):
            member.value()
        with pytest.raises(DisposedStateError):
            member.set_value(2)

    def test_dispose_idempotent(self):
        count = state(1)
        count.dispose()
        count.dispose()  # should not raise
        assert count.disposed

    def test_disposed_stops_following(self):
        count = state(1)
        doubled = state(lambda: count.value() * 2)
        doubled.value()
        doubled.dispose()
        count.set_value(2)  # should not raise
        assert doubled.default.dependencies == ()

    def test_repr(self):
        def total():
            return 3

        s = state(total)
        assert "unset" in repr(s.default)
        s.value()
        assert "value=3" in repr(s.default)
