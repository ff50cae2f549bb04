"""Tests for the Observable hub."""

from statefx import Observable


class TestObservable:
    def test_dispatch_reaches_subscribers_in_order(self):
        hub = Observable()
        log = []
        hub.subscribe(lambda value: log.append(("a", value)))
        hub.subscribe(lambda value: log.append(("b", value)))
        hub.dispatch(1)
        assert log == [("a", 1), ("b", 1)]

    def test_unsubscribe(self):
        hub = Observable()
        log = []
        unsubscribe = hub.subscribe(log.append)
        hub.dispatch(1)
        unsubscribe()
        hub.dispatch(2)
        assert log == [1]

    def test_unsubscribe_idempotent(self):
        hub = Observable()
        unsubscribe = hub.subscribe(lambda: None)
        unsubscribe()
        unsubscribe()  # should not raise
        assert len(hub) == 0

    def test_same_listener_registered_once(self):
        hub = Observable()
        log = []
        hub.subscribe(log.append)
        hub.subscribe(log.append)
        hub.dispatch("x")
        assert log == ["x"]

    def test_dispatch_without_args(self):
        hub = Observable()
        calls = []
        hub.subscribe(lambda: calls.append(True))
        hub.dispatch()
        assert calls == [True]

    def test_clear(self):
        hub = Observable()
        log = []
        hub.subscribe(log.append)
        hub.clear()
        hub.dispatch(1)
        assert log == []


class TestDispatchSnapshot:
    """Subscribers changed during a dispatch do not affect that dispatch."""

    def test_added_during_dispatch_not_called(self):
        hub = Observable()
        log = []

        def late(value):
            log.append(("late", value))

        def first(value):
            log.append(("first", value))
            hub.subscribe(late)

        hub.subscribe(first)
        hub.dispatch(1)
        assert log == [("first", 1)]
        hub.dispatch(2)
        assert log == [("first", 1), ("first", 2), ("late", 2)]

    def test_removed_during_dispatch_still_called(self):
        hub = Observable()
        log = []
        removers = {}

        def first(value):
            log.append("first")
            removers["second"]()

        def second(value):
            log.append("second")

        hub.subscribe(first)
        removers["second"] = hub.subscribe(second)
        hub.dispatch(1)
        assert log == ["first", "second"]
        hub.dispatch(2)
        assert log == ["first", "second", "first"]
