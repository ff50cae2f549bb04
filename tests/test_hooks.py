"""Tests for memo() and ref() hooks."""

import pytest

from statefx import HookOrderError, NoActiveScopeError, memo, ref, state


class TestMemo:
    def test_memo_reuses_result_while_deps_are_equal(self):
        calls = []
        numbers = state(lambda: [1, 2, 3])
        factor = state(1)

        def scaled():
            items = numbers.value()
            by = factor.value()
            total = memo(lambda: calls.append(items) or sum(items), (items,))
            return total * by

        s = state(scaled)
        assert s.value() == 6
        factor.set_value(2)
        assert s.value() == 12
        assert len(calls) == 1

        numbers.set_value([1, 1])
        assert s.value() == 4
        assert len(calls) == 2

    def test_memo_sum_with_index(self):
        """A family member memoizes per member."""
        values = state(lambda index=None: [1, 2, 3] if index is None else [index])
        summed = state(lambda index=None: memo(lambda: sum(values(index).value())))
        assert summed.value() == 6
        assert summed(10).value() == 10

    def test_memo_without_deps_runs_once(self):
        calls = 0
        trigger = state(0)

        def compute():
            nonlocal calls
            trigger.value()

            def build():
                nonlocal calls
                calls += 1
                return "built"

            return memo(build)

        s = state(compute)
        s.value()
        trigger.set_value(1)
        trigger.set_value(2)
        assert s.value() == "built"
        assert calls == 1

    def test_memo_reads_are_not_tracked(self):
        source = state(1)
        s = state(lambda: memo(lambda: source.value()))
        s.value()
        assert s.default.dependencies == ()

    def test_keyed_memo(self):
        flag = state(True)
        calls = []

        def compute():
            if flag.value():
                return memo(lambda: calls.append("a") or "a", key="shared")
            return memo(lambda: calls.append("b") or "b", key="shared")

        s = state(compute)
        assert s.value() == "a"
        flag.set_value(False)
        assert s.value() == "a"  # same key, cached entry
        assert calls == ["a"]

    def test_memo_outside_state(self):
        with pytest.raises(NoActiveScopeError):
            memo(lambda: 1)

    def test_nested_memo(self):
        s = state(lambda: memo(lambda: memo(lambda: 1)))
        with pytest.raises(NoActiveScopeError):
            s.value()


class TestRef:
    def test_ref_persists_across_evaluations(self):
        trigger = state(0)

        def count_evaluations():
            trigger.value()
            evaluations = ref(0)
            evaluations.current += 1
            return evaluations.current

        s = state(count_evaluations)
        assert s.value() == 1
        trigger.set_value(1)
        assert s.value() == 2
        trigger.set_value(2)
        assert s.value() == 3

    def test_ref_outside_state(self):
        with pytest.raises(NoActiveScopeError):
            ref()


class TestHookOrder:
    def test_kind_change_raises(self):
        flag = state(True)

        def compute():
            if flag.value():
                memo(lambda: 1)
            else:
                ref()
            return "ok"

        s = state(compute)
        assert s.value() == "ok"
        flag.set_value(False)
        with pytest.raises(HookOrderError) as info:
            s.value()
        assert info.value.index == 0
