"""Tests for OptimisticValue and OptimisticCounter."""

from pipeline_crm.state.optimistic import OptimisticCounter, OptimisticValue


class TestOptimisticValue:
    """Tests for pending/commit/rollback."""

    def test_pending_shadows_committed(self) -> None:
        count = OptimisticValue(5)
        count.set_pending(4)
        assert count.value == 4
        assert count.committed == 5
        assert count.is_pending

    def test_commit(self) -> None:
        count = OptimisticValue(5)
        count.set_pending(4)
        count.commit()
        assert count.value == count.committed == 4
        assert not count.is_pending

    def test_rollback(self) -> None:
        count = OptimisticValue(5)
        count.set_pending(0)
        count.rollback()
        assert count.value == 5
        assert not count.is_pending

    def test_commit_without_pending_is_noop(self) -> None:
        count = OptimisticValue(5)
        count.commit()
        assert count.value == 5

    def test_reset_discards_pending(self) -> None:
        count = OptimisticValue(5)
        count.set_pending(4)
        count.reset(9)
        assert count.value == 9
        assert not count.is_pending

    def test_falsy_pending_value(self) -> None:
        flag = OptimisticValue(True)
        flag.set_pending(False)
        assert flag.value is False

    def test_repr(self) -> None:
        count = OptimisticValue(3)
        count.set_pending(2)
        assert repr(count) == "OptimisticValue(3, pending=2)"


class TestOptimisticCounter:
    """Tests for per-request count adjustments."""

    def test_adjustments_stack(self) -> None:
        unread = OptimisticCounter(5)
        unread.adjust(-1)
        unread.adjust(-2)
        assert unread.value == 2
        assert unread.committed == 5
        assert unread.is_pending

    def test_commit_folds_only_its_own_delta(self) -> None:
        unread = OptimisticCounter(5)
        first = unread.adjust(-1)
        second = unread.adjust(-1)

        unread.commit(first)
        assert unread.committed == 4
        assert unread.value == 3

        unread.rollback(second)
        assert unread.value == 4
        assert not unread.is_pending

    def test_never_below_zero(self) -> None:
        unread = OptimisticCounter(1)
        token = unread.adjust(-3)
        assert unread.value == 0
        unread.commit(token)
        assert unread.committed == 0

    def test_reset_drops_pending(self) -> None:
        unread = OptimisticCounter(5)
        token = unread.adjust(-1)
        unread.reset(7)
        unread.commit(token)
        assert unread.value == unread.committed == 7
