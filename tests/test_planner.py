"""Tests for prefetch planning and visible-range de-duplication."""

import pytest

from reflex_infinite_grid.planner import VisibleRangeTracker, plan_blocks


def _plan(start, end, *, block_size=100, overflow=1, resident=(), in_flight=()):
    return plan_blocks(
        start,
        end,
        block_size=block_size,
        overflow=overflow,
        resident=set(resident),
        in_flight=set(in_flight),
    )


class TestPlanBlocks:
    """Tests for the block plan of a visible range."""

    def test_range_without_overflow(self):
        assert _plan(250, 299, overflow=0) == [2]
        assert _plan(250, 300, overflow=0) == [2, 3]

    def test_overflow_on_both_sides(self):
        assert _plan(250, 299, overflow=1) == [1, 2, 3]
        assert _plan(250, 299, overflow=2) == [0, 1, 2, 3, 4]

    def test_clamped_at_zero(self):
        assert _plan(0, 50, overflow=3) == [0, 1, 2, 3]

    def test_skips_resident_and_in_flight(self):
        assert _plan(100, 450, overflow=0, resident={1, 3}, in_flight={2}) == [4]

    def test_empty_once_everything_is_loaded(self):
        assert _plan(100, 199, overflow=1, resident={0, 1, 2}) == []

    def test_reversed_range_rejected(self):
        with pytest.raises(ValueError):
            _plan(10, 5)

    def test_negative_overflow_rejected(self):
        with pytest.raises(ValueError):
            _plan(0, 5, overflow=-1)


class TestVisibleRangeTracker:
    """Tests for the range change signal."""

    def test_repeat_is_ignored(self):
        tracker = VisibleRangeTracker()

        assert tracker.update(0, 50) is True
        assert tracker.update(0, 50) is False
        assert tracker.update(0, 51) is True
        assert tracker.last == (0, 51)

    def test_reset_forgets_last_range(self):
        tracker = VisibleRangeTracker()
        tracker.update(0, 50)
        tracker.reset()

        assert tracker.update(0, 50) is True
