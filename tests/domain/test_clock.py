"""Tests for the injectable clocks (approval_kernel/domain/clock.py)."""

from datetime import datetime, timedelta, timezone

import pytest

from approval_kernel.domain.clock import (
    DEFAULT_TEST_EPOCH,
    DeterministicClock,
    SystemClock,
)


class TestDeterministicClock:
    def test_stands_still(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now() == DEFAULT_TEST_EPOCH

    def test_advance_hours_is_exact(self):
        clock = DeterministicClock()
        clock.advance(hours=25)
        assert clock.now() - DEFAULT_TEST_EPOCH == timedelta(hours=25)

    def test_advance_seconds_and_hours_combine(self):
        clock = DeterministicClock()
        returned = clock.advance(30, hours=2)
        assert returned == clock.now()
        assert clock.now() - DEFAULT_TEST_EPOCH == timedelta(hours=2, seconds=30)

    def test_advance_backwards_rejected(self):
        clock = DeterministicClock()
        with pytest.raises(ValueError):
            clock.advance(hours=-1)
        assert clock.now() == DEFAULT_TEST_EPOCH

    def test_set_time_can_move_backwards(self):
        clock = DeterministicClock()
        clock.advance(hours=3)
        clock.set_time(DEFAULT_TEST_EPOCH)
        assert clock.now() == DEFAULT_TEST_EPOCH

    def test_naive_start_treated_as_utc(self):
        clock = DeterministicClock(datetime(2025, 6, 1, 8, 0))
        assert clock.now() == datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)


def test_system_clock_is_utc():
    assert SystemClock().now().utcoffset() == timedelta(0)
