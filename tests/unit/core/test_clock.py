"""Tests for clock implementations."""

import pytest

from worldlog.core.clock import DEFAULT_CLOCK, MockClock, SystemClock


class TestSystemClock:
    def test_monotonic_never_goes_backwards(self) -> None:
        clock = SystemClock()
        first = clock.monotonic()
        assert clock.monotonic() >= first

    def test_default_clock_is_system_clock(self) -> None:
        assert isinstance(DEFAULT_CLOCK, SystemClock)


class TestMockClock:
    def test_starts_at_given_time(self) -> None:
        assert MockClock(start=100.0).monotonic() == 100.0

    def test_advance(self) -> None:
        clock = MockClock()
        clock.advance(1.5)
        clock.advance(0.5)
        assert clock.monotonic() == 2.0

    def test_advance_rejects_negative(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            MockClock().advance(-1.0)

    def test_set_absolute(self) -> None:
        clock = MockClock(start=10.0)
        clock.set(3.0)
        assert clock.monotonic() == 3.0
