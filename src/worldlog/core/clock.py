# src/worldlog/core/clock.py
"""Clock abstraction for testable expiry and delay logic.

The default-state cache measures idle time and ManualScheduler orders
deferred tasks against a Clock, so tests can move time forward without
sleeping.

Production code uses SystemClock (the default).
Tests inject MockClock and advance it explicitly.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Abstract monotonic clock."""

    def monotonic(self) -> float:
        """Return monotonic time in seconds (never goes backwards)."""
        ...


class SystemClock:
    """Production clock delegating to time.monotonic()."""

    def monotonic(self) -> float:
        return time.monotonic()


class MockClock:
    """Controllable clock for deterministic testing.

    Example:
        clock = MockClock(start=0.0)
        cache = DefaultStateCache(max_size=10, expire_after_access_seconds=1.0, clock=clock)

        cache.put("cow", {"Age": 0})  # Accessed at t=0
        clock.advance(0.5)
        assert "cow" in cache

        clock.advance(0.6)  # 1.1s since last access
        assert cache.get_if_present("cow") is None
    """

    def __init__(self, start: float = 0.0) -> None:
        self._current = start

    def monotonic(self) -> float:
        return self._current

    def advance(self, seconds: float) -> None:
        """Advance mock time.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += seconds

    def set(self, value: float) -> None:
        """Set mock time to an absolute value (may move backwards, use with care)."""
        self._current = value


DEFAULT_CLOCK: Clock = SystemClock()
