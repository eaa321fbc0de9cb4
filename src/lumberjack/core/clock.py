# src/lumberjack/core/clock.py
"""Clock abstraction for testable time-dependent logic.

Buffers (batch age), the error tracker (dedupe window), the gatekeeper
cache (TTL) and the session manager (inactivity and maximum length) all read
time through a Clock so tests can drive them deterministically.

Two readings are exposed:
- monotonic(): elapsed-time arithmetic that must never go backwards
- time(): wall-clock epoch seconds, used for timestamps that leave the
  process (log timestamps, persisted sessions)
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Abstract clock.

    Implementations:
    - SystemClock: time.monotonic() / time.time() (production)
    - MockClock: controllable values (testing)
    """

    def monotonic(self) -> float:
        """Return monotonic time in seconds."""
        ...

    def time(self) -> float:
        """Return wall-clock time as epoch seconds."""
        ...


class SystemClock:
    """Production clock backed by the time module."""

    def monotonic(self) -> float:
        return time.monotonic()

    def time(self) -> float:
        return time.time()


class MockClock:
    """Controllable clock for deterministic testing.

    Both readings move together, so advancing the clock ages batches,
    cache entries and sessions alike.

    Example:
        clock = MockClock(start=1_700_000_000.0)
        tracker = ErrorTracker(on_error, clock=clock)

        tracker.track_error(data)  # kept
        clock.advance(31)
        tracker.track_error(data)  # kept again, outside the window
    """

    def __init__(self, start: float = 0.0) -> None:
        """Initialize mock clock at a given time.

        Args:
            start: Initial value for both readings (default 0.0).
        """
        self._current = start

    def monotonic(self) -> float:
        return self._current

    def time(self) -> float:
        return self._current

    def advance(self, seconds: float) -> None:
        """Advance mock time by specified seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += seconds

    def set(self, value: float) -> None:
        """Set mock time to an absolute value (may move backwards)."""
        self._current = value


def epoch_millis(clock: Clock) -> int:
    """Wall-clock time in integer epoch milliseconds."""
    return int(clock.time() * 1000)


# Default clock for production use
DEFAULT_CLOCK: Clock = SystemClock()
