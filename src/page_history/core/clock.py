"""Timestamp source for ordering diff records."""
from datetime import UTC, datetime, timedelta


class MonotonicClock:
    """
    Wall-clock UTC timestamps that never go backwards within a process.

    Diff records are ordered by timestamp alone, so two calls in the same
    microsecond (or a system clock step backwards) must still yield strictly
    increasing values. When the wall clock does not advance past the last
    issued value, the last value plus one microsecond is returned instead.
    """

    def __init__(self) -> None:
        self._last: datetime | None = None

    def now(self) -> datetime:
        """Return the next timestamp (timezone-aware, UTC)."""
        current = datetime.now(UTC)
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current


# Singleton instance for use throughout the application
clock = MonotonicClock()
