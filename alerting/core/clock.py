"""
Time source for expiry and snooze comparisons.

Services take a clock instead of calling datetime.now() directly so that
snooze windows and reminder intervals can be driven deterministically in tests.
"""
from datetime import datetime, timezone, timedelta
from typing import Optional


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    SQLite hands back naive datetimes for DateTime(timezone=True) columns,
    so every value read from storage goes through here before comparison.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Manually advanced clock for tests.

    Usage:
        clock = FixedClock(datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc))
        clock.advance(minutes=90)
    """

    def __init__(self, current: Optional[datetime] = None):
        self._current = as_utc(current) if current else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = as_utc(current)

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by timedelta keyword arguments."""
        self._current = self._current + timedelta(**kwargs)
        return self._current


# Default clock used when a service is constructed without one
system_clock = SystemClock()
