"""
Injectable time source.

Services read time only through a Clock: transaction dates, issue numbers
and the as-of date for expiry checks all come from ``now()`` / ``today()``.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

_DEFAULT_FIXED_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` is timezone-aware; ``today()`` is its calendar date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock pinned to a fixed instant until moved with ``advance()``.

    Used by tests to place issues before or after a batch's expiry date.
    """

    def __init__(self, fixed_time: datetime | None = None):
        if fixed_time is not None and fixed_time.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")
        self._now = fixed_time or _DEFAULT_FIXED_TIME

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        """Move the clock forward by ``delta`` and return the new time."""
        if delta < timedelta(0):
            raise ValueError("DeterministicClock cannot move backwards")
        self._now = self._now + delta
        return self._now
