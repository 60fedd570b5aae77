"""
Injectable time source.

Posting timestamps, approval stamps and the default reversal date all come
from a Clock handed to the service, never from ``datetime.now()``.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timezone


class Clock(ABC):
    """``now()`` is timezone-aware UTC; ``today()`` is its calendar date."""

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
    Frozen clock for tests.

    Starts at 2024-01-15 12:00 UTC unless told otherwise and only moves
    when ``set_today()`` is called.
    """

    DEFAULT_TIME = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or self.DEFAULT_TIME

    def now(self) -> datetime:
        return self._now

    def set_today(self, day: date) -> None:
        """Move to noon UTC on ``day``."""
        self._now = datetime.combine(day, time(12, 0), tzinfo=timezone.utc)
