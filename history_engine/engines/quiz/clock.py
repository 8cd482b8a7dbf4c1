"""
Clock abstraction.

Every time-dependent rule (completion stamping, lockout expiry, the quiz
countdown) reads time through a Clock so tests can move time explicitly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Source of the current UTC time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""


class SystemClock(Clock):
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, *, hours: float = 0, seconds: float = 0, milliseconds: float = 0) -> datetime:
        self._now += timedelta(hours=hours, seconds=seconds, milliseconds=milliseconds)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value
