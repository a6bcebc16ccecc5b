"""
School-local time for scheduling decisions.

Slot dates and times are stored as wall-clock values in the school's timezone.
Services never call datetime.now() directly; they ask a Clock so that freeze
windows and attendance gates can be evaluated deterministically.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time
from typing import Optional

import pytz

from .config import settings


def get_school_timezone(name: Optional[str] = None) -> pytz.BaseTzInfo:
    """Return the pytz timezone slot times are expressed in."""
    return pytz.timezone(name or settings.school_timezone)


def combine_local(day: date, at: time, tz: pytz.BaseTzInfo) -> datetime:
    """Build an aware datetime from a school-local date and wall-clock time."""
    return tz.localize(datetime.combine(day, at))


class Clock(ABC):
    """Source of the current school-local time."""

    def __init__(self, timezone_name: Optional[str] = None):
        self.tz = get_school_timezone(timezone_name)

    @abstractmethod
    def now(self) -> datetime:
        """Current aware datetime in the school timezone."""

    def today(self) -> date:
        return self.now().date()

    def at(self, day: date, at: time) -> datetime:
        return combine_local(day, at, self.tz)


class SystemClock(Clock):
    """Wall clock in the school timezone."""

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock(Clock):
    """
    Clock pinned to a given instant.

    Naive datetimes are interpreted as school-local time. Used by maintenance
    scripts replaying historical operations and by the test-suite.
    """

    def __init__(self, current: datetime, timezone_name: Optional[str] = None):
        super().__init__(timezone_name)
        self._current = self._normalize(current)

    def _normalize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return self.tz.localize(value)
        return value.astimezone(self.tz)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = self._normalize(current)
