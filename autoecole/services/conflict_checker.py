# autoecole/services/conflict_checker.py
"""
Conflict Checker Service

Centralizes the timing rules shared by the schedule and booking services:
- Same-day slot overlap detection for an instructor
- Time range validation
- The pre-lesson freeze window for bookings and cancellations
"""

from datetime import date, datetime, time
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.constants import BOOKING_FREEZE_HOURS, BOOKING_FREEZE_WINDOW, ERROR_END_BEFORE_START
from ..core.exceptions import FreezeWindowException, ValidationException
from ..models.schedule import ScheduleSlot
from ..repositories.factory import RepositoryFactory
from ..repositories.schedule_repository import ScheduleRepository
from .base import BaseService

logger = logging.getLogger(__name__)


def ranges_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open [start, end) intersection; touching ranges do not overlap."""
    return start_a < end_b and end_a > start_b


class ConflictChecker(BaseService):
    """
    Service for slot conflict detection and time validation.

    Keeps every overlap and freeze-window decision in one place so the
    schedule and booking services apply identical rules.
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        repository: Optional[ScheduleRepository] = None,
    ):
        super().__init__(db, clock)
        self.repository = repository or RepositoryFactory.create_schedule_repository(db)

    @BaseService.measure_operation("find_overlap")
    def find_overlap(
        self,
        owner_id: str,
        check_date: date,
        start_time: time,
        end_time: time,
        exclude_id: Optional[str] = None,
    ) -> Optional[ScheduleSlot]:
        """
        Return the first non-cancelled slot of the owner that day intersecting the range.

        Args:
            owner_id: The instructor to check
            check_date: The date to check
            start_time: Start time of the range to check
            end_time: End time of the range to check
            exclude_id: Slot to ignore, used when editing an existing slot
        """
        for slot in self.repository.list_active_for_owner_day(owner_id, check_date, exclude_id):
            if ranges_overlap(start_time, end_time, slot.start_time, slot.end_time):
                self.logger.warning(
                    f"Slot conflict for {owner_id} on {check_date}: {start_time}-{end_time} "
                    f"overlaps {slot.id} ({slot.start_time}-{slot.end_time})"
                )
                return slot
        return None

    @staticmethod
    def validate_time_range(start_time: time, end_time: time) -> None:
        if end_time <= start_time:
            raise ValidationException(ERROR_END_BEFORE_START, code="INVALID_TIME_RANGE")

    def hours_until(self, lesson_date: date, start_time: time) -> float:
        starts_at = self.clock.at(lesson_date, start_time)
        return (starts_at - self.clock.now()).total_seconds() / 3600

    def check_freeze_window(self, lesson_date: date, start_time: time) -> None:
        """
        Enforce the minimum notice before a lesson.

        Allowed iff now + freeze window <= lesson start.

        Raises:
            FreezeWindowException: When the lesson starts too soon
        """
        starts_at = self.clock.at(lesson_date, start_time)
        now = self.clock.now()
        if now + BOOKING_FREEZE_WINDOW > starts_at:
            raise FreezeWindowException(
                required_hours=BOOKING_FREEZE_HOURS,
                provided_hours=max(self.hours_until(lesson_date, start_time), 0.0),
            )

    def earliest_bookable(self) -> datetime:
        """School-local instant before which no slot may be booked."""
        return self.clock.tz.normalize(self.clock.now() + BOOKING_FREEZE_WINDOW)
