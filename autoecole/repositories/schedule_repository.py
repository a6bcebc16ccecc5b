# autoecole/repositories/schedule_repository.py
"""
Schedule slot queries.

Holds the same-day slot scan used for overlap detection, the instructor-day
lock row and the availability search.
"""

from datetime import date, datetime, time
import logging
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..core.enums import LessonType, SlotStatus
from ..models.schedule import InstructorDay, ScheduleSlot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ScheduleRepository(BaseRepository[ScheduleSlot]):
    """Repository for schedule slots and their per-day lock rows."""

    def __init__(self, db: Session):
        super().__init__(db, ScheduleSlot)

    def lock_instructor_day(self, owner_id: str, day: date) -> InstructorDay:
        """
        Get or create the aggregate row for (owner_id, day) under a row lock.

        A racing creator loses on the unique constraint at flush time.
        """
        query = self.db.query(InstructorDay).filter(
            InstructorDay.owner_id == owner_id, InstructorDay.date == day
        )
        row = self._lockable(query).populate_existing().first()
        if row is None:
            row = InstructorDay(owner_id=owner_id, date=day)
            self.db.add(row)
            self.db.flush()
        return row

    def list_active_for_owner_day(
        self, owner_id: str, day: date, exclude_id: Optional[str] = None
    ) -> List[ScheduleSlot]:
        """All non-cancelled slots of an instructor on one date."""
        query = self.db.query(ScheduleSlot).filter(
            ScheduleSlot.owner_id == owner_id,
            ScheduleSlot.date == day,
            ScheduleSlot.status != SlotStatus.CANCELLED.value,
        )
        if exclude_id:
            query = query.filter(ScheduleSlot.id != exclude_id)
        return query.order_by(ScheduleSlot.start_time).all()

    def find_available(
        self,
        earliest: datetime,
        lesson_type: Optional[LessonType] = None,
        owner_id: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[ScheduleSlot]:
        """
        Slots that still take bookings and start at or after ``earliest``.

        ``earliest`` is a school-local datetime; remaining capacity is checked
        by the caller since the booked set lives in a JSON column.
        """
        earliest_date = earliest.date()
        earliest_time: time = earliest.time().replace(tzinfo=None)
        query = self.db.query(ScheduleSlot).filter(
            ScheduleSlot.status == SlotStatus.AVAILABLE.value,
            or_(
                ScheduleSlot.date > earliest_date,
                and_(ScheduleSlot.date == earliest_date, ScheduleSlot.start_time >= earliest_time),
            ),
        )
        if lesson_type:
            query = query.filter(ScheduleSlot.lesson_type == lesson_type.value)
        if owner_id:
            query = query.filter(ScheduleSlot.owner_id == owner_id)
        if from_date:
            query = query.filter(ScheduleSlot.date >= from_date)
        if to_date:
            query = query.filter(ScheduleSlot.date <= to_date)
        return query.order_by(ScheduleSlot.date, ScheduleSlot.start_time).all()

    def list_for_owner(
        self,
        owner_id: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        include_cancelled: bool = False,
    ) -> List[ScheduleSlot]:
        """Slots of one instructor (or of everyone when owner_id is None)."""
        query = self.db.query(ScheduleSlot)
        if owner_id:
            query = query.filter(ScheduleSlot.owner_id == owner_id)
        if not include_cancelled:
            query = query.filter(ScheduleSlot.status != SlotStatus.CANCELLED.value)
        if from_date:
            query = query.filter(ScheduleSlot.date >= from_date)
        if to_date:
            query = query.filter(ScheduleSlot.date <= to_date)
        return query.order_by(ScheduleSlot.date, ScheduleSlot.start_time).all()
