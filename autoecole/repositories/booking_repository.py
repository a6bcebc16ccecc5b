# autoecole/repositories/booking_repository.py
"""Booking and learner progress queries."""

from datetime import date, time
import logging
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..core.enums import BookingStatus
from ..models.booking import Booking
from ..models.student_progress import StudentProgress
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for bookings and the per-learner running totals."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def find_confirmed(self, schedule_id: str, student_id: str) -> Optional[Booking]:
        return (
            self.db.query(Booking)
            .filter(
                Booking.schedule_id == schedule_id,
                Booking.student_id == student_id,
                Booking.status == BookingStatus.CONFIRMED.value,
            )
            .first()
        )

    def list_confirmed_for_slot(self, schedule_id: str) -> List[Booking]:
        query = self.db.query(Booking).filter(
            Booking.schedule_id == schedule_id,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
        return self._lockable(query).order_by(Booking.booked_at).all()

    def list_for_student(self, student_id: str, status: Optional[BookingStatus] = None) -> List[Booking]:
        """Booking history, most recent lesson first."""
        query = self.db.query(Booking).filter(Booking.student_id == student_id)
        if status:
            query = query.filter(Booking.status == status.value)
        return query.order_by(Booking.lesson_date.desc(), Booking.start_time.desc()).all()

    def list_ready_for_completion(
        self, instructor_id: Optional[str], today: date, now_time: time
    ) -> List[Booking]:
        """Confirmed bookings whose lesson has already ended."""
        query = self.db.query(Booking).filter(
            Booking.status == BookingStatus.CONFIRMED.value,
            or_(
                Booking.lesson_date < today,
                and_(Booking.lesson_date == today, Booking.end_time <= now_time),
            ),
        )
        if instructor_id:
            query = query.filter(Booking.instructor_id == instructor_id)
        return query.order_by(Booking.lesson_date, Booking.start_time).all()

    def get_or_create_progress(self, student_id: str) -> StudentProgress:
        query = self.db.query(StudentProgress).filter(StudentProgress.student_id == student_id)
        progress = self._lockable(query).populate_existing().first()
        if progress is None:
            progress = StudentProgress(student_id=student_id)
            self.db.add(progress)
            self.db.flush()
        return progress
