# autoecole/models/booking.py
"""
Booking model.

A booking links one learner to one schedule slot. The lesson date, times and
type are copied from the slot at booking time so that history stays readable
after the slot is cancelled.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..core.enums import BookingStatus
from ..database import Base

logger = logging.getLogger(__name__)


class Booking(Base):
    """A learner's seat in a schedule slot."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    schedule_id = Column(String(26), ForeignKey("schedule_slots.id"), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)
    instructor_id = Column(String(64), nullable=False, index=True)

    # Slot snapshot
    lesson_type = Column(String(20), nullable=False)
    lesson_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    booked_at = Column(DateTime(timezone=True), nullable=False)

    # Cancellation tracking
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(64), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Completion fields
    completed_at = Column(DateTime(timezone=True), nullable=True)
    completed_by_id = Column(String(64), nullable=True)
    hours_completed = Column(Float, nullable=True)
    performance_rating = Column(Integer, nullable=True)
    skills_improved = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=True)
    teacher_notes = Column(Text, nullable=True)
    ready_for_next_level = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    slot = relationship("ScheduleSlot", backref="bookings")

    __table_args__ = (
        # Last-line guard: one confirmed seat per learner and slot
        Index(
            "uq_bookings_confirmed_slot_student",
            "schedule_id",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
        CheckConstraint(
            "performance_rating IS NULL OR (performance_rating >= 1 AND performance_rating <= 5)",
            name="ck_bookings_rating_range",
        ),
        CheckConstraint(
            "hours_completed IS NULL OR hours_completed > 0",
            name="ck_bookings_hours_positive",
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking {self.id} slot={self.schedule_id} student={self.student_id} {self.status}>"

    def cancel(self, cancelled_by_user_id: str, at: datetime, reason: Optional[str] = None) -> None:
        """Cancel this booking."""
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_at = at
        self.cancelled_by_id = cancelled_by_user_id
        self.cancellation_reason = reason
        logger.info(f"Booking {self.id} cancelled by user {cancelled_by_user_id}")

    def complete(
        self,
        completed_by_user_id: str,
        at: datetime,
        hours_completed: float,
        performance_rating: int,
        skills_improved: Optional[List[str]] = None,
        teacher_notes: Optional[str] = None,
        ready_for_next_level: bool = False,
    ) -> None:
        """Mark booking as completed with the instructor's evaluation."""
        self.status = BookingStatus.COMPLETED.value
        self.completed_at = at
        self.completed_by_id = completed_by_user_id
        self.hours_completed = hours_completed
        self.performance_rating = performance_rating
        self.skills_improved = list(skills_improved or [])
        self.teacher_notes = teacher_notes
        self.ready_for_next_level = ready_for_next_level
        logger.info(f"Booking {self.id} marked as completed")
