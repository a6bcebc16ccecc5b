# autoecole/models/schedule.py
"""
Instructor schedule slots.

A slot is a bookable time window owned by one instructor. Learners join the
slot through bookings; the slot keeps the set of currently booked learner ids
so that capacity can be checked with a single row lock.

InstructorDay is the per-(instructor, date) aggregate row. Every slot write
for that day bumps its version, which serializes overlap checks.
"""

from datetime import datetime
import logging
from typing import List

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..core.enums import SlotStatus
from ..database import Base

logger = logging.getLogger(__name__)


class ScheduleSlot(Base):
    """Bookable lesson window for one instructor."""

    __tablename__ = "schedule_slots"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    owner_id = Column(String(64), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    lesson_type = Column(String(20), nullable=False)
    capacity = Column(Integer, nullable=False, default=1)
    booked_student_ids = Column(
        JSONB().with_variant(JSON(), "sqlite"),
        nullable=False,
        default=list,
    )
    status = Column(String(20), nullable=False, default=SlotStatus.AVAILABLE.value, index=True)
    location = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_schedule_slots_owner_date", "owner_id", "date"),
        Index("ix_schedule_slots_date_start", "date", "start_time"),
        CheckConstraint("end_time > start_time", name="ck_schedule_slots_time_order"),
        CheckConstraint("capacity >= 1", name="ck_schedule_slots_capacity_positive"),
        CheckConstraint(
            "lesson_type != 'practical' OR capacity = 1",
            name="ck_schedule_slots_practical_single_seat",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduleSlot {self.id} owner={self.owner_id} {self.date} "
            f"{self.start_time}-{self.end_time} {self.lesson_type} {self.status}>"
        )

    @property
    def booked_ids(self) -> List[str]:
        return list(self.booked_student_ids or [])

    @property
    def booked_count(self) -> int:
        return len(self.booked_ids)

    @property
    def remaining_capacity(self) -> int:
        return max(int(self.capacity) - self.booked_count, 0)

    @property
    def is_full(self) -> bool:
        return self.booked_count >= int(self.capacity)

    @property
    def is_open(self) -> bool:
        """True while the slot may still take or release learners."""
        return self.status in (SlotStatus.AVAILABLE.value, SlotStatus.BOOKED.value)

    @property
    def duration_hours(self) -> float:
        start = datetime.combine(self.date, self.start_time)
        end = datetime.combine(self.date, self.end_time)
        return (end - start).total_seconds() / 3600

    def add_student(self, student_id: str) -> None:
        """Append a learner to the booked set; assignment marks the JSON column dirty."""
        ids = self.booked_ids
        if student_id not in ids:
            ids.append(student_id)
        self.booked_student_ids = ids
        self.refresh_status()

    def remove_student(self, student_id: str) -> None:
        self.booked_student_ids = [sid for sid in self.booked_ids if sid != student_id]
        self.refresh_status()

    def refresh_status(self) -> None:
        """Derive available/booked from the booked set while the slot is open."""
        if not self.is_open:
            return
        self.status = SlotStatus.BOOKED.value if self.is_full else SlotStatus.AVAILABLE.value

    def cancel(self, at: datetime) -> None:
        self.status = SlotStatus.CANCELLED.value
        self.cancelled_at = at
        logger.info(f"Schedule slot {self.id} cancelled")

    def complete(self, at: datetime) -> None:
        self.status = SlotStatus.COMPLETED.value
        self.completed_at = at
        logger.info(f"Schedule slot {self.id} marked as completed")


class InstructorDay(Base):
    """Per-instructor, per-date aggregate row guarding slot overlap checks."""

    __tablename__ = "instructor_days"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    owner_id = Column(String(64), nullable=False)
    date = Column(Date, nullable=False)
    last_changed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (UniqueConstraint("owner_id", "date", name="uq_instructor_days_owner_date"),)

    def touch(self, at: datetime) -> None:
        """Register a change so the version bump is written on flush."""
        self.last_changed_at = at
        # Same instant as the stored value still has to bump the version
        flag_modified(self, "last_changed_at")
