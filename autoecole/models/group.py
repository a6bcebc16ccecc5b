# autoecole/models/group.py
"""
Learner cohorts.

A Group is led by one teacher and holds group sessions (theory classes whose
attendance is tracked). GroupMembership carries a learner's progression inside
the group: learning phase, rank and consecutive absences.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import (
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

from ..core.constants import DEFAULT_RANKS
from ..core.enums import GroupStatus, LearningPhase, LessonType, MembershipStatus
from ..database import Base

logger = logging.getLogger(__name__)


class Group(Base):
    """A teacher-led cohort of learners."""

    __tablename__ = "groups"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)
    teacher_id = Column(String(64), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=GroupStatus.ACTIVE.value)
    max_students = Column(Integer, nullable=False, default=20)
    current_students = Column(Integer, nullable=False, default=0)
    ranks = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("current_students >= 0", name="ck_groups_current_students_non_negative"),
    )

    memberships = relationship("GroupMembership", back_populates="group")
    sessions = relationship("GroupSession", back_populates="group")

    @property
    def rank_definitions(self) -> List[Dict[str, Any]]:
        definitions = self.ranks or DEFAULT_RANKS
        return sorted(definitions, key=lambda r: int(r["level"]))

    @property
    def min_rank(self) -> int:
        return int(self.rank_definitions[0]["level"])

    @property
    def max_rank(self) -> int:
        return int(self.rank_definitions[-1]["level"])

    def rank_definition(self, level: int) -> Optional[Dict[str, Any]]:
        for definition in self.rank_definitions:
            if int(definition["level"]) == level:
                return definition
        return None

    @property
    def is_active(self) -> bool:
        return self.status == GroupStatus.ACTIVE.value

    @property
    def has_capacity(self) -> bool:
        return int(self.current_students) < int(self.max_students)


class GroupSession(Base):
    """A scheduled class of a group, the unit attendance is marked against."""

    __tablename__ = "group_sessions"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    group_id = Column(String(26), ForeignKey("groups.id"), nullable=False, index=True)
    teacher_id = Column(String(64), nullable=False)
    session_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    lesson_type = Column(String(20), nullable=False, default=LessonType.THEORY.value)
    topic = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    group = relationship("Group", back_populates="sessions")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_group_sessions_time_order"),
    )

    @property
    def duration_hours(self) -> float:
        start = datetime.combine(self.session_date, self.start_time)
        end = datetime.combine(self.session_date, self.end_time)
        return (end - start).total_seconds() / 3600


class GroupMembership(Base):
    """A learner's enrolment in a group, with progression state."""

    __tablename__ = "group_memberships"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    group_id = Column(String(26), ForeignKey("groups.id"), nullable=False, index=True)
    student_id = Column(String(64), nullable=False, index=True)
    student_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=MembershipStatus.ACTIVE.value)

    # Written by the phase state machine only
    phase = Column(String(32), nullable=False, default=LearningPhase.CODE.value)
    phase_updated_at = Column(DateTime(timezone=True), nullable=True)
    phase_updated_by = Column(String(64), nullable=True)
    phase_notes = Column(Text, nullable=True)

    # Written by rank progression only
    rank = Column(Integer, nullable=False, default=1)
    rank_updated_at = Column(DateTime(timezone=True), nullable=True)
    rank_updated_by = Column(String(64), nullable=True)
    rank_reason = Column(Text, nullable=True)

    # Written by the attendance tracker only
    consecutive_absences = Column(Integer, nullable=False, default=0)
    code_hours_completed = Column(Float, nullable=False, default=0.0)
    last_attendance_at = Column(DateTime(timezone=True), nullable=True)

    joined_at = Column(DateTime(timezone=True), nullable=True)
    left_at = Column(DateTime(timezone=True), nullable=True)
    left_reason = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    group = relationship("Group", back_populates="memberships")

    __table_args__ = (
        # A learner belongs to at most one group at a time
        Index(
            "uq_group_memberships_active_student",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        CheckConstraint(
            "consecutive_absences >= 0", name="ck_group_memberships_absences_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<GroupMembership {self.id} group={self.group_id} student={self.student_id} "
            f"phase={self.phase} rank={self.rank}>"
        )

    @property
    def phase_enum(self) -> LearningPhase:
        return LearningPhase(self.phase)

    @property
    def phase_label(self) -> str:
        return self.phase_enum.label

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.ACTIVE.value

    def close(self, status: MembershipStatus, at: datetime, reason: Optional[str] = None) -> None:
        self.status = status.value
        self.left_at = at
        self.left_reason = reason
        logger.info(f"Membership {self.id} closed with status {status.value}")
