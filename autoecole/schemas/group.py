"""Group, membership, session, phase and rank schemas."""
import datetime as dt
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from ..core.constants import ERROR_END_BEFORE_START, MAX_REASON_LENGTH, MIN_PHASE_NOTES_LENGTH
from ..core.enums import ExamResult, GroupStatus, LearningPhase, LessonType, MembershipStatus
from .base import StandardizedModel, StrictModel, ensure_minute_resolution


class PhaseUpdate(StrictModel):
    requested_phase: LearningPhase
    notes: str = Field(..., max_length=1000)
    force: bool = False

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v: str) -> str:
        v = v.strip()
        if len(v) < MIN_PHASE_NOTES_LENGTH:
            raise ValueError(f"Notes must be at least {MIN_PHASE_NOTES_LENGTH} characters")
        return v


class RankUp(StrictModel):
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class SetRank(StrictModel):
    rank: int
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class GroupTransfer(StrictModel):
    new_group_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class ExamOutcome(StrictModel):
    """Exam result reported by the examination workflow."""

    student_id: str
    group_id: str
    result: ExamResult
    exam_date: dt.date


class MembershipResponse(StandardizedModel):
    id: str
    group_id: str
    student_id: str
    student_name: Optional[str] = None
    status: MembershipStatus
    phase: LearningPhase
    phase_label: str
    phase_updated_at: Optional[dt.datetime] = None
    rank: int
    consecutive_absences: int
    code_hours_completed: float


class RankInfo(StandardizedModel):
    student_id: str
    group_id: str
    rank: int
    rank_name: str
    description: Optional[str] = None
    max_rank: int
    is_max_rank: bool
    next_rank_name: Optional[str] = None
    unlocked_features: List[str] = Field(default_factory=list)


class MemberAdd(StrictModel):
    """Administrator enrolment of a learner."""

    student_id: str = Field(..., min_length=1)
    student_name: Optional[str] = Field(default=None, max_length=255)


class GroupJoin(StrictModel):
    student_name: Optional[str] = Field(default=None, max_length=255)


class MemberRemove(StrictModel):
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class GroupSessionCreate(StrictModel):
    """A class of the group; attendance is marked against it."""

    date: dt.date
    start_time: dt.time
    end_time: dt.time
    lesson_type: LessonType = LessonType.THEORY
    topic: str = Field(..., min_length=3, max_length=200)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_minutes(cls, v: dt.time) -> dt.time:
        return ensure_minute_resolution(v)

    @model_validator(mode="after")
    def validate_time_order(self) -> "GroupSessionCreate":
        if self.end_time <= self.start_time:
            raise ValueError(ERROR_END_BEFORE_START)
        return self


class GroupSessionResponse(StandardizedModel):
    id: str
    group_id: str
    teacher_id: str
    session_date: dt.date
    start_time: dt.time
    end_time: dt.time
    lesson_type: LessonType
    topic: Optional[str] = None


class GroupSummary(StandardizedModel):
    id: str
    name: str
    teacher_id: str
    status: GroupStatus
    max_students: int
    current_students: int
