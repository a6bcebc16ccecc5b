"""Booking schemas."""
import datetime as dt
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from ..core.constants import (
    MAX_LESSON_HOURS,
    MAX_NOTES_LENGTH,
    MAX_PERFORMANCE_RATING,
    MAX_REASON_LENGTH,
    MIN_PERFORMANCE_RATING,
)
from ..core.enums import BookingStatus, LessonType
from .base import StandardizedModel, StrictModel


class BookingCreate(StrictModel):
    schedule_id: str = Field(..., min_length=1)


class BookingCancel(StrictModel):
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class BookingComplete(StrictModel):
    """Instructor's evaluation of a finished lesson."""

    hours_completed: float = Field(..., gt=0, le=MAX_LESSON_HOURS)
    performance_rating: int = Field(..., ge=MIN_PERFORMANCE_RATING, le=MAX_PERFORMANCE_RATING)
    skills_improved: List[str] = Field(default_factory=list)
    teacher_notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)
    ready_for_next_level: bool = False

    @field_validator("skills_improved")
    @classmethod
    def strip_skills(cls, v: List[str]) -> List[str]:
        return [skill.strip() for skill in v if skill and skill.strip()]


class BookingResponse(StandardizedModel):
    id: str
    schedule_id: str
    student_id: str
    instructor_id: str
    lesson_type: LessonType
    lesson_date: dt.date
    start_time: dt.time
    end_time: dt.time
    status: BookingStatus
    booked_at: dt.datetime
    cancelled_at: Optional[dt.datetime] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[dt.datetime] = None
    hours_completed: Optional[float] = None
    performance_rating: Optional[int] = None
    skills_improved: Optional[List[str]] = None
    teacher_notes: Optional[str] = None
    ready_for_next_level: bool = False


class SkillCount(StandardizedModel):
    skill: str
    count: int


class StudentProgressSummary(StandardizedModel):
    """Totals over a learner's completed individual lessons."""

    student_id: str
    total_hours: float
    total_lessons: int
    average_rating: float
    top_skills: List[SkillCount] = Field(default_factory=list)
    ready_for_exam: bool
    required_hours: float
    required_rating: float
    last_lesson_at: Optional[dt.datetime] = None
    bookings_by_type: Dict[str, int] = Field(default_factory=dict)
