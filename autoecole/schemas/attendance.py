"""Attendance schemas."""
import datetime as dt
from typing import List, Optional

from pydantic import Field, field_validator

from ..core.enums import LearningPhase, SessionAttendanceState
from .base import StandardizedModel, StrictModel


class AttendanceMark(StrictModel):
    present_student_ids: List[str] = Field(default_factory=list)

    @field_validator("present_student_ids")
    @classmethod
    def dedupe(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))


class AttendanceResult(StandardizedModel):
    session_id: str
    group_id: str
    session_date: dt.date
    present_count: int
    absent_count: int
    absent_student_ids: List[str] = Field(default_factory=list)
    escalated_student_ids: List[str] = Field(default_factory=list)
    marked_at: dt.datetime


class TodaySession(StandardizedModel):
    session_id: str
    group_id: str
    start_time: dt.time
    end_time: dt.time
    topic: Optional[str] = None
    state: SessionAttendanceState


class AbsentStudent(StandardizedModel):
    student_id: str
    student_name: Optional[str] = None


class AttendanceHistoryDay(StandardizedModel):
    date: dt.date
    present_count: int
    absent_count: int
    absent_students: List[AbsentStudent] = Field(default_factory=list)


class StudentNeedingContact(StandardizedModel):
    student_id: str
    student_name: Optional[str] = None
    group_id: str
    consecutive_absences: int
    phase: LearningPhase
