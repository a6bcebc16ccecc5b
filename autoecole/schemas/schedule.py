"""Schedule slot schemas."""
import datetime as dt
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from ..core.constants import ERROR_END_BEFORE_START, MAX_NOTES_LENGTH
from ..core.enums import LessonType, SlotStatus
from .base import StandardizedModel, StrictModel, ensure_minute_resolution


class SlotCreate(StrictModel):
    """
    Payload for a new slot.

    owner_id defaults to the calling instructor; administrators may create
    slots for any instructor. capacity falls back to the lesson type default.
    """

    owner_id: Optional[str] = None
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    lesson_type: LessonType
    capacity: Optional[int] = Field(default=None, ge=1, le=50)
    location: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_minutes(cls, v: dt.time) -> dt.time:
        return ensure_minute_resolution(v)

    @model_validator(mode="after")
    def validate_time_order(self) -> "SlotCreate":
        if self.end_time <= self.start_time:
            raise ValueError(ERROR_END_BEFORE_START)
        return self


class SlotUpdate(StrictModel):
    """Partial update of a slot; only provided fields change."""

    date: Optional[dt.date] = None
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    lesson_type: Optional[LessonType] = None
    capacity: Optional[int] = Field(default=None, ge=1, le=50)
    location: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_minutes(cls, v: Optional[dt.time]) -> Optional[dt.time]:
        return ensure_minute_resolution(v)


class SlotFilters(StrictModel):
    lesson_type: Optional[LessonType] = None
    owner_id: Optional[str] = None
    from_date: Optional[dt.date] = None
    to_date: Optional[dt.date] = None


class SlotResponse(StandardizedModel):
    id: str
    owner_id: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    lesson_type: LessonType
    capacity: int
    booked_student_ids: List[str] = Field(default_factory=list)
    booked_count: int
    remaining_capacity: int
    status: SlotStatus
    location: Optional[str] = None
    notes: Optional[str] = None


class SlotDeletionResponse(StandardizedModel):
    slot_id: str
    cancelled_booking_ids: List[str] = Field(default_factory=list)
