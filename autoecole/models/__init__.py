"""SQLAlchemy models. Importing this package registers every mapper on Base.metadata."""

from .attendance import AttendanceRecord, AttendanceSheet
from .booking import Booking
from .event_outbox import EventOutbox, EventOutboxStatus
from .group import Group, GroupMembership, GroupSession
from .schedule import InstructorDay, ScheduleSlot
from .student_progress import StudentProgress

__all__ = [
    "AttendanceRecord",
    "AttendanceSheet",
    "Booking",
    "EventOutbox",
    "EventOutboxStatus",
    "Group",
    "GroupMembership",
    "GroupSession",
    "InstructorDay",
    "ScheduleSlot",
    "StudentProgress",
]
