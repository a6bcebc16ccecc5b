"""Data access layer. Repositories flush but never commit; services own transactions."""

from .attendance_repository import AttendanceRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .group_repository import GroupRepository
from .schedule_repository import ScheduleRepository

__all__ = [
    "AttendanceRepository",
    "BaseRepository",
    "BookingRepository",
    "EventOutboxRepository",
    "GroupRepository",
    "RepositoryFactory",
    "ScheduleRepository",
]
