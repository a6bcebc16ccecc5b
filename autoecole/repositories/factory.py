# autoecole/repositories/factory.py
"""
Repository Factory

Central place for creating repository instances so services never construct
data access objects ad hoc.
"""

from sqlalchemy.orm import Session

from .attendance_repository import AttendanceRepository
from .booking_repository import BookingRepository
from .event_outbox_repository import EventOutboxRepository
from .group_repository import GroupRepository
from .schedule_repository import ScheduleRepository


class RepositoryFactory:
    """Factory for creating repository instances."""

    @staticmethod
    def create_schedule_repository(db: Session) -> ScheduleRepository:
        return ScheduleRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> BookingRepository:
        return BookingRepository(db)

    @staticmethod
    def create_group_repository(db: Session) -> GroupRepository:
        return GroupRepository(db)

    @staticmethod
    def create_attendance_repository(db: Session) -> AttendanceRepository:
        return AttendanceRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> EventOutboxRepository:
        return EventOutboxRepository(db)
