"""Service layer: one service per scheduling component."""

from .attendance_service import AttendanceService
from .base import BaseService
from .booking_service import BookingService
from .phase_service import PhaseService
from .group_service import GroupService
from .rank_service import RankService
from .schedule_service import ScheduleService

__all__ = [
    "AttendanceService",
    "BaseService",
    "BookingService",
    "GroupService",
    "PhaseService",
    "RankService",
    "ScheduleService",
]
