# autoecole/services/schedule_service.py
"""
Schedule Service

Owns instructor lesson slots:
- Slot creation with per-instructor, per-day overlap protection
- Slot edits and deletion, blocked while learners hold seats unless an
  administrator forces the change
- Finalization of finished slots
- Availability search and instructor listings
"""

from datetime import date, datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.constants import ERROR_SCHEDULE_BUSY, ERROR_SLOT_HAS_BOOKINGS, ERROR_SLOT_IN_PAST
from ..core.enums import LessonType, SlotStatus
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    SlotOverlapException,
    TimingException,
    ValidationException,
)
from ..core.principal import Principal
from ..core.schedule_lock import schedule_lock
from ..events.scheduling_events import SlotCancelled
from ..models.schedule import ScheduleSlot
from ..repositories.factory import RepositoryFactory
from ..schemas.schedule import SlotCreate, SlotFilters, SlotUpdate
from .base import BaseService
from .booking_service import BookingService
from .conflict_checker import ConflictChecker

logger = logging.getLogger(__name__)


def default_capacity(lesson_type: LessonType) -> int:
    if lesson_type == LessonType.PRACTICAL:
        return settings.default_practical_capacity
    if lesson_type == LessonType.THEORY:
        return settings.default_theory_capacity
    return settings.default_exam_prep_capacity


def _format_range(start, end) -> str:
    return f"{start.strftime('%H:%M')}-{end.strftime('%H:%M')}"


class ScheduleService(BaseService):
    """
    Service for instructor schedule slots.

    All same-day writes of one instructor go through the InstructorDay row
    (version-checked, row-locked) so two concurrent creations cannot both
    pass the overlap scan.
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        booking_service: Optional[BookingService] = None,
        conflict_checker: Optional[ConflictChecker] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_schedule_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db, self.clock, self.repository)
        self.booking_service = booking_service or BookingService(
            db, self.clock, conflict_checker=self.conflict_checker
        )

    # Helpers

    def _get_slot(self, slot_id: str, for_update: bool = False) -> ScheduleSlot:
        slot = self.repository.get_by_id(slot_id, for_update=for_update)
        if not slot:
            raise NotFoundException("Schedule not found", code="SLOT_NOT_FOUND", details={"slot_id": slot_id})
        return slot

    @staticmethod
    def _check_owner_or_admin(actor: Principal, slot: ScheduleSlot) -> None:
        if actor.is_admin:
            return
        if not actor.is_instructor or slot.owner_id != actor.user_id:
            raise ForbiddenException(
                "You can only manage your own schedules",
                code="NOT_SLOT_OWNER",
                details={"slot_id": slot.id},
            )

    def _check_not_in_past(self, day: date, start) -> None:
        now = self.clock.now()
        if day < now.date() or self.clock.at(day, start) < now:
            raise ValidationException(ERROR_SLOT_IN_PAST, code="SLOT_IN_PAST", details={"date": day.isoformat()})

    def _resolve_capacity(self, lesson_type: LessonType, requested: Optional[int]) -> int:
        if lesson_type == LessonType.PRACTICAL:
            return 1
        return requested or default_capacity(lesson_type)

    def _ensure_no_overlap(
        self, owner_id: str, day: date, start, end, exclude_id: Optional[str] = None
    ) -> None:
        conflict = self.conflict_checker.find_overlap(owner_id, day, start, end, exclude_id)
        if conflict:
            raise SlotOverlapException(
                specific_date=day.isoformat(),
                new_range=_format_range(start, end),
                conflicting_range=_format_range(conflict.start_time, conflict.end_time),
                conflicting_id=conflict.id,
            )

    # Mutations

    @BaseService.measure_operation("create_slot")
    def create_slot(self, actor: Principal, data: SlotCreate) -> ScheduleSlot:
        """
        Create a slot for an instructor.

        Practical slots always get a single seat; other types fall back to the
        configured default capacity.

        Raises:
            ForbiddenException: Caller is not an instructor or admin
            ValidationException: Slot lies in the past
            SlotOverlapException: Slot intersects another slot that day
        """
        if not (actor.is_instructor or actor.is_admin):
            raise ForbiddenException("Only instructors can create schedules", code="INSTRUCTOR_REQUIRED")
        owner_id = data.owner_id or actor.user_id
        if not actor.is_admin and owner_id != actor.user_id:
            raise ForbiddenException(
                "Instructors can only create their own schedules", code="NOT_SLOT_OWNER"
            )

        self.conflict_checker.validate_time_range(data.start_time, data.end_time)
        self._check_not_in_past(data.date, data.start_time)
        capacity = self._resolve_capacity(data.lesson_type, data.capacity)

        with schedule_lock(owner_id, data.date) as acquired:
            if not acquired:
                raise ConflictException(ERROR_SCHEDULE_BUSY, code="SCHEDULE_BUSY")
            with self.transaction():
                day = self.repository.lock_instructor_day(owner_id, data.date)
                self._ensure_no_overlap(owner_id, data.date, data.start_time, data.end_time)
                slot = self.repository.create(
                    owner_id=owner_id,
                    date=data.date,
                    start_time=data.start_time,
                    end_time=data.end_time,
                    lesson_type=data.lesson_type.value,
                    capacity=capacity,
                    booked_student_ids=[],
                    status=SlotStatus.AVAILABLE.value,
                    location=data.location,
                    notes=data.notes,
                    created_by=actor.user_id,
                )
                day.touch(self.clock.now())

        self.log_operation(
            "create_slot",
            slot_id=slot.id,
            owner_id=owner_id,
            date=data.date.isoformat(),
            lesson_type=data.lesson_type.value,
        )
        return slot

    @BaseService.measure_operation("update_slot")
    def update_slot(self, actor: Principal, slot_id: str, patch: SlotUpdate) -> ScheduleSlot:
        """
        Apply a partial update to a slot.

        Blocked while learners hold seats, except for administrators; even then
        capacity may not drop below the number of booked learners.
        """
        changes = patch.model_dump(exclude_unset=True)
        slot = self._get_slot(slot_id)
        self._check_owner_or_admin(actor, slot)

        new_date: date = changes.get("date") or slot.date
        with schedule_lock(slot.owner_id, new_date) as acquired:
            if not acquired:
                raise ConflictException(ERROR_SCHEDULE_BUSY, code="SCHEDULE_BUSY")
            with self.transaction():
                slot = self._get_slot(slot_id, for_update=True)
                if not slot.is_open:
                    raise ValidationException(
                        f"Cannot modify a {slot.status} schedule",
                        code="SLOT_CLOSED",
                        details={"status": slot.status},
                    )
                if slot.booked_count and not actor.is_admin:
                    raise ConflictException(
                        ERROR_SLOT_HAS_BOOKINGS,
                        code="SLOT_HAS_BOOKINGS",
                        details={"booked_count": slot.booked_count},
                    )

                lesson_type = LessonType(changes.get("lesson_type") or slot.lesson_type)
                start = changes.get("start_time") or slot.start_time
                end = changes.get("end_time") or slot.end_time
                self.conflict_checker.validate_time_range(start, end)

                if lesson_type == LessonType.PRACTICAL:
                    capacity = 1
                elif changes.get("capacity"):
                    capacity = changes["capacity"]
                elif slot.lesson_type == LessonType.PRACTICAL.value:
                    # Leaving the single-seat type picks up the new type's default
                    capacity = default_capacity(lesson_type)
                else:
                    capacity = slot.capacity
                if capacity < slot.booked_count:
                    raise ValidationException(
                        "Capacity cannot be lower than the number of booked students",
                        code="CAPACITY_BELOW_BOOKED",
                        details={"capacity": capacity, "booked_count": slot.booked_count},
                    )

                moved = new_date != slot.date or start != slot.start_time or end != slot.end_time
                if moved:
                    self._check_not_in_past(new_date, start)
                    days = {slot.date, new_date}
                    for day in sorted(days):
                        self.repository.lock_instructor_day(slot.owner_id, day).touch(self.clock.now())
                    self._ensure_no_overlap(slot.owner_id, new_date, start, end, exclude_id=slot.id)

                slot.date = new_date
                slot.start_time = start
                slot.end_time = end
                slot.lesson_type = lesson_type.value
                slot.capacity = capacity
                if "location" in changes:
                    slot.location = changes["location"]
                if "notes" in changes:
                    slot.notes = changes["notes"]
                slot.refresh_status()

                if moved and slot.booked_count:
                    self.booking_service.reschedule_confirmed_for_slot(slot)
                self.repository.flush()

        self.log_operation("update_slot", slot_id=slot.id, fields=sorted(changes))
        return slot

    @BaseService.measure_operation("delete_slot")
    def delete_slot(self, actor: Principal, slot_id: str) -> List[str]:
        """
        Cancel a slot.

        Slots are kept as cancelled rows so booking history stays intact.
        Administrators may remove a slot with booked learners: every confirmed
        booking is cancelled and the learners are notified.

        Returns:
            Ids of the bookings cancelled by the cascade
        """
        slot = self._get_slot(slot_id)
        self._check_owner_or_admin(actor, slot)

        with self.transaction():
            slot = self._get_slot(slot_id, for_update=True)
            if slot.status == SlotStatus.CANCELLED.value:
                raise ValidationException("Schedule is already cancelled", code="SLOT_ALREADY_CANCELLED")
            if slot.status == SlotStatus.COMPLETED.value:
                raise ValidationException("Cannot delete a completed schedule", code="SLOT_CLOSED")
            if slot.booked_count and not actor.is_admin:
                raise ConflictException(
                    ERROR_SLOT_HAS_BOOKINGS,
                    code="SLOT_HAS_BOOKINGS",
                    details={"booked_count": slot.booked_count},
                )

            now = self.clock.now()
            self.repository.lock_instructor_day(slot.owner_id, slot.date).touch(now)
            affected_students = slot.booked_ids
            cancelled_ids = self.booking_service.cancel_confirmed_for_slot(
                slot, actor, reason="Schedule cancelled by administrator"
            )
            slot.cancel(now)
            if affected_students:
                self.event_publisher.publish(
                    SlotCancelled(
                        slot_id=slot.id,
                        owner_id=slot.owner_id,
                        lesson_date=slot.date,
                        start_time=slot.start_time,
                        cancelled_by=actor.user_id,
                        cancelled_at=now,
                        affected_student_ids=affected_students,
                    )
                )

        self.log_operation(
            "delete_slot",
            slot_id=slot.id,
            cancelled_bookings=len(cancelled_ids),
            forced=bool(cancelled_ids),
        )
        return cancelled_ids

    @BaseService.measure_operation("finalize_slot")
    def finalize_slot(self, actor: Principal, slot_id: str) -> ScheduleSlot:
        """Mark an open slot completed once its end time has passed."""
        slot = self._get_slot(slot_id)
        self._check_owner_or_admin(actor, slot)

        with self.transaction():
            slot = self._get_slot(slot_id, for_update=True)
            if not slot.is_open:
                raise ValidationException(
                    f"Cannot finalize a {slot.status} schedule", code="SLOT_CLOSED"
                )
            now = self.clock.now()
            if now < self.clock.at(slot.date, slot.end_time):
                raise TimingException(
                    "Cannot finalize a schedule before it ends",
                    code="SLOT_NOT_ENDED",
                    details={"ends_at": slot.end_time.strftime("%H:%M")},
                )
            slot.complete(now)

        self.log_operation("finalize_slot", slot_id=slot.id)
        return slot

    # Reads

    @BaseService.measure_operation("list_available_slots")
    def list_available_slots(self, filters: Optional[SlotFilters] = None) -> List[ScheduleSlot]:
        """
        Slots a learner could book right now.

        Excludes slots inside the freeze window and slots without free seats;
        ordered by date then start time.
        """
        filters = filters or SlotFilters()
        earliest: datetime = self.conflict_checker.earliest_bookable()
        slots = self.repository.find_available(
            earliest=earliest,
            lesson_type=filters.lesson_type,
            owner_id=filters.owner_id,
            from_date=filters.from_date,
            to_date=filters.to_date,
        )
        return [slot for slot in slots if slot.remaining_capacity > 0]

    @BaseService.measure_operation("list_instructor_slots")
    def list_instructor_slots(
        self,
        actor: Principal,
        owner_id: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        include_cancelled: bool = False,
    ) -> List[ScheduleSlot]:
        """
        Slots of one instructor, or of every instructor for administrators.

        Instructors only see their own schedule.
        """
        if not actor.is_admin:
            if not actor.is_instructor or (owner_id and owner_id != actor.user_id):
                raise ForbiddenException("You can only view your own schedules", code="NOT_SLOT_OWNER")
            owner_id = actor.user_id
        return self.repository.list_for_owner(
            owner_id=owner_id,
            from_date=from_date,
            to_date=to_date,
            include_cancelled=include_cancelled,
        )
