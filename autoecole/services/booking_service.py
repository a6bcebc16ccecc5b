# autoecole/services/booking_service.py
"""
Booking Service

Arbitrates learner bookings against schedule slots:
- Capacity, duplicate and freeze-window checks on create and cancel
- Phase eligibility gate for learners still in the theory phase
- Lesson completion with running driving-hour totals
- Booking history and progress summaries
"""

from collections import Counter
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.constants import (
    ERROR_ALREADY_BOOKED,
    ERROR_BOOKING_ALREADY_CANCELLED,
    ERROR_BOOKING_ALREADY_COMPLETED,
    ERROR_COMPLETE_BEFORE_END,
    ERROR_COMPLETE_CANCELLED,
    ERROR_SLOT_FULL,
    ERROR_SLOT_NOT_AVAILABLE,
    TOP_SKILLS_LIMIT,
)
from ..core.enums import BookingStatus
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    TimingException,
    ValidationException,
)
from ..core.principal import Principal
from ..events.scheduling_events import BookingCancelled, BookingCompleted, BookingCreated
from ..models.booking import Booking
from ..models.schedule import ScheduleSlot
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import (
    BookingCancel,
    BookingComplete,
    BookingCreate,
    SkillCount,
    StudentProgressSummary,
)
from .base import BaseService
from .conflict_checker import ConflictChecker
from .phase_service import PhaseService

logger = logging.getLogger(__name__)


class BookingService(BaseService):
    """
    Service for the booking ledger.

    The slot row is the capacity aggregate: it is read with a row lock and
    carries an optimistic version, so two learners racing for the last seat
    cannot both commit.
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        phase_service: Optional[PhaseService] = None,
    ):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.schedule_repository = RepositoryFactory.create_schedule_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(
            db, self.clock, self.schedule_repository
        )
        self.phase_service = phase_service or PhaseService(db, self.clock)

    def _get_booking(self, booking_id: str, for_update: bool = False) -> Booking:
        booking = self.repository.get_by_id(booking_id, for_update=for_update)
        if not booking:
            raise NotFoundException(
                "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
            )
        return booking

    def _get_slot_for_update(self, slot_id: str) -> ScheduleSlot:
        slot = self.schedule_repository.get_by_id(slot_id, for_update=True)
        if not slot:
            raise NotFoundException("Schedule not found", code="SLOT_NOT_FOUND", details={"slot_id": slot_id})
        return slot

    @BaseService.measure_operation("create_booking")
    def create_booking(self, actor: Principal, data: BookingCreate) -> Booking:
        """
        Book a seat in a slot for the calling learner.

        Checks run in order: slot availability, freeze window, duplicate
        booking, phase eligibility.

        Raises:
            NotFoundException: Slot does not exist
            ConflictException: Slot full or closed, or learner already booked
            FreezeWindowException: Lesson starts in less than two hours
            ValidationException: Learner is still in the theory phase
        """
        if not actor.is_student:
            raise ForbiddenException("Only students can book lessons", code="STUDENT_REQUIRED")
        student_id = actor.user_id

        with self.transaction():
            # 1. Slot exists and still has a free seat
            slot = self._get_slot_for_update(data.schedule_id)
            if not slot.is_open:
                raise ConflictException(
                    ERROR_SLOT_NOT_AVAILABLE,
                    code="SLOT_NOT_AVAILABLE",
                    details={"slot_id": slot.id, "status": slot.status},
                )
            if slot.is_full:
                raise ConflictException(ERROR_SLOT_FULL, code="SLOT_FULL", details={"slot_id": slot.id})

            # 2. Freeze window
            self.conflict_checker.check_freeze_window(slot.date, slot.start_time)

            # 3. Duplicate booking
            if student_id in slot.booked_ids or self.repository.find_confirmed(slot.id, student_id):
                raise ConflictException(
                    ERROR_ALREADY_BOOKED, code="DUPLICATE_BOOKING", details={"slot_id": slot.id}
                )

            # 4. Phase eligibility
            self.phase_service.check_booking_eligibility(student_id)

            # 5. Take the seat
            now = self.clock.now()
            booking = self.repository.create(
                schedule_id=slot.id,
                student_id=student_id,
                instructor_id=slot.owner_id,
                lesson_type=slot.lesson_type,
                lesson_date=slot.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                status=BookingStatus.CONFIRMED.value,
                booked_at=now,
            )
            slot.add_student(student_id)
            self.event_publisher.publish(
                BookingCreated(
                    booking_id=booking.id,
                    schedule_id=slot.id,
                    student_id=student_id,
                    instructor_id=slot.owner_id,
                    lesson_type=slot.lesson_type,
                    lesson_date=slot.date,
                    start_time=slot.start_time,
                    created_at=now,
                )
            )

        prometheus_metrics.record_booking_transition("created", booking.lesson_type)
        self.log_operation("create_booking", booking_id=booking.id, slot_id=slot.id, student_id=student_id)
        return booking

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self, actor: Principal, booking_id: str, data: Optional[BookingCancel] = None
    ) -> Booking:
        """
        Cancel the caller's own booking and release the seat.

        The freeze window applies against the slot's start.
        """
        reason = data.reason if data else None
        booking = self._get_booking(booking_id)
        if booking.student_id != actor.user_id:
            raise ForbiddenException(
                "You can only cancel your own bookings",
                code="NOT_BOOKING_OWNER",
                details={"booking_id": booking_id},
            )

        with self.transaction():
            booking = self._get_booking(booking_id, for_update=True)
            if booking.status == BookingStatus.CANCELLED.value:
                raise ValidationException(ERROR_BOOKING_ALREADY_CANCELLED, code="BOOKING_ALREADY_CANCELLED")
            if booking.status == BookingStatus.COMPLETED.value:
                raise ValidationException("Cannot cancel a completed booking", code="BOOKING_COMPLETED")

            slot = self._get_slot_for_update(booking.schedule_id)
            self.conflict_checker.check_freeze_window(slot.date, slot.start_time)

            now = self.clock.now()
            booking.cancel(actor.user_id, now, reason)
            slot.remove_student(booking.student_id)
            self.event_publisher.publish(
                BookingCancelled(
                    booking_id=booking.id,
                    schedule_id=slot.id,
                    student_id=booking.student_id,
                    instructor_id=booking.instructor_id,
                    lesson_date=booking.lesson_date,
                    start_time=booking.start_time,
                    cancelled_by=actor.user_id,
                    cancelled_at=now,
                    reason=reason,
                )
            )

        prometheus_metrics.record_booking_transition("cancelled", booking.lesson_type)
        self.log_operation("cancel_booking", booking_id=booking.id, slot_id=booking.schedule_id)
        return booking

    @BaseService.measure_operation("complete_booking")
    def complete_booking(self, actor: Principal, booking_id: str, data: BookingComplete) -> Booking:
        """
        Record the outcome of a finished lesson.

        Only the slot's instructor or an administrator may complete it, and
        only after the lesson ended. Hours are added to the learner's running
        total.
        """
        booking = self._get_booking(booking_id)
        if not actor.is_admin and (not actor.is_instructor or booking.instructor_id != actor.user_id):
            raise ForbiddenException(
                "Only the assigned teacher can complete bookings",
                code="NOT_ASSIGNED_TEACHER",
                details={"booking_id": booking_id},
            )

        with self.transaction():
            booking = self._get_booking(booking_id, for_update=True)
            if booking.status == BookingStatus.COMPLETED.value:
                raise ValidationException(ERROR_BOOKING_ALREADY_COMPLETED, code="BOOKING_ALREADY_COMPLETED")
            if booking.status == BookingStatus.CANCELLED.value:
                raise ValidationException(ERROR_COMPLETE_CANCELLED, code="BOOKING_CANCELLED")

            now = self.clock.now()
            if now < self.clock.at(booking.lesson_date, booking.end_time):
                raise TimingException(
                    ERROR_COMPLETE_BEFORE_END,
                    code="LESSON_NOT_ENDED",
                    details={"ends_at": booking.end_time.strftime("%H:%M")},
                )

            booking.complete(
                completed_by_user_id=actor.user_id,
                at=now,
                hours_completed=data.hours_completed,
                performance_rating=data.performance_rating,
                skills_improved=data.skills_improved,
                teacher_notes=data.teacher_notes,
                ready_for_next_level=data.ready_for_next_level,
            )
            progress = self.repository.get_or_create_progress(booking.student_id)
            progress.record_lesson(data.hours_completed, data.performance_rating, now)
            ready = self._is_ready_for_exam(progress.total_hours, progress.average_rating)
            self.event_publisher.publish(
                BookingCompleted(
                    booking_id=booking.id,
                    student_id=booking.student_id,
                    instructor_id=booking.instructor_id,
                    hours_completed=data.hours_completed,
                    performance_rating=data.performance_rating,
                    total_hours=round(progress.total_hours, 1),
                    ready_for_exam=ready,
                    completed_at=now,
                )
            )

        prometheus_metrics.record_booking_transition("completed", booking.lesson_type)
        self.log_operation(
            "complete_booking",
            booking_id=booking.id,
            hours=data.hours_completed,
            rating=data.performance_rating,
        )
        return booking

    # Slot cascades, called inside the schedule service's transaction

    def cancel_confirmed_for_slot(self, slot: ScheduleSlot, actor: Principal, reason: str) -> List[str]:
        """Cancel every confirmed booking of a slot that is being removed."""
        now = self.clock.now()
        cancelled: List[str] = []
        for booking in self.repository.list_confirmed_for_slot(slot.id):
            booking.cancel(actor.user_id, now, reason)
            slot.remove_student(booking.student_id)
            self.event_publisher.publish(
                BookingCancelled(
                    booking_id=booking.id,
                    schedule_id=slot.id,
                    student_id=booking.student_id,
                    instructor_id=booking.instructor_id,
                    lesson_date=booking.lesson_date,
                    start_time=booking.start_time,
                    cancelled_by=actor.user_id,
                    cancelled_at=now,
                    reason=reason,
                    by_administrator=True,
                )
            )
            prometheus_metrics.record_booking_transition("cancelled", booking.lesson_type)
            cancelled.append(booking.id)
        return cancelled

    def reschedule_confirmed_for_slot(self, slot: ScheduleSlot) -> None:
        """Copy new slot date and times onto its confirmed bookings."""
        for booking in self.repository.list_confirmed_for_slot(slot.id):
            booking.lesson_date = slot.date
            booking.start_time = slot.start_time
            booking.end_time = slot.end_time
            booking.lesson_type = slot.lesson_type

    # Reads

    def _is_ready_for_exam(self, total_hours: float, average_rating: float) -> bool:
        return (
            total_hours >= settings.min_hours_for_exam
            and average_rating >= settings.min_rating_for_exam
        )

    @staticmethod
    def _check_self_or_staff(actor: Principal, student_id: str, allow_instructor: bool) -> None:
        if actor.is_admin or actor.user_id == student_id:
            return
        if allow_instructor and actor.is_instructor:
            return
        raise ForbiddenException("You can only view your own bookings", code="NOT_BOOKING_OWNER")

    @BaseService.measure_operation("list_student_bookings")
    def list_student_bookings(self, actor: Principal, student_id: str) -> List[Booking]:
        """Booking history of a learner, most recent lesson first."""
        self._check_self_or_staff(actor, student_id, allow_instructor=False)
        return self.repository.list_for_student(student_id)

    @BaseService.measure_operation("list_ready_for_completion")
    def list_bookings_ready_for_completion(self, actor: Principal) -> List[Booking]:
        """Confirmed bookings whose lesson has ended; instructors see their own."""
        if not (actor.is_instructor or actor.is_admin):
            raise ForbiddenException("Only instructors can complete bookings", code="INSTRUCTOR_REQUIRED")
        now = self.clock.now()
        instructor_id = None if actor.is_admin else actor.user_id
        return self.repository.list_ready_for_completion(
            instructor_id, now.date(), now.time().replace(tzinfo=None)
        )

    @BaseService.measure_operation("get_student_progress")
    def get_student_progress(self, actor: Principal, student_id: str) -> StudentProgressSummary:
        """
        Summarize a learner's completed lessons.

        Averages are rounded to one decimal; the five most frequent improved
        skills are reported.
        """
        self._check_self_or_staff(actor, student_id, allow_instructor=True)
        completed = self.repository.list_for_student(student_id, status=BookingStatus.COMPLETED)

        total_hours = sum(b.hours_completed or 0 for b in completed)
        ratings = [b.performance_rating for b in completed if b.performance_rating]
        average_rating = sum(ratings) / len(ratings) if ratings else 0.0

        skill_counts: Counter = Counter()
        for booking in completed:
            skill_counts.update(booking.skills_improved or [])
        by_type: Counter = Counter(b.lesson_type for b in completed)

        return StudentProgressSummary(
            student_id=student_id,
            total_hours=round(total_hours, 1),
            total_lessons=len(completed),
            average_rating=round(average_rating, 1),
            top_skills=[
                SkillCount(skill=skill, count=count)
                for skill, count in skill_counts.most_common(TOP_SKILLS_LIMIT)
            ],
            ready_for_exam=self._is_ready_for_exam(total_hours, average_rating),
            required_hours=settings.min_hours_for_exam,
            required_rating=settings.min_rating_for_exam,
            last_lesson_at=completed[0].completed_at if completed else None,
            bookings_by_type=dict(by_type),
        )
