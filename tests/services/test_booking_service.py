"""Tests for the booking ledger: seats, freeze window, phase gate and completion."""

from datetime import datetime, time, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm.exc import StaleDataError

from autoecole.core.config import settings
from autoecole.core.enums import BookingStatus, LearningPhase, LessonType, SlotStatus
from autoecole.core.exceptions import ConcurrentModificationException
from autoecole.models.booking import Booking
from autoecole.models.schedule import ScheduleSlot
from autoecole.models.student_progress import StudentProgress
from autoecole.services.base import BaseService

from ..factories import TODAY, TOMORROW, book, create_slot, make_group, make_member

LESSON_END = datetime.combine(TOMORROW, time(11, 0))


def _complete(engine, actor, booking_id, **overrides):
    payload = {"hours_completed": 1.0, "performance_rating": 4, "skills_improved": ["parking"]}
    payload.update(overrides)
    return engine.complete_booking(actor, booking_id, payload)


@pytest.mark.integration
class TestCreateBooking:
    def test_booking_takes_the_seat(self, engine, db, notifier, instructor, student):
        slot = create_slot(engine, instructor)

        booking = book(engine, student, slot.id)

        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.instructor_id == instructor.user_id
        assert booking.lesson_date == TOMORROW
        stored = db.get(ScheduleSlot, slot.id)
        assert stored.booked_ids == [student.user_id]
        assert stored.status == SlotStatus.BOOKED.value
        assert [n.title for n in notifier.for_recipient(instructor.user_id)] == ["New booking"]

    def test_full_slot_rejects_second_learner(self, engine, instructor, student, other_student):
        slot = create_slot(engine, instructor)
        book(engine, student, slot.id)

        result = engine.create_booking(other_student, {"schedule_id": slot.id})

        assert not result.success
        assert result.error.code == "SLOT_FULL"
        assert result.error.category == "conflict"

    def test_group_slot_fills_up_to_capacity(self, engine, db, instructor, student, other_student):
        slot = create_slot(engine, instructor, lesson_type=LessonType.THEORY, capacity=2)
        book(engine, student, slot.id)
        assert db.get(ScheduleSlot, slot.id).status == SlotStatus.AVAILABLE.value

        book(engine, other_student, slot.id)

        stored = db.get(ScheduleSlot, slot.id)
        assert stored.booked_count == 2
        assert stored.status == SlotStatus.BOOKED.value

    def test_duplicate_booking_rejected(self, engine, instructor, student):
        slot = create_slot(engine, instructor, lesson_type=LessonType.THEORY)
        book(engine, student, slot.id)

        result = engine.create_booking(student, {"schedule_id": slot.id})

        assert result.error.code == "DUPLICATE_BOOKING"

    def test_booking_exactly_two_hours_ahead_is_allowed(self, engine, instructor, student):
        slot = create_slot(engine, instructor, day=TODAY, start="10:00", end="11:00")
        book(engine, student, slot.id)

    def test_booking_inside_freeze_window_rejected(self, engine, instructor, student):
        slot = create_slot(engine, instructor, day=TODAY, start="09:59", end="11:00")

        result = engine.create_booking(student, {"schedule_id": slot.id})

        assert result.error.code == "FREEZE_WINDOW"
        assert result.error.category == "timing_error"
        assert result.error.details["required_hours"] == 2

    def test_theory_phase_learner_cannot_book(self, engine, db, instructor, student):
        group = make_group(db)
        make_member(db, group, student.user_id, phase=LearningPhase.CODE)
        slot = create_slot(engine, instructor)

        result = engine.create_booking(student, {"schedule_id": slot.id})

        assert result.error.code == "PHASE_GATE"
        assert result.error.category == "validation_error"
        assert result.error.details == {"current_phase": "Code"}

    def test_phase_gate_applies_to_group_lessons(self, engine, db, instructor, student):
        group = make_group(db)
        make_member(db, group, student.user_id, phase=LearningPhase.CODE)
        slot = create_slot(engine, instructor, lesson_type=LessonType.THEORY)

        result = engine.create_booking(student, {"schedule_id": slot.id})

        assert result.error.code == "PHASE_GATE"

    def test_learner_past_theory_can_book(self, engine, db, instructor, student):
        group = make_group(db)
        make_member(db, group, student.user_id, phase=LearningPhase.CRENEAU)
        slot = create_slot(engine, instructor)

        book(engine, student, slot.id)

    def test_only_students_book(self, engine, instructor, other_instructor):
        slot = create_slot(engine, instructor)
        result = engine.create_booking(other_instructor, {"schedule_id": slot.id})
        assert result.error.code == "STUDENT_REQUIRED"

    def test_cancelled_slot_not_bookable(self, engine, instructor, student):
        slot = create_slot(engine, instructor)
        engine.delete_slot(instructor, slot.id)

        result = engine.create_booking(student, {"schedule_id": slot.id})

        assert result.error.code == "SLOT_NOT_AVAILABLE"

    def test_unknown_slot(self, engine, student):
        result = engine.create_booking(student, {"schedule_id": "nope"})
        assert result.error.code == "SLOT_NOT_FOUND"
        assert result.error.category == "not_found"

    def test_missing_schedule_id_is_validation_failure(self, engine, student):
        result = engine.create_booking(student, {})
        assert result.error.code == "INVALID_REQUEST"
        assert result.error.details["errors"]


@pytest.mark.integration
class TestCancelBooking:
    def test_cancel_releases_the_seat(self, engine, db, notifier, instructor, student, other_student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)

        result = engine.cancel_booking(student, booking.id, {"reason": "Sick"})

        assert result.success
        assert result.data.status == BookingStatus.CANCELLED.value
        assert result.data.cancellation_reason == "Sick"
        stored = db.get(ScheduleSlot, slot.id)
        assert stored.booked_ids == []
        assert stored.status == SlotStatus.AVAILABLE.value
        assert "Booking cancelled" in [n.title for n in notifier.for_recipient(instructor.user_id)]

        # The freed seat can be taken again
        book(engine, other_student, slot.id)

    def test_only_owner_can_cancel(self, engine, instructor, student, other_student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)

        result = engine.cancel_booking(other_student, booking.id)

        assert result.error.code == "NOT_BOOKING_OWNER"

    def test_cancel_twice_rejected(self, engine, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        engine.cancel_booking(student, booking.id)

        result = engine.cancel_booking(student, booking.id)

        assert result.error.code == "BOOKING_ALREADY_CANCELLED"

    def test_cancel_inside_freeze_window_rejected(self, engine, clock, instructor, student):
        slot = create_slot(engine, instructor, day=TODAY, start="12:00", end="13:00")
        booking = book(engine, student, slot.id)
        clock.set(datetime.combine(TODAY, time(10, 30)))

        result = engine.cancel_booking(student, booking.id)

        assert result.error.code == "FREEZE_WINDOW"

    def test_rebooking_after_cancel(self, engine, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        engine.cancel_booking(student, booking.id)

        again = book(engine, student, slot.id)

        assert again.id != booking.id


@pytest.mark.integration
class TestCompleteBooking:
    def test_cannot_complete_before_lesson_end(self, engine, clock, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        clock.set(LESSON_END - timedelta(minutes=1))

        result = _complete(engine, instructor, booking.id)

        assert result.error.code == "LESSON_NOT_ENDED"
        assert result.error.category == "timing_error"

    def test_complete_records_outcome_and_hours(self, engine, db, clock, notifier, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        clock.set(LESSON_END)

        result = _complete(engine, instructor, booking.id, hours_completed=1.5, performance_rating=5)

        assert result.success
        assert result.data.status == BookingStatus.COMPLETED.value
        assert result.data.hours_completed == 1.5
        assert result.data.skills_improved == ["parking"]
        progress = db.get(StudentProgress, student.user_id)
        assert progress.total_hours == 1.5
        assert progress.completed_lessons == 1
        assert progress.average_rating == 5
        assert "Lesson completed" in [n.title for n in notifier.for_recipient(student.user_id)]

    def test_other_instructor_cannot_complete(self, engine, clock, instructor, other_instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        clock.set(LESSON_END)

        result = _complete(engine, other_instructor, booking.id)

        assert result.error.code == "NOT_ASSIGNED_TEACHER"

    def test_admin_can_complete_finished_lesson(self, engine, db, clock, admin, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        clock.set(LESSON_END)

        result = _complete(engine, admin, booking.id)

        assert result.success
        assert result.data.status == BookingStatus.COMPLETED.value
        assert db.get(Booking, booking.id).completed_by_id == admin.user_id
        assert db.get(StudentProgress, student.user_id).completed_lessons == 1

    def test_admin_cannot_complete_before_lesson_end(self, engine, admin, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)

        result = _complete(engine, admin, booking.id)

        assert result.error.code == "LESSON_NOT_ENDED"

    def test_complete_twice_rejected(self, engine, clock, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        clock.set(LESSON_END)
        _complete(engine, instructor, booking.id)

        result = _complete(engine, instructor, booking.id)

        assert result.error.code == "BOOKING_ALREADY_COMPLETED"

    def test_cancelled_booking_cannot_be_completed(self, engine, clock, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        engine.cancel_booking(student, booking.id)
        clock.set(LESSON_END)

        result = _complete(engine, instructor, booking.id)

        assert result.error.code == "BOOKING_CANCELLED"

    def test_rating_out_of_range_rejected(self, engine, clock, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        clock.set(LESSON_END)

        result = _complete(engine, instructor, booking.id, performance_rating=6)

        assert result.error.category == "validation_error"

    def test_completed_booking_cannot_be_cancelled(self, engine, clock, instructor, student):
        slot = create_slot(engine, instructor)
        booking = book(engine, student, slot.id)
        clock.set(LESSON_END)
        _complete(engine, instructor, booking.id)

        result = engine.cancel_booking(student, booking.id)

        assert result.error.code == "BOOKING_COMPLETED"


@pytest.mark.integration
class TestBookingReads:
    def test_progress_summary(self, engine, clock, monkeypatch, instructor, student):
        monkeypatch.setattr(settings, "min_hours_for_exam", 3)
        first = create_slot(engine, instructor, start="10:00", end="11:00")
        second = create_slot(engine, instructor, start="12:00", end="14:00")
        b1 = book(engine, student, first.id)
        b2 = book(engine, student, second.id)
        clock.set(datetime.combine(TOMORROW, time(15, 0)))
        _complete(engine, instructor, b1.id, hours_completed=1, performance_rating=4,
                  skills_improved=["parking", "roundabouts"])
        _complete(engine, instructor, b2.id, hours_completed=2, performance_rating=3,
                  skills_improved=["parking"])

        result = engine.get_student_progress(student, student.user_id)

        summary = result.data
        assert summary.total_hours == 3.0
        assert summary.total_lessons == 2
        assert summary.average_rating == 3.5
        assert summary.top_skills[0].skill == "parking"
        assert summary.top_skills[0].count == 2
        assert summary.ready_for_exam is True
        assert summary.bookings_by_type == {"practical": 2}

    def test_progress_of_someone_else_forbidden(self, engine, student):
        result = engine.get_student_progress(student, "student-2")
        assert result.error.category == "authorization_error"

    def test_instructor_may_view_progress(self, engine, instructor, student):
        result = engine.get_student_progress(instructor, student.user_id)
        assert result.success
        assert result.data.total_lessons == 0
        assert result.data.average_rating == 0.0

    def test_student_bookings_newest_first(self, engine, instructor, student):
        early = create_slot(engine, instructor, start="09:00", end="10:00")
        late = create_slot(engine, instructor, day=TOMORROW + timedelta(days=2))
        book(engine, student, early.id)
        book(engine, student, late.id)

        result = engine.list_student_bookings(student, student.user_id)

        assert [b.schedule_id for b in result.data] == [late.id, early.id]

    def test_ready_for_completion_lists_ended_lessons(self, engine, clock, instructor, other_instructor, student):
        mine = create_slot(engine, instructor, start="09:00", end="10:00")
        later = create_slot(engine, instructor, start="16:00", end="17:00")
        theirs = create_slot(engine, other_instructor, start="09:00", end="10:00")
        for slot in (mine, later, theirs):
            book(engine, student, slot.id)
        clock.set(datetime.combine(TOMORROW, time(12, 0)))

        result = engine.list_bookings_ready_for_completion(instructor)

        assert [b.schedule_id for b in result.data] == [mine.id]

    def test_students_cannot_list_ready_for_completion(self, engine, student):
        result = engine.list_bookings_ready_for_completion(student)
        assert result.error.code == "INSTRUCTOR_REQUIRED"


@pytest.mark.unit
class TestTransactionErrors:
    def test_stale_version_becomes_concurrent_modification(self):
        db = MagicMock()
        db.commit.side_effect = StaleDataError("version mismatch")
        service = BaseService(db)

        with pytest.raises(ConcurrentModificationException):
            with service.transaction():
                pass

        db.rollback.assert_called_once()

    def test_domain_errors_roll_back_and_propagate(self):
        db = MagicMock()
        service = BaseService(db)

        with pytest.raises(ValueError):
            with service.transaction():
                raise ValueError("boom")

        db.rollback.assert_called_once()
        db.commit.assert_not_called()
