# autoecole/engine.py
"""
Scheduling engine facade.

The single public boundary of the package. Every operation runs as one
transaction in the owning service and comes back as an OperationResult:
business-rule rejections become structured failures, while infrastructure
errors propagate to the caller. Outbox events are delivered after a
successful operation on a best-effort basis.
"""

import datetime as dt
import logging
from typing import Any, Callable, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from .core.clock import Clock, SystemClock
from .core.config import settings
from .core.exceptions import BUSINESS_RULE_ERRORS, ValidationException
from .core.principal import Principal
from .events.dispatcher import OutboxDispatcher
from .notifications.notifier import LoggingNotifier, Notifier
from .schemas.attendance import (
    AttendanceHistoryDay,
    AttendanceMark,
    AttendanceResult,
    StudentNeedingContact,
    TodaySession,
)
from .schemas.booking import (
    BookingCancel,
    BookingComplete,
    BookingCreate,
    BookingResponse,
    StudentProgressSummary,
)
from .schemas.group import (
    ExamOutcome,
    GroupJoin,
    GroupSessionCreate,
    GroupSessionResponse,
    GroupTransfer,
    MemberAdd,
    MemberRemove,
    MembershipResponse,
    PhaseUpdate,
    RankInfo,
    RankUp,
    SetRank,
)
from .schemas.result import OperationResult
from .schemas.schedule import (
    SlotCreate,
    SlotDeletionResponse,
    SlotFilters,
    SlotResponse,
    SlotUpdate,
)
from .services.attendance_service import AttendanceService
from .services.booking_service import BookingService
from .services.conflict_checker import ConflictChecker
from .services.group_service import GroupService
from .services.phase_service import PhaseService
from .services.rank_service import RankService
from .services.schedule_service import ScheduleService

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

Payload = Union[M, dict, None]


def _coerce(model: Type[M], payload: Any) -> M:
    """Validate a request payload, reporting schema errors as a ValidationException."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload or {})
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in exc.errors()
        ]
        first = exc.errors()[0]["msg"] if exc.errors() else "Invalid request"
        raise ValidationException(
            first.replace("Value error, ", ""),
            code="INVALID_REQUEST",
            details={"errors": problems},
        ) from exc


class SchedulingEngine:
    """Structured-result facade over the scheduling services."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.notifier = notifier or LoggingNotifier()

        self.phases = PhaseService(db, self.clock)
        self.conflicts = ConflictChecker(db, self.clock)
        self.bookings = BookingService(
            db, self.clock, conflict_checker=self.conflicts, phase_service=self.phases
        )
        self.schedules = ScheduleService(
            db, self.clock, booking_service=self.bookings, conflict_checker=self.conflicts
        )
        self.attendance = AttendanceService(db, self.clock)
        self.groups = GroupService(db, self.clock)
        self.ranks = RankService(db, self.clock, phase_service=self.phases)
        self.dispatcher = OutboxDispatcher(db, self.notifier)

    def _run(self, operation: str, fn: Callable[[], T]) -> OperationResult[T]:
        try:
            data = fn()
        except BUSINESS_RULE_ERRORS as exc:
            self.db.rollback()
            logger.info(
                "%s rejected: %s",
                operation,
                exc.message,
                extra={"operation": operation, "code": exc.code, "category": exc.category},
            )
            return OperationResult.fail(exc)
        except Exception:
            logger.exception("%s failed", operation)
            raise
        if settings.dispatch_events_inline:
            self.dispatch_events()
        return OperationResult.ok(data)

    def dispatch_events(self) -> None:
        """Deliver pending outbox events; delivery problems never reach the caller."""
        try:
            self.dispatcher.dispatch_pending()
        except Exception as exc:
            logger.error("Outbox dispatch failed: %s", exc, exc_info=True)
            self.db.rollback()

    # Schedule inventory

    def create_slot(self, actor: Principal, payload: Payload[SlotCreate]) -> OperationResult[SlotResponse]:
        return self._run(
            "create_slot",
            lambda: SlotResponse.model_validate(
                self.schedules.create_slot(actor, _coerce(SlotCreate, payload))
            ),
        )

    def update_slot(
        self, actor: Principal, slot_id: str, payload: Payload[SlotUpdate]
    ) -> OperationResult[SlotResponse]:
        return self._run(
            "update_slot",
            lambda: SlotResponse.model_validate(
                self.schedules.update_slot(actor, slot_id, _coerce(SlotUpdate, payload))
            ),
        )

    def delete_slot(self, actor: Principal, slot_id: str) -> OperationResult[SlotDeletionResponse]:
        return self._run(
            "delete_slot",
            lambda: SlotDeletionResponse(
                slot_id=slot_id,
                cancelled_booking_ids=self.schedules.delete_slot(actor, slot_id),
            ),
        )

    def finalize_slot(self, actor: Principal, slot_id: str) -> OperationResult[SlotResponse]:
        return self._run(
            "finalize_slot",
            lambda: SlotResponse.model_validate(self.schedules.finalize_slot(actor, slot_id)),
        )

    def list_available_slots(
        self, actor: Principal, filters: Payload[SlotFilters] = None
    ) -> OperationResult[List[SlotResponse]]:
        return self._run(
            "list_available_slots",
            lambda: [
                SlotResponse.model_validate(slot)
                for slot in self.schedules.list_available_slots(_coerce(SlotFilters, filters))
            ],
        )

    def list_instructor_slots(
        self,
        actor: Principal,
        owner_id: Optional[str] = None,
        from_date: Optional[dt.date] = None,
        to_date: Optional[dt.date] = None,
        include_cancelled: bool = False,
    ) -> OperationResult[List[SlotResponse]]:
        return self._run(
            "list_instructor_slots",
            lambda: [
                SlotResponse.model_validate(slot)
                for slot in self.schedules.list_instructor_slots(
                    actor, owner_id, from_date, to_date, include_cancelled
                )
            ],
        )

    # Booking ledger

    def create_booking(
        self, actor: Principal, payload: Payload[BookingCreate]
    ) -> OperationResult[BookingResponse]:
        return self._run(
            "create_booking",
            lambda: BookingResponse.model_validate(
                self.bookings.create_booking(actor, _coerce(BookingCreate, payload))
            ),
        )

    def cancel_booking(
        self, actor: Principal, booking_id: str, payload: Payload[BookingCancel] = None
    ) -> OperationResult[BookingResponse]:
        return self._run(
            "cancel_booking",
            lambda: BookingResponse.model_validate(
                self.bookings.cancel_booking(actor, booking_id, _coerce(BookingCancel, payload))
            ),
        )

    def complete_booking(
        self, actor: Principal, booking_id: str, payload: Payload[BookingComplete]
    ) -> OperationResult[BookingResponse]:
        return self._run(
            "complete_booking",
            lambda: BookingResponse.model_validate(
                self.bookings.complete_booking(actor, booking_id, _coerce(BookingComplete, payload))
            ),
        )

    def list_student_bookings(self, actor: Principal, student_id: str) -> OperationResult[List[BookingResponse]]:
        return self._run(
            "list_student_bookings",
            lambda: [
                BookingResponse.model_validate(b)
                for b in self.bookings.list_student_bookings(actor, student_id)
            ],
        )

    def list_bookings_ready_for_completion(self, actor: Principal) -> OperationResult[List[BookingResponse]]:
        return self._run(
            "list_bookings_ready_for_completion",
            lambda: [
                BookingResponse.model_validate(b)
                for b in self.bookings.list_bookings_ready_for_completion(actor)
            ],
        )

    def get_student_progress(self, actor: Principal, student_id: str) -> OperationResult[StudentProgressSummary]:
        return self._run(
            "get_student_progress", lambda: self.bookings.get_student_progress(actor, student_id)
        )

    # Attendance tracker

    def mark_attendance(
        self, actor: Principal, session_id: str, payload: Payload[AttendanceMark]
    ) -> OperationResult[AttendanceResult]:
        return self._run(
            "mark_attendance",
            lambda: self.attendance.mark_attendance(actor, session_id, _coerce(AttendanceMark, payload)),
        )

    def get_today_sessions_for_group(self, actor: Principal, group_id: str) -> OperationResult[List[TodaySession]]:
        return self._run(
            "get_today_sessions_for_group",
            lambda: self.attendance.get_today_sessions_for_group(actor, group_id),
        )

    def get_group_attendance_history(
        self, actor: Principal, group_id: str
    ) -> OperationResult[List[AttendanceHistoryDay]]:
        return self._run(
            "get_group_attendance_history",
            lambda: self.attendance.get_group_attendance_history(actor, group_id),
        )

    def get_students_needing_contact(self, actor: Principal) -> OperationResult[List[StudentNeedingContact]]:
        return self._run(
            "get_students_needing_contact",
            lambda: self.attendance.get_students_needing_contact(actor),
        )

    # Phase state machine

    def update_phase(
        self, actor: Principal, group_id: str, student_id: str, payload: Payload[PhaseUpdate]
    ) -> OperationResult[MembershipResponse]:
        return self._run(
            "update_phase",
            lambda: MembershipResponse.model_validate(
                self.phases.update_phase(actor, group_id, student_id, _coerce(PhaseUpdate, payload))
            ),
        )

    # Rank progression

    def rank_up(
        self, actor: Principal, group_id: str, student_id: str, payload: Payload[RankUp] = None
    ) -> OperationResult[MembershipResponse]:
        return self._run(
            "rank_up",
            lambda: MembershipResponse.model_validate(
                self.ranks.rank_up(actor, group_id, student_id, _coerce(RankUp, payload).reason)
            ),
        )

    def set_rank(
        self, actor: Principal, group_id: str, student_id: str, payload: Payload[SetRank]
    ) -> OperationResult[MembershipResponse]:
        return self._run(
            "set_rank",
            lambda: MembershipResponse.model_validate(
                self.ranks.set_rank(actor, group_id, student_id, _coerce(SetRank, payload))
            ),
        )

    def transfer_group(
        self, actor: Principal, student_id: str, payload: Payload[GroupTransfer]
    ) -> OperationResult[MembershipResponse]:
        return self._run(
            "transfer_group",
            lambda: MembershipResponse.model_validate(
                self.ranks.transfer_group(actor, student_id, _coerce(GroupTransfer, payload))
            ),
        )

    def record_exam_outcome(
        self, actor: Principal, payload: Payload[ExamOutcome]
    ) -> OperationResult[MembershipResponse]:
        return self._run(
            "record_exam_outcome",
            lambda: MembershipResponse.model_validate(
                self.ranks.record_exam_outcome(actor, _coerce(ExamOutcome, payload))
            ),
        )

    def get_rank_info(self, actor: Principal, student_id: str) -> OperationResult[RankInfo]:
        return self._run("get_rank_info", lambda: self.ranks.get_rank_info(actor, student_id))

    # Group membership and calendar

    def join_group(
        self, actor: Principal, group_id: str, payload: Payload[GroupJoin] = None
    ) -> OperationResult[MembershipResponse]:
        return self._run(
            "join_group",
            lambda: MembershipResponse.model_validate(
                self.groups.join_group(actor, group_id, _coerce(GroupJoin, payload))
            ),
        )

    def add_member(
        self, actor: Principal, group_id: str, payload: Payload[MemberAdd]
    ) -> OperationResult[MembershipResponse]:
        return self._run(
            "add_member",
            lambda: MembershipResponse.model_validate(
                self.groups.add_member(actor, group_id, _coerce(MemberAdd, payload))
            ),
        )

    def leave_group(self, actor: Principal, group_id: str) -> OperationResult[MembershipResponse]:
        return self._run(
            "leave_group",
            lambda: MembershipResponse.model_validate(self.groups.leave_group(actor, group_id)),
        )

    def remove_member(
        self, actor: Principal, group_id: str, student_id: str, payload: Payload[MemberRemove] = None
    ) -> OperationResult[MembershipResponse]:
        return self._run(
            "remove_member",
            lambda: MembershipResponse.model_validate(
                self.groups.remove_member(actor, group_id, student_id, _coerce(MemberRemove, payload))
            ),
        )

    def list_group_members(self, actor: Principal, group_id: str) -> OperationResult[List[MembershipResponse]]:
        return self._run(
            "list_group_members",
            lambda: [MembershipResponse.model_validate(m) for m in self.groups.list_members(actor, group_id)],
        )

    def create_group_session(
        self, actor: Principal, group_id: str, payload: Payload[GroupSessionCreate]
    ) -> OperationResult[GroupSessionResponse]:
        return self._run(
            "create_group_session",
            lambda: GroupSessionResponse.model_validate(
                self.groups.create_session(actor, group_id, _coerce(GroupSessionCreate, payload))
            ),
        )

    def delete_group_session(self, actor: Principal, session_id: str) -> OperationResult[None]:
        return self._run("delete_group_session", lambda: self.groups.delete_session(actor, session_id))

    def list_group_sessions(
        self, actor: Principal, group_id: str
    ) -> OperationResult[List[GroupSessionResponse]]:
        return self._run(
            "list_group_sessions",
            lambda: [GroupSessionResponse.model_validate(s) for s in self.groups.list_sessions(actor, group_id)],
        )
