"""Scheduling domain events."""
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional


class DomainEvent(ABC):
    """Mixin giving events a stable aggregate id and an idempotency key."""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    @property
    @abstractmethod
    def aggregate_id(self) -> str:
        """Id of the slot, booking or learner the event is about."""

    def idempotency_key(self) -> Optional[str]:
        """Key deduplicating the event in the outbox; None means always enqueue."""
        return None


@dataclass
class BookingCreated(DomainEvent):
    """Fired after a learner books a slot."""

    booking_id: str
    schedule_id: str
    student_id: str
    instructor_id: str
    lesson_type: str
    lesson_date: date
    start_time: time
    created_at: datetime

    @property
    def aggregate_id(self) -> str:
        return self.booking_id

    def idempotency_key(self) -> Optional[str]:
        return f"booking_created:{self.booking_id}"


@dataclass
class BookingCancelled(DomainEvent):
    """Fired after a booking is cancelled, by the learner or by a slot cancellation."""

    booking_id: str
    schedule_id: str
    student_id: str
    instructor_id: str
    lesson_date: date
    start_time: time
    cancelled_by: str
    cancelled_at: datetime
    reason: Optional[str] = None
    by_administrator: bool = False

    @property
    def aggregate_id(self) -> str:
        return self.booking_id

    def idempotency_key(self) -> Optional[str]:
        return f"booking_cancelled:{self.booking_id}"


@dataclass
class BookingCompleted(DomainEvent):
    """Fired after an instructor records the outcome of a lesson."""

    booking_id: str
    student_id: str
    instructor_id: str
    hours_completed: float
    performance_rating: int
    total_hours: float
    ready_for_exam: bool
    completed_at: datetime

    @property
    def aggregate_id(self) -> str:
        return self.booking_id

    def idempotency_key(self) -> Optional[str]:
        return f"booking_completed:{self.booking_id}"


@dataclass
class SlotCancelled(DomainEvent):
    """Fired when an administrator removes a slot that had booked learners."""

    slot_id: str
    owner_id: str
    lesson_date: date
    start_time: time
    cancelled_by: str
    cancelled_at: datetime
    affected_student_ids: List[str] = field(default_factory=list)

    @property
    def aggregate_id(self) -> str:
        return self.slot_id

    def idempotency_key(self) -> Optional[str]:
        return f"slot_cancelled:{self.slot_id}"


@dataclass
class StudentMarkedAbsent(DomainEvent):
    """Fired for every learner marked absent at a group session."""

    session_id: str
    group_id: str
    student_id: str
    session_date: date
    consecutive_absences: int

    @property
    def aggregate_id(self) -> str:
        return self.student_id

    def idempotency_key(self) -> Optional[str]:
        return f"absent:{self.session_id}:{self.student_id}"


@dataclass
class AbsenceEscalated(DomainEvent):
    """Fired once when a learner's consecutive absences reach the escalation threshold."""

    session_id: str
    group_id: str
    student_id: str
    student_name: Optional[str]
    consecutive_absences: int

    @property
    def aggregate_id(self) -> str:
        return self.student_id

    def idempotency_key(self) -> Optional[str]:
        return f"absence_escalated:{self.session_id}:{self.student_id}"


@dataclass
class PhaseAdvanced(DomainEvent):
    """Fired after a learner's phase changes."""

    membership_id: str
    group_id: str
    student_id: str
    previous_phase: str
    new_phase: str
    new_phase_label: str
    updated_by: str
    updated_at: datetime
    notes: Optional[str] = None

    @property
    def aggregate_id(self) -> str:
        return self.membership_id


@dataclass
class RankChanged(DomainEvent):
    """Fired after a learner's rank is promoted or set."""

    membership_id: str
    group_id: str
    student_id: str
    previous_rank: int
    new_rank: int
    rank_name: str
    changed_by: str
    reason: Optional[str] = None

    @property
    def aggregate_id(self) -> str:
        return self.membership_id


@dataclass
class GroupTransferred(DomainEvent):
    """Fired after a learner moves to another group."""

    student_id: str
    student_name: Optional[str]
    old_group_id: Optional[str]
    new_group_id: str
    new_group_name: str
    new_teacher_id: str
    new_rank: int
    transferred_by: str
    reason: Optional[str] = None

    @property
    def aggregate_id(self) -> str:
        return self.student_id


@dataclass
class ExamFailed(DomainEvent):
    """Fired when an exam outcome reports a failure."""

    student_id: str
    group_id: str
    exam_date: date

    @property
    def aggregate_id(self) -> str:
        return self.student_id

    def idempotency_key(self) -> Optional[str]:
        return f"exam_failed:{self.student_id}:{self.exam_date.isoformat()}"


@dataclass
class MemberJoined(DomainEvent):
    """Fired after a learner joins a group or is enrolled by an administrator."""

    membership_id: str
    group_id: str
    group_name: str
    teacher_id: str
    student_id: str
    student_name: Optional[str]
    added_by: str
    by_administrator: bool = False

    @property
    def aggregate_id(self) -> str:
        return self.membership_id

    def idempotency_key(self) -> Optional[str]:
        return f"member_joined:{self.membership_id}"


@dataclass
class MemberRemoved(DomainEvent):
    """Fired after a membership is closed by the learner, the teacher or an administrator."""

    membership_id: str
    group_id: str
    group_name: str
    teacher_id: str
    student_id: str
    student_name: Optional[str]
    removed_by: str
    self_removal: bool = False
    reason: Optional[str] = None

    @property
    def aggregate_id(self) -> str:
        return self.membership_id

    def idempotency_key(self) -> Optional[str]:
        return f"member_removed:{self.membership_id}"


@dataclass
class GroupSessionScheduled(DomainEvent):
    """Fired after a class is added to a group's calendar."""

    session_id: str
    group_id: str
    group_name: str
    session_date: date
    start_time: time
    topic: Optional[str]
    member_ids: List[str] = field(default_factory=list)

    @property
    def aggregate_id(self) -> str:
        return self.session_id
