# autoecole/services/phase_service.py
"""
Phase Service

Drives the fixed learning path of a group member:

    code -> creneau -> conduite -> exam-preparation

Each step only moves to its single successor. The terminal ``passed`` phase
is set by exam outcomes, never by a manual update.
"""

import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.constants import ERROR_PHASE_GATE
from ..core.enums import LearningPhase
from ..core.exceptions import (
    ForbiddenException,
    InvalidPhaseTransitionException,
    NotFoundException,
    ValidationException,
)
from ..core.principal import Principal
from ..events.scheduling_events import PhaseAdvanced
from ..models.group import Group, GroupMembership
from ..repositories.factory import RepositoryFactory
from ..schemas.group import PhaseUpdate
from .base import BaseService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[LearningPhase, Optional[LearningPhase]] = {
    LearningPhase.CODE: LearningPhase.CRENEAU,
    LearningPhase.CRENEAU: LearningPhase.CONDUITE,
    LearningPhase.CONDUITE: LearningPhase.EXAM_PREPARATION,
    LearningPhase.EXAM_PREPARATION: None,
    LearningPhase.PASSED: None,
}


def next_phase(current: LearningPhase) -> Optional[LearningPhase]:
    return ALLOWED_TRANSITIONS[current]


class PhaseService(BaseService):
    """Service for learner phase transitions and the booking eligibility gate."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.group_repository = RepositoryFactory.create_group_repository(db)

    def _get_group(self, group_id: str) -> Group:
        group = self.group_repository.get_by_id(group_id)
        if not group:
            raise NotFoundException("Group not found", code="GROUP_NOT_FOUND", details={"group_id": group_id})
        return group

    def _get_membership(self, group_id: str, student_id: str) -> GroupMembership:
        membership = self.group_repository.get_active_membership_in_group(
            group_id, student_id, for_update=True
        )
        if not membership:
            raise NotFoundException(
                "Student is not an active member of this group",
                code="MEMBERSHIP_NOT_FOUND",
                details={"group_id": group_id, "student_id": student_id},
            )
        return membership

    def check_booking_eligibility(self, student_id: str) -> None:
        """
        Reject individual bookings while the learner is in the theory phase.

        Learners without an active membership are not restricted.
        """
        membership = self.group_repository.get_active_membership(student_id)
        if membership and membership.phase == LearningPhase.CODE.value:
            raise ValidationException(
                ERROR_PHASE_GATE,
                code="PHASE_GATE",
                details={"current_phase": LearningPhase.CODE.label},
            )

    def _apply_phase(
        self,
        membership: GroupMembership,
        target: LearningPhase,
        actor: Principal,
        notes: Optional[str],
    ) -> None:
        previous = membership.phase
        now = self.clock.now()
        membership.phase = target.value
        membership.phase_updated_at = now
        membership.phase_updated_by = actor.user_id
        membership.phase_notes = notes
        self.event_publisher.publish(
            PhaseAdvanced(
                membership_id=membership.id,
                group_id=membership.group_id,
                student_id=membership.student_id,
                previous_phase=previous,
                new_phase=target.value,
                new_phase_label=target.label,
                updated_by=actor.user_id,
                updated_at=now,
                notes=notes,
            )
        )

    @BaseService.measure_operation("update_phase")
    def update_phase(
        self, actor: Principal, group_id: str, student_id: str, data: PhaseUpdate
    ) -> GroupMembership:
        """
        Move a learner to the next phase.

        Only administrators and the group's teacher may do this. With
        ``force`` and the admin override enabled, an administrator may set any
        phase except ``passed``.

        Raises:
            ForbiddenException: Caller is neither admin nor the group's teacher
            InvalidPhaseTransitionException: Requested phase is not the successor
        """
        group = self._get_group(group_id)
        if not actor.is_admin and group.teacher_id != actor.user_id:
            raise ForbiddenException(
                "Only administrators or the group's teacher can update phases",
                code="NOT_GROUP_TEACHER",
            )
        requested = LearningPhase(data.requested_phase)

        with self.transaction():
            membership = self._get_membership(group_id, student_id)
            current = membership.phase_enum

            if data.force:
                if not (actor.is_admin and settings.allow_admin_phase_override):
                    raise ForbiddenException("Phase override is not allowed", code="PHASE_OVERRIDE_DISABLED")
                if requested == LearningPhase.PASSED:
                    raise ValidationException(
                        "The passed phase is only set by exam results", code="PASSED_BY_EXAM_ONLY"
                    )
                if requested == current:
                    raise ValidationException(
                        f'Student is already in phase "{current.label}"', code="PHASE_UNCHANGED"
                    )
            else:
                allowed = next_phase(current)
                if requested != allowed:
                    raise InvalidPhaseTransitionException(
                        current.label, allowed.label if allowed else None
                    )

            self._apply_phase(membership, requested, actor, data.notes)

        self.log_operation(
            "update_phase",
            group_id=group_id,
            student_id=student_id,
            previous=current.value,
            new=requested.value,
            forced=data.force,
        )
        return membership

    def mark_passed(self, membership: GroupMembership, actor: Principal, notes: Optional[str] = None) -> None:
        """Set the terminal phase; called inside the exam outcome transaction."""
        if membership.phase == LearningPhase.PASSED.value:
            return
        if membership.phase != LearningPhase.EXAM_PREPARATION.value:
            self.logger.warning(
                f"Student {membership.student_id} passed the exam from phase {membership.phase}"
            )
        self._apply_phase(membership, LearningPhase.PASSED, actor, notes)
