# autoecole/services/rank_service.py
"""
Rank Service

Maintains a learner's rank inside their group:
- Promotion by one level, bounded by the group's highest rank
- Administrative rank setting within the group's range
- Group transfer, keeping the rank but capping it to the new group's range
- Exam outcomes, where a pass promotes the learner and closes their path
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.constants import ERROR_MAX_RANK
from ..core.enums import ExamResult, LearningPhase, MembershipStatus
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..core.principal import Principal
from ..events.scheduling_events import ExamFailed, GroupTransferred, RankChanged
from ..models.group import Group, GroupMembership
from ..repositories.factory import RepositoryFactory
from ..schemas.group import ExamOutcome, GroupTransfer, RankInfo, SetRank
from .base import BaseService
from .phase_service import PhaseService

logger = logging.getLogger(__name__)


class RankService(BaseService):
    """Service for rank progression and group transfers."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        phase_service: Optional[PhaseService] = None,
    ):
        super().__init__(db, clock)
        self.group_repository = RepositoryFactory.create_group_repository(db)
        self.phase_service = phase_service or PhaseService(db, self.clock)

    def _get_group(self, group_id: str, for_update: bool = False) -> Group:
        group = self.group_repository.get_by_id(group_id, for_update=for_update)
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

    def _set_rank(
        self,
        group: Group,
        membership: GroupMembership,
        new_rank: int,
        actor: Principal,
        reason: Optional[str],
    ) -> None:
        previous = membership.rank
        membership.rank = new_rank
        membership.rank_updated_at = self.clock.now()
        membership.rank_updated_by = actor.user_id
        membership.rank_reason = reason
        definition = group.rank_definition(new_rank) or {}
        self.event_publisher.publish(
            RankChanged(
                membership_id=membership.id,
                group_id=group.id,
                student_id=membership.student_id,
                previous_rank=previous,
                new_rank=new_rank,
                rank_name=definition.get("name", f"Level {new_rank}"),
                changed_by=actor.user_id,
                reason=reason,
            )
        )

    def _rank_up(
        self, actor: Principal, group_id: str, student_id: str, reason: Optional[str]
    ) -> GroupMembership:
        group = self._get_group(group_id)
        membership = self._get_membership(group_id, student_id)
        if membership.rank >= group.max_rank:
            raise ValidationException(
                ERROR_MAX_RANK,
                code="MAX_RANK",
                details={"rank": membership.rank, "max_rank": group.max_rank},
            )
        self._set_rank(group, membership, membership.rank + 1, actor, reason)
        return membership

    @BaseService.measure_operation("rank_up")
    def rank_up(
        self, actor: Principal, group_id: str, student_id: str, reason: Optional[str] = None
    ) -> GroupMembership:
        """Promote a learner by one rank; rejected at the group's highest rank."""
        self.require_admin(actor, "promote students")
        with self.transaction():
            membership = self._rank_up(actor, group_id, student_id, reason)
        self.log_operation("rank_up", group_id=group_id, student_id=student_id, rank=membership.rank)
        return membership

    @BaseService.measure_operation("set_rank")
    def set_rank(self, actor: Principal, group_id: str, student_id: str, data: SetRank) -> GroupMembership:
        """Set an explicit rank inside the group's [min, max] range."""
        self.require_admin(actor, "set ranks")
        with self.transaction():
            group = self._get_group(group_id)
            if not group.min_rank <= data.rank <= group.max_rank:
                raise ValidationException(
                    f"Rank must be between {group.min_rank} and {group.max_rank}",
                    code="RANK_OUT_OF_RANGE",
                    details={"rank": data.rank, "min_rank": group.min_rank, "max_rank": group.max_rank},
                )
            membership = self._get_membership(group_id, student_id)
            self._set_rank(group, membership, data.rank, actor, data.reason)
        self.log_operation("set_rank", group_id=group_id, student_id=student_id, rank=data.rank)
        return membership

    @BaseService.measure_operation("transfer_group")
    def transfer_group(self, actor: Principal, student_id: str, data: GroupTransfer) -> GroupMembership:
        """
        Move a learner to another group.

        The old membership is closed as ``changed`` and the learner restarts
        the new group in phase ``code`` with no absences. The rank is kept but
        clamped into the new group's range. Both member counts change in the
        same transaction.
        """
        self.require_admin(actor, "transfer students")

        with self.transaction():
            new_group = self._get_group(data.new_group_id, for_update=True)
            if not new_group.is_active:
                raise ValidationException(
                    "Target group is not active", code="GROUP_INACTIVE", details={"group_id": new_group.id}
                )
            old_membership = self.group_repository.get_active_membership(student_id, for_update=True)
            if old_membership and old_membership.group_id == new_group.id:
                raise ValidationException("Student is already in this group", code="SAME_GROUP")
            if not new_group.has_capacity:
                raise ConflictException(
                    "Target group is full",
                    code="GROUP_FULL",
                    details={"group_id": new_group.id, "max_students": new_group.max_students},
                )

            now = self.clock.now()
            current_rank = new_group.min_rank
            student_name = None
            old_group_id = None
            if old_membership:
                old_group = self._get_group(old_membership.group_id, for_update=True)
                current_rank = old_membership.rank
                student_name = old_membership.student_name
                old_group_id = old_group.id
                old_membership.close(MembershipStatus.CHANGED, now, data.reason)
                old_group.current_students = max(0, int(old_group.current_students) - 1)
                # Release the active-membership slot before inserting the new one
                self.group_repository.flush()

            new_rank = max(new_group.min_rank, min(current_rank, new_group.max_rank))
            membership = self.group_repository.create_membership(
                group_id=new_group.id,
                student_id=student_id,
                student_name=student_name,
                status=MembershipStatus.ACTIVE.value,
                phase=LearningPhase.CODE.value,
                phase_updated_at=now,
                phase_updated_by=actor.user_id,
                rank=new_rank,
                rank_updated_at=now,
                rank_updated_by=actor.user_id,
                rank_reason=data.reason,
                consecutive_absences=0,
                code_hours_completed=0.0,
                joined_at=now,
            )
            new_group.current_students = int(new_group.current_students) + 1
            self.event_publisher.publish(
                GroupTransferred(
                    student_id=student_id,
                    student_name=student_name,
                    old_group_id=old_group_id,
                    new_group_id=new_group.id,
                    new_group_name=new_group.name,
                    new_teacher_id=new_group.teacher_id,
                    new_rank=new_rank,
                    transferred_by=actor.user_id,
                    reason=data.reason,
                )
            )

        self.log_operation(
            "transfer_group",
            student_id=student_id,
            old_group_id=old_group_id,
            new_group_id=new_group.id,
            rank=new_rank,
        )
        return membership

    @BaseService.measure_operation("record_exam_outcome")
    def record_exam_outcome(self, actor: Principal, outcome: ExamOutcome) -> GroupMembership:
        """
        Apply an exam result.

        A pass promotes the learner (unless already at the top rank) and sets
        the ``passed`` phase; a failure only notifies the learner.
        """
        self.require_admin(actor, "record exam results")
        with self.transaction():
            group = self._get_group(outcome.group_id)
            membership = self._get_membership(outcome.group_id, outcome.student_id)
            if outcome.result == ExamResult.PASSED:
                reason = f"Passed exam on {outcome.exam_date.isoformat()}"
                if membership.rank < group.max_rank:
                    self._set_rank(group, membership, membership.rank + 1, actor, reason)
                else:
                    self.logger.info(f"Student {outcome.student_id} passed the exam at maximum rank")
                self.phase_service.mark_passed(membership, actor, notes=reason)
            else:
                self.event_publisher.publish(
                    ExamFailed(
                        student_id=outcome.student_id,
                        group_id=outcome.group_id,
                        exam_date=outcome.exam_date,
                    )
                )
        self.log_operation(
            "record_exam_outcome",
            student_id=outcome.student_id,
            result=ExamResult(outcome.result).value,
        )
        return membership

    # Reads

    def _rank_context(self, student_id: str) -> Dict[str, Any]:
        membership = self.group_repository.get_active_membership(student_id)
        if not membership:
            raise NotFoundException(
                "Student is not an active member of any group",
                code="MEMBERSHIP_NOT_FOUND",
                details={"student_id": student_id},
            )
        group = self._get_group(membership.group_id)
        return {"membership": membership, "group": group}

    @BaseService.measure_operation("get_rank_info")
    def get_rank_info(self, actor: Principal, student_id: str) -> RankInfo:
        if not (actor.is_admin or actor.is_instructor or actor.user_id == student_id):
            raise ForbiddenException("You can only view your own rank", code="NOT_RANK_OWNER")
        context = self._rank_context(student_id)
        membership: GroupMembership = context["membership"]
        group: Group = context["group"]
        definition = group.rank_definition(membership.rank) or {}
        next_definition = group.rank_definition(membership.rank + 1)
        return RankInfo(
            student_id=student_id,
            group_id=group.id,
            rank=membership.rank,
            rank_name=definition.get("name", f"Level {membership.rank}"),
            description=definition.get("description"),
            max_rank=group.max_rank,
            is_max_rank=membership.rank >= group.max_rank,
            next_rank_name=next_definition.get("name") if next_definition else None,
            unlocked_features=list(definition.get("unlocked_features", [])),
        )

    def has_feature_unlocked(self, student_id: str, feature: str) -> bool:
        """True when the learner's current rank unlocks ``feature`` (or everything)."""
        membership = self.group_repository.get_active_membership(student_id)
        if not membership:
            return False
        group = self._get_group(membership.group_id)
        features = (group.rank_definition(membership.rank) or {}).get("unlocked_features", [])
        return "all" in features or feature in features
