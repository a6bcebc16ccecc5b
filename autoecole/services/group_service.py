# autoecole/services/group_service.py
"""
Group Service

Manages who is in a group and when the group meets:
- Learners join or leave on their own; administrators enrol and remove them
- The group's teacher may also remove learners
- A learner holds at most one active membership, within the group's capacity
- Teachers schedule and delete the sessions attendance is taken against
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.constants import (
    ERROR_ALREADY_IN_GROUP,
    ERROR_GROUP_FULL,
    ERROR_GROUP_INACTIVE,
    ERROR_NOT_GROUP_MEMBER,
    ERROR_SESSION_HAS_ATTENDANCE,
)
from ..core.enums import LearningPhase, MembershipStatus
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..core.principal import Principal
from ..events.scheduling_events import GroupSessionScheduled, MemberJoined, MemberRemoved
from ..models.group import Group, GroupMembership, GroupSession
from ..repositories.factory import RepositoryFactory
from ..schemas.group import GroupJoin, GroupSessionCreate, MemberAdd, MemberRemove
from .base import BaseService

logger = logging.getLogger(__name__)


class GroupService(BaseService):
    """
    Service for group membership and the group calendar.

    The group row is locked and versioned while its member count changes, and
    the partial unique index on active memberships rejects a second enrolment
    that races past the check.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_group_repository(db)
        self.attendance_repository = RepositoryFactory.create_attendance_repository(db)

    def _get_group(self, group_id: str, for_update: bool = False) -> Group:
        group = self.repository.get_by_id(group_id, for_update=for_update)
        if not group:
            raise NotFoundException("Group not found", code="GROUP_NOT_FOUND", details={"group_id": group_id})
        return group

    @staticmethod
    def _check_teacher_or_admin(actor: Principal, group: Group, action: str) -> None:
        if actor.is_admin or group.teacher_id == actor.user_id:
            return
        raise ForbiddenException(
            f"Only administrators or the group's teacher can {action}",
            code="NOT_GROUP_TEACHER",
            details={"group_id": group.id},
        )

    def _check_can_view(self, actor: Principal, group: Group) -> None:
        if actor.is_admin or group.teacher_id == actor.user_id:
            return
        if actor.is_student and self.repository.get_active_membership_in_group(group.id, actor.user_id):
            return
        raise ForbiddenException(
            "Only the group's teacher, its members or administrators can view it",
            code="GROUP_ACCESS_DENIED",
            details={"group_id": group.id},
        )

    # Membership

    def _enroll(
        self, actor: Principal, group_id: str, student_id: str, student_name: Optional[str]
    ) -> GroupMembership:
        by_administrator = actor.is_admin and actor.user_id != student_id
        with self.transaction():
            group = self._get_group(group_id, for_update=True)
            if not group.is_active:
                raise ValidationException(
                    ERROR_GROUP_INACTIVE, code="GROUP_INACTIVE", details={"group_id": group.id}
                )
            current = self.repository.get_active_membership(student_id, for_update=True)
            if current:
                raise ConflictException(
                    ERROR_ALREADY_IN_GROUP,
                    code="ALREADY_IN_GROUP",
                    details={"group_id": current.group_id},
                )
            if not group.has_capacity:
                raise ConflictException(
                    ERROR_GROUP_FULL,
                    code="GROUP_FULL",
                    details={"group_id": group.id, "max_students": group.max_students},
                )

            now = self.clock.now()
            membership = self.repository.create_membership(
                group_id=group.id,
                student_id=student_id,
                student_name=student_name,
                status=MembershipStatus.ACTIVE.value,
                phase=LearningPhase.CODE.value,
                phase_updated_at=now,
                rank=group.min_rank,
                consecutive_absences=0,
                code_hours_completed=0.0,
                joined_at=now,
            )
            group.current_students = int(group.current_students) + 1
            self.event_publisher.publish(
                MemberJoined(
                    membership_id=membership.id,
                    group_id=group.id,
                    group_name=group.name,
                    teacher_id=group.teacher_id,
                    student_id=student_id,
                    student_name=student_name,
                    added_by=actor.user_id,
                    by_administrator=by_administrator,
                )
            )

        self.log_operation(
            "enroll", group_id=group_id, student_id=student_id, by_administrator=by_administrator
        )
        return membership

    def _withdraw(
        self, actor: Principal, group: Group, student_id: str, reason: Optional[str]
    ) -> GroupMembership:
        with self.transaction():
            group = self._get_group(group.id, for_update=True)
            membership = self.repository.get_active_membership_in_group(group.id, student_id, for_update=True)
            if not membership:
                raise NotFoundException(
                    ERROR_NOT_GROUP_MEMBER,
                    code="NOT_GROUP_MEMBER",
                    details={"group_id": group.id, "student_id": student_id},
                )
            membership.close(MembershipStatus.REMOVED, self.clock.now(), reason)
            group.current_students = max(0, int(group.current_students) - 1)
            self.event_publisher.publish(
                MemberRemoved(
                    membership_id=membership.id,
                    group_id=group.id,
                    group_name=group.name,
                    teacher_id=group.teacher_id,
                    student_id=student_id,
                    student_name=membership.student_name,
                    removed_by=actor.user_id,
                    self_removal=actor.user_id == student_id,
                    reason=reason,
                )
            )

        self.log_operation("withdraw", group_id=group.id, student_id=student_id, removed_by=actor.user_id)
        return membership

    @BaseService.measure_operation("join_group")
    def join_group(self, actor: Principal, group_id: str, data: Optional[GroupJoin] = None) -> GroupMembership:
        """
        Enrol the calling learner.

        Raises:
            ForbiddenException: Caller is not a student
            ValidationException: Group is not active
            ConflictException: Already in a group, or the group is full
        """
        if not actor.is_student:
            raise ForbiddenException("Only students can join groups", code="STUDENT_REQUIRED")
        return self._enroll(actor, group_id, actor.user_id, data.student_name if data else None)

    @BaseService.measure_operation("add_member")
    def add_member(self, actor: Principal, group_id: str, data: MemberAdd) -> GroupMembership:
        """Administrator enrolment; same limits as joining."""
        self.require_admin(actor, "add students to groups")
        return self._enroll(actor, group_id, data.student_id, data.student_name)

    @BaseService.measure_operation("leave_group")
    def leave_group(self, actor: Principal, group_id: str) -> GroupMembership:
        if not actor.is_student:
            raise ForbiddenException("Only students can leave groups", code="STUDENT_REQUIRED")
        group = self._get_group(group_id)
        return self._withdraw(actor, group, actor.user_id, None)

    @BaseService.measure_operation("remove_member")
    def remove_member(
        self, actor: Principal, group_id: str, student_id: str, data: Optional[MemberRemove] = None
    ) -> GroupMembership:
        """Close a learner's membership on behalf of the teacher or an administrator."""
        group = self._get_group(group_id)
        self._check_teacher_or_admin(actor, group, "remove students")
        return self._withdraw(actor, group, student_id, data.reason if data else None)

    @BaseService.measure_operation("list_members")
    def list_members(self, actor: Principal, group_id: str) -> List[GroupMembership]:
        group = self._get_group(group_id)
        self._check_can_view(actor, group)
        return self.repository.list_active_members(group.id)

    # Calendar

    @BaseService.measure_operation("create_group_session")
    def create_session(self, actor: Principal, group_id: str, data: GroupSessionCreate) -> GroupSession:
        """
        Add a class to the group's calendar and tell the current members.

        The session is taught by the group's teacher even when an
        administrator creates it.
        """
        group = self._get_group(group_id)
        self._check_teacher_or_admin(actor, group, "schedule group sessions")

        with self.transaction():
            session = self.repository.create_session(
                group_id=group.id,
                teacher_id=group.teacher_id,
                session_date=data.date,
                start_time=data.start_time,
                end_time=data.end_time,
                lesson_type=data.lesson_type.value,
                topic=data.topic,
            )
            members = self.repository.list_active_members(group.id)
            self.event_publisher.publish(
                GroupSessionScheduled(
                    session_id=session.id,
                    group_id=group.id,
                    group_name=group.name,
                    session_date=session.session_date,
                    start_time=session.start_time,
                    topic=session.topic,
                    member_ids=[m.student_id for m in members],
                )
            )

        self.log_operation("create_group_session", session_id=session.id, group_id=group.id)
        return session

    @BaseService.measure_operation("delete_group_session")
    def delete_session(self, actor: Principal, session_id: str) -> None:
        """Remove a session; sessions with an attendance sheet are kept."""
        session = self.repository.get_session(session_id)
        if not session:
            raise NotFoundException(
                "Session not found", code="SESSION_NOT_FOUND", details={"session_id": session_id}
            )
        if not actor.is_admin and session.teacher_id != actor.user_id:
            raise ForbiddenException(
                "Only administrators or the session's teacher can delete it",
                code="NOT_GROUP_TEACHER",
                details={"session_id": session_id},
            )

        with self.transaction():
            if self.attendance_repository.get_sheet(session.id):
                raise ConflictException(
                    ERROR_SESSION_HAS_ATTENDANCE,
                    code="SESSION_HAS_ATTENDANCE",
                    details={"session_id": session.id},
                )
            self.repository.delete_session(session)

        self.log_operation("delete_group_session", session_id=session_id)

    @BaseService.measure_operation("list_group_sessions")
    def list_sessions(self, actor: Principal, group_id: str) -> List[GroupSession]:
        group = self._get_group(group_id)
        self._check_can_view(actor, group)
        return self.repository.list_sessions(group.id)
