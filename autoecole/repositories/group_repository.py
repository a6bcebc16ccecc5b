# autoecole/repositories/group_repository.py
"""Groups, group sessions and memberships."""

from datetime import date
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import MembershipStatus
from ..models.group import Group, GroupMembership, GroupSession
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class GroupRepository(BaseRepository[Group]):
    """Repository for cohort data used by attendance, phase and rank services."""

    def __init__(self, db: Session):
        super().__init__(db, Group)

    # Sessions

    def get_session(self, session_id: str) -> Optional[GroupSession]:
        return self.db.get(GroupSession, session_id)

    def create_session(self, **kwargs) -> GroupSession:
        session = GroupSession(**kwargs)
        self.db.add(session)
        self.db.flush()
        return session

    def delete_session(self, session: GroupSession) -> None:
        self.db.delete(session)
        self.db.flush()

    def list_sessions(self, group_id: str) -> List[GroupSession]:
        """All sessions of a group, latest first."""
        return (
            self.db.query(GroupSession)
            .filter(GroupSession.group_id == group_id)
            .order_by(GroupSession.session_date.desc(), GroupSession.start_time.desc())
            .all()
        )

    def list_sessions_on(self, group_id: str, day: date) -> List[GroupSession]:
        return (
            self.db.query(GroupSession)
            .filter(GroupSession.group_id == group_id, GroupSession.session_date == day)
            .order_by(GroupSession.start_time)
            .all()
        )

    # Memberships

    def create_membership(self, **kwargs) -> GroupMembership:
        membership = GroupMembership(**kwargs)
        self.db.add(membership)
        self.db.flush()
        return membership

    def get_active_membership(
        self, student_id: str, for_update: bool = False
    ) -> Optional[GroupMembership]:
        query = self.db.query(GroupMembership).filter(
            GroupMembership.student_id == student_id,
            GroupMembership.status == MembershipStatus.ACTIVE.value,
        )
        if for_update:
            query = self._lockable(query).populate_existing()
        return query.first()

    def get_active_membership_in_group(
        self, group_id: str, student_id: str, for_update: bool = False
    ) -> Optional[GroupMembership]:
        query = self.db.query(GroupMembership).filter(
            GroupMembership.group_id == group_id,
            GroupMembership.student_id == student_id,
            GroupMembership.status == MembershipStatus.ACTIVE.value,
        )
        if for_update:
            query = self._lockable(query).populate_existing()
        return query.first()

    def list_active_members(self, group_id: str, for_update: bool = False) -> List[GroupMembership]:
        query = self.db.query(GroupMembership).filter(
            GroupMembership.group_id == group_id,
            GroupMembership.status == MembershipStatus.ACTIVE.value,
        )
        if for_update:
            query = self._lockable(query).populate_existing()
        return query.order_by(GroupMembership.student_name, GroupMembership.student_id).all()

    def list_members_with_absences(self, minimum: int) -> List[GroupMembership]:
        """Active members whose consecutive absences reached ``minimum``, worst first."""
        return (
            self.db.query(GroupMembership)
            .filter(
                GroupMembership.status == MembershipStatus.ACTIVE.value,
                GroupMembership.consecutive_absences >= minimum,
            )
            .order_by(GroupMembership.consecutive_absences.desc(), GroupMembership.student_id)
            .all()
        )
