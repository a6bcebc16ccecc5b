# autoecole/repositories/attendance_repository.py
"""Attendance sheets and records."""

import logging
from typing import Iterable, List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.constants import ERROR_ATTENDANCE_ALREADY_MARKED
from ..core.exceptions import ConflictException
from ..models.attendance import AttendanceRecord, AttendanceSheet
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AttendanceRepository(BaseRepository[AttendanceRecord]):
    """Repository for attendance data of group sessions."""

    def __init__(self, db: Session):
        super().__init__(db, AttendanceRecord)

    def get_sheet(self, session_id: str) -> Optional[AttendanceSheet]:
        return self.db.query(AttendanceSheet).filter(AttendanceSheet.session_id == session_id).first()

    def claim_session(self, **kwargs) -> AttendanceSheet:
        """
        Insert the sheet for a session.

        The unique session constraint makes the second concurrent marker fail
        here, inside its own transaction.

        Raises:
            ConflictException: If the session already has a sheet
        """
        sheet = AttendanceSheet(**kwargs)
        self.db.add(sheet)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.logger.warning(
                "Attendance sheet insert lost race for session %s: %s", kwargs.get("session_id"), exc
            )
            raise ConflictException(
                ERROR_ATTENDANCE_ALREADY_MARKED,
                code="ATTENDANCE_ALREADY_MARKED",
                details={"session_id": kwargs.get("session_id")},
            ) from exc
        return sheet

    def add_records(self, records: Iterable[AttendanceRecord]) -> None:
        self.db.add_all(list(records))
        self.db.flush()

    def marked_session_ids(self, session_ids: Iterable[str]) -> Set[str]:
        ids = list(session_ids)
        if not ids:
            return set()
        rows = (
            self.db.query(AttendanceSheet.session_id)
            .filter(AttendanceSheet.session_id.in_(ids))
            .all()
        )
        return {row[0] for row in rows}

    def list_recent_for_group(self, group_id: str, limit: int) -> List[AttendanceRecord]:
        """Most recent records of a group, newest date first."""
        return (
            self.db.query(AttendanceRecord)
            .filter(AttendanceRecord.group_id == group_id)
            .order_by(AttendanceRecord.date.desc(), AttendanceRecord.marked_at.desc())
            .limit(limit)
            .all()
        )
