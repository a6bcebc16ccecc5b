# autoecole/services/attendance_service.py
"""
Attendance Service

Takes attendance for group sessions:
- One marking per session, covering every active member at mark time
- Presence resets the absence streak and adds the session to theory hours
- Absence extends the streak; reaching the threshold escalates to admins once
- Read models for the teacher's day and the group's history
"""

from datetime import date
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.constants import (
    ABSENCE_ESCALATION_THRESHOLD,
    ERROR_ATTENDANCE_ALREADY_MARKED,
    ERROR_NO_ACTIVE_MEMBERS,
)
from ..core.enums import AttendanceStatus, SessionAttendanceState
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    TimingException,
    ValidationException,
)
from ..core.principal import Principal
from ..events.scheduling_events import AbsenceEscalated, StudentMarkedAbsent
from ..models.attendance import AttendanceRecord
from ..models.group import Group, GroupSession
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.attendance import (
    AbsentStudent,
    AttendanceHistoryDay,
    AttendanceMark,
    AttendanceResult,
    StudentNeedingContact,
    TodaySession,
)
from .base import BaseService

logger = logging.getLogger(__name__)


class AttendanceService(BaseService):
    """Service for group session attendance and absence escalation."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_attendance_repository(db)
        self.group_repository = RepositoryFactory.create_group_repository(db)

    def _get_group(self, group_id: str) -> Group:
        group = self.group_repository.get_by_id(group_id)
        if not group:
            raise NotFoundException("Group not found", code="GROUP_NOT_FOUND", details={"group_id": group_id})
        return group

    def _get_session(self, session_id: str) -> GroupSession:
        session = self.group_repository.get_session(session_id)
        if not session:
            raise NotFoundException(
                "Session not found", code="SESSION_NOT_FOUND", details={"session_id": session_id}
            )
        return session

    @staticmethod
    def _check_teacher_or_admin(actor: Principal, group: Group) -> None:
        if actor.is_admin or group.teacher_id == actor.user_id:
            return
        raise ForbiddenException(
            "Only administrators or the group's teacher can manage attendance",
            code="NOT_GROUP_TEACHER",
            details={"group_id": group.id},
        )

    def _check_session_started(self, session: GroupSession) -> None:
        now = self.clock.now()
        opens_at = self.clock.at(session.session_date, session.start_time)
        if now >= opens_at:
            return
        at = session.start_time.strftime("%H:%M")
        details = {"opens_at": at, "session_date": session.session_date.isoformat()}
        if session.session_date == now.date():
            message = f"Session hasn't started yet. Opens at {at}"
            details["reason"] = "before_start_time"
        else:
            # Sessions on later days are refused outright, not only later hours of today
            message = f"Session hasn't started yet. Opens on {session.session_date.isoformat()} at {at}"
            details["reason"] = "future_session_day"
        raise TimingException(message, code="SESSION_NOT_STARTED", details=details)

    @BaseService.measure_operation("mark_attendance")
    def mark_attendance(self, actor: Principal, session_id: str, data: AttendanceMark) -> AttendanceResult:
        """
        Record presence for every active member of the session's group.

        Members listed in ``present_student_ids`` are present, every other
        active member is absent.

        Raises:
            TimingException: Session has not started yet
            ConflictException: Attendance was already taken for this session
            ValidationException: No active members, or unknown learner ids
        """
        session = self._get_session(session_id)
        group = self._get_group(session.group_id)
        self._check_teacher_or_admin(actor, group)

        # 1. Session must have started
        self._check_session_started(session)

        with self.transaction():
            # 2. Duplicate guard (the sheet insert below is the atomic one)
            if self.repository.get_sheet(session.id):
                raise ConflictException(
                    ERROR_ATTENDANCE_ALREADY_MARKED,
                    code="ATTENDANCE_ALREADY_MARKED",
                    details={"session_id": session.id},
                )

            members = self.group_repository.list_active_members(group.id, for_update=True)
            if not members:
                raise ValidationException(ERROR_NO_ACTIVE_MEMBERS, code="NO_ACTIVE_MEMBERS")

            present_ids = set(data.present_student_ids)
            member_ids = {m.student_id for m in members}
            unknown = sorted(present_ids - member_ids)
            if unknown:
                raise ValidationException(
                    "Some students are not active members of this group",
                    code="UNKNOWN_STUDENTS",
                    details={"student_ids": unknown},
                )

            now = self.clock.now()
            absent_ids = [m.student_id for m in members if m.student_id not in present_ids]
            sheet = self.repository.claim_session(
                session_id=session.id,
                group_id=group.id,
                session_date=session.session_date,
                marked_by=actor.user_id,
                marked_at=now,
                present_count=len(members) - len(absent_ids),
                absent_count=len(absent_ids),
            )

            # 3. Per-member effects
            records: List[AttendanceRecord] = []
            escalated: List[str] = []
            duration = session.duration_hours
            for member in members:
                present = member.student_id in present_ids
                records.append(
                    AttendanceRecord(
                        sheet_id=sheet.id,
                        session_id=session.id,
                        group_id=group.id,
                        student_id=member.student_id,
                        student_name=member.student_name,
                        date=session.session_date,
                        status=(AttendanceStatus.PRESENT if present else AttendanceStatus.ABSENT).value,
                        marked_by=actor.user_id,
                        marked_at=now,
                    )
                )
                if present:
                    member.consecutive_absences = 0
                    member.code_hours_completed = float(member.code_hours_completed or 0) + duration
                    member.last_attendance_at = now
                    continue

                member.consecutive_absences = int(member.consecutive_absences or 0) + 1
                self.event_publisher.publish(
                    StudentMarkedAbsent(
                        session_id=session.id,
                        group_id=group.id,
                        student_id=member.student_id,
                        session_date=session.session_date,
                        consecutive_absences=member.consecutive_absences,
                    )
                )
                # 4. Escalate exactly when the streak reaches the threshold
                if member.consecutive_absences == ABSENCE_ESCALATION_THRESHOLD:
                    escalated.append(member.student_id)
                    self.event_publisher.publish(
                        AbsenceEscalated(
                            session_id=session.id,
                            group_id=group.id,
                            student_id=member.student_id,
                            student_name=member.student_name,
                            consecutive_absences=member.consecutive_absences,
                        )
                    )
            self.repository.add_records(records)

        for _ in escalated:
            prometheus_metrics.inc_absence_escalation()
        self.log_operation(
            "mark_attendance",
            session_id=session.id,
            present=len(members) - len(absent_ids),
            absent=len(absent_ids),
            escalated=len(escalated),
        )
        return AttendanceResult(
            session_id=session.id,
            group_id=group.id,
            session_date=session.session_date,
            present_count=len(members) - len(absent_ids),
            absent_count=len(absent_ids),
            absent_student_ids=absent_ids,
            escalated_student_ids=escalated,
            marked_at=now,
        )

    # Reads

    @BaseService.measure_operation("get_today_sessions_for_group")
    def get_today_sessions_for_group(self, actor: Principal, group_id: str) -> List[TodaySession]:
        """Today's sessions with their attendance state, in start order."""
        group = self._get_group(group_id)
        self._check_teacher_or_admin(actor, group)

        now = self.clock.now()
        sessions = self.group_repository.list_sessions_on(group.id, now.date())
        marked = self.repository.marked_session_ids(s.id for s in sessions)

        result: List[TodaySession] = []
        for session in sessions:
            if session.id in marked:
                state = SessionAttendanceState.MARKED
            elif now < self.clock.at(session.session_date, session.start_time):
                state = SessionAttendanceState.NOT_STARTED
            else:
                state = SessionAttendanceState.PENDING
            result.append(
                TodaySession(
                    session_id=session.id,
                    group_id=group.id,
                    start_time=session.start_time,
                    end_time=session.end_time,
                    topic=session.topic,
                    state=state,
                )
            )
        return result

    @BaseService.measure_operation("get_group_attendance_history")
    def get_group_attendance_history(self, actor: Principal, group_id: str) -> List[AttendanceHistoryDay]:
        """
        Attendance grouped by date, newest first.

        Bounded to the most recent records and dates configured in settings.
        """
        group = self._get_group(group_id)
        self._check_teacher_or_admin(actor, group)

        records = self.repository.list_recent_for_group(
            group.id, settings.attendance_history_record_limit
        )
        by_date: Dict[date, Dict[str, List[AttendanceRecord]]] = {}
        for record in records:
            day = by_date.setdefault(record.date, {"present": [], "absent": []})
            if record.status == AttendanceStatus.PRESENT.value:
                day["present"].append(record)
            else:
                day["absent"].append(record)

        history: List[AttendanceHistoryDay] = []
        for day_date, day in list(by_date.items())[: settings.attendance_history_max_dates]:
            history.append(
                AttendanceHistoryDay(
                    date=day_date,
                    present_count=len(day["present"]),
                    absent_count=len(day["absent"]),
                    absent_students=[
                        AbsentStudent(student_id=r.student_id, student_name=r.student_name)
                        for r in day["absent"]
                    ],
                )
            )
        return history

    @BaseService.measure_operation("get_students_needing_contact")
    def get_students_needing_contact(self, actor: Principal) -> List[StudentNeedingContact]:
        """Active members at or above the escalation threshold, most absences first."""
        self.require_admin(actor, "view students needing contact")
        members = self.group_repository.list_members_with_absences(ABSENCE_ESCALATION_THRESHOLD)
        return [
            StudentNeedingContact(
                student_id=m.student_id,
                student_name=m.student_name,
                group_id=m.group_id,
                consecutive_absences=m.consecutive_absences,
                phase=m.phase,
            )
            for m in members
        ]
