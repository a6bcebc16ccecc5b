# autoecole/routes/attendance.py
"""
Attendance routes.

Router Endpoints:
    POST /sessions/{session_id}/attendance - Take attendance for a session
    GET /groups/{group_id}/sessions/today - Today's sessions and their state
    GET /groups/{group_id}/attendance - Attendance history by date
    GET /attendance/needs-contact - Learners with repeated absences (admin)
"""

from typing import List

from fastapi import APIRouter, Depends

from ..api.dependencies import get_engine, get_principal
from ..core.principal import Principal
from ..engine import SchedulingEngine
from ..schemas.attendance import (
    AttendanceHistoryDay,
    AttendanceMark,
    AttendanceResult,
    StudentNeedingContact,
    TodaySession,
)
from ._utils import unwrap

router = APIRouter(tags=["attendance"])


@router.post("/sessions/{session_id}/attendance", response_model=AttendanceResult)
def mark_attendance(
    session_id: str,
    payload: AttendanceMark,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> AttendanceResult:
    return unwrap(engine.mark_attendance(principal, session_id, payload))


@router.get("/groups/{group_id}/sessions/today", response_model=List[TodaySession])
def get_today_sessions(
    group_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> List[TodaySession]:
    return unwrap(engine.get_today_sessions_for_group(principal, group_id))


@router.get("/groups/{group_id}/attendance", response_model=List[AttendanceHistoryDay])
def get_attendance_history(
    group_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> List[AttendanceHistoryDay]:
    return unwrap(engine.get_group_attendance_history(principal, group_id))


@router.get("/attendance/needs-contact", response_model=List[StudentNeedingContact])
def get_students_needing_contact(
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> List[StudentNeedingContact]:
    return unwrap(engine.get_students_needing_contact(principal))
