# autoecole/routes/groups.py
"""
Group routes: membership, group sessions, learning phases, ranks, transfers and exam results.

Router Endpoints:
    POST /groups/{group_id}/join - Join a group as the calling learner
    POST /groups/{group_id}/leave - Leave the calling learner's group
    GET /groups/{group_id}/members - Active members
    POST /groups/{group_id}/members - Enrol a learner (admin)
    DELETE /groups/{group_id}/members/{student_id} - Remove a learner (teacher or admin)
    GET /groups/{group_id}/sessions - The group's calendar
    POST /groups/{group_id}/sessions - Schedule a group session
    DELETE /sessions/{session_id} - Delete a session without attendance
    PATCH /groups/{group_id}/members/{student_id}/phase - Advance a learner's phase
    POST /groups/{group_id}/members/{student_id}/rank-up - Promote by one rank
    PUT /groups/{group_id}/members/{student_id}/rank - Set an explicit rank
    POST /students/{student_id}/transfer - Move a learner to another group
    GET /students/{student_id}/rank - Current rank and unlocked features
    POST /exams/outcomes - Apply an exam result
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Response, status

from ..api.dependencies import get_engine, get_principal
from ..core.principal import Principal
from ..engine import SchedulingEngine
from ..schemas.group import (
    ExamOutcome,
    GroupJoin,
    GroupSessionCreate,
    GroupSessionResponse,
    GroupTransfer,
    MemberAdd,
    MembershipResponse,
    PhaseUpdate,
    RankInfo,
    RankUp,
    SetRank,
)
from ._utils import unwrap

router = APIRouter(tags=["groups"])


@router.post("/groups/{group_id}/join", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
def join_group(
    group_id: str,
    payload: Optional[GroupJoin] = Body(None),
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> MembershipResponse:
    return unwrap(engine.join_group(principal, group_id, payload))


@router.post("/groups/{group_id}/leave", response_model=MembershipResponse)
def leave_group(
    group_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> MembershipResponse:
    return unwrap(engine.leave_group(principal, group_id))


@router.get("/groups/{group_id}/members", response_model=List[MembershipResponse])
def list_members(
    group_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> List[MembershipResponse]:
    return unwrap(engine.list_group_members(principal, group_id))


@router.post("/groups/{group_id}/members", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
def add_member(
    group_id: str,
    payload: MemberAdd,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> MembershipResponse:
    return unwrap(engine.add_member(principal, group_id, payload))


@router.delete("/groups/{group_id}/members/{student_id}", response_model=MembershipResponse)
def remove_member(
    group_id: str,
    student_id: str,
    reason: Optional[str] = None,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> MembershipResponse:
    return unwrap(engine.remove_member(principal, group_id, student_id, {"reason": reason}))


@router.get("/groups/{group_id}/sessions", response_model=List[GroupSessionResponse])
def list_group_sessions(
    group_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> List[GroupSessionResponse]:
    return unwrap(engine.list_group_sessions(principal, group_id))


@router.post(
    "/groups/{group_id}/sessions", response_model=GroupSessionResponse, status_code=status.HTTP_201_CREATED
)
def create_group_session(
    group_id: str,
    payload: GroupSessionCreate,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> GroupSessionResponse:
    return unwrap(engine.create_group_session(principal, group_id, payload))


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group_session(
    session_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> Response:
    unwrap(engine.delete_group_session(principal, session_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)



@router.patch("/groups/{group_id}/members/{student_id}/phase", response_model=MembershipResponse)
def update_phase(
    group_id: str,
    student_id: str,
    payload: PhaseUpdate,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> MembershipResponse:
    return unwrap(engine.update_phase(principal, group_id, student_id, payload))


@router.post("/groups/{group_id}/members/{student_id}/rank-up", response_model=MembershipResponse)
def rank_up(
    group_id: str,
    student_id: str,
    payload: Optional[RankUp] = Body(None),
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> MembershipResponse:
    return unwrap(engine.rank_up(principal, group_id, student_id, payload))


@router.put("/groups/{group_id}/members/{student_id}/rank", response_model=MembershipResponse)
def set_rank(
    group_id: str,
    student_id: str,
    payload: SetRank,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> MembershipResponse:
    return unwrap(engine.set_rank(principal, group_id, student_id, payload))


@router.post("/students/{student_id}/transfer", response_model=MembershipResponse)
def transfer_group(
    student_id: str,
    payload: GroupTransfer,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> MembershipResponse:
    return unwrap(engine.transfer_group(principal, student_id, payload))


@router.get("/students/{student_id}/rank", response_model=RankInfo)
def get_rank_info(
    student_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> RankInfo:
    return unwrap(engine.get_rank_info(principal, student_id))


@router.post("/exams/outcomes", response_model=MembershipResponse)
def record_exam_outcome(
    payload: ExamOutcome,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> MembershipResponse:
    return unwrap(engine.record_exam_outcome(principal, payload))
