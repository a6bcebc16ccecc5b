# autoecole/routes/bookings.py
"""
Booking routes.

Router Endpoints:
    POST / - Book a seat in a slot
    GET /ready-for-completion - Finished lessons awaiting an outcome
    POST /{booking_id}/cancel - Cancel the caller's booking
    POST /{booking_id}/complete - Record a lesson outcome
    GET /students/{student_id} - Booking history of a learner
    GET /students/{student_id}/progress - Driving progress summary
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, status

from ..api.dependencies import get_engine, get_principal
from ..core.principal import Principal
from ..engine import SchedulingEngine
from ..schemas.booking import (
    BookingCancel,
    BookingComplete,
    BookingCreate,
    BookingResponse,
    StudentProgressSummary,
)
from ._utils import unwrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> BookingResponse:
    return unwrap(engine.create_booking(principal, payload))


@router.get("/ready-for-completion", response_model=List[BookingResponse])
def list_bookings_ready_for_completion(
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> List[BookingResponse]:
    return unwrap(engine.list_bookings_ready_for_completion(principal))


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str,
    payload: Optional[BookingCancel] = Body(None),
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> BookingResponse:
    return unwrap(engine.cancel_booking(principal, booking_id, payload))


@router.post("/{booking_id}/complete", response_model=BookingResponse)
def complete_booking(
    booking_id: str,
    payload: BookingComplete,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> BookingResponse:
    return unwrap(engine.complete_booking(principal, booking_id, payload))


@router.get("/students/{student_id}", response_model=List[BookingResponse])
def list_student_bookings(
    student_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> List[BookingResponse]:
    return unwrap(engine.list_student_bookings(principal, student_id))


@router.get("/students/{student_id}/progress", response_model=StudentProgressSummary)
def get_student_progress(
    student_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> StudentProgressSummary:
    return unwrap(engine.get_student_progress(principal, student_id))
