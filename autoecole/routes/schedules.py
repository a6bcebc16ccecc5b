# autoecole/routes/schedules.py
"""
Schedule routes.

Router Endpoints:
    POST / - Create a slot for the calling instructor (or any, for admins)
    GET / - List an instructor's slots
    GET /available - Bookable slots, outside the freeze window
    PATCH /{slot_id} - Partial update of a slot
    DELETE /{slot_id} - Cancel a slot, cascading to bookings for admins
    POST /{slot_id}/finalize - Mark a finished slot completed
"""

import datetime as dt
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..api.dependencies import get_engine, get_principal
from ..core.enums import LessonType
from ..core.principal import Principal
from ..engine import SchedulingEngine
from ..schemas.schedule import (
    SlotCreate,
    SlotDeletionResponse,
    SlotFilters,
    SlotResponse,
    SlotUpdate,
)
from ._utils import unwrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.get("/available", response_model=List[SlotResponse])
def list_available_slots(
    lesson_type: Optional[LessonType] = Query(None),
    owner_id: Optional[str] = Query(None),
    from_date: Optional[dt.date] = Query(None),
    to_date: Optional[dt.date] = Query(None),
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> List[SlotResponse]:
    filters = SlotFilters(
        lesson_type=lesson_type, owner_id=owner_id, from_date=from_date, to_date=to_date
    )
    return unwrap(engine.list_available_slots(principal, filters))


@router.get("", response_model=List[SlotResponse])
def list_instructor_slots(
    owner_id: Optional[str] = Query(None),
    from_date: Optional[dt.date] = Query(None),
    to_date: Optional[dt.date] = Query(None),
    include_cancelled: bool = Query(False),
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> List[SlotResponse]:
    return unwrap(
        engine.list_instructor_slots(principal, owner_id, from_date, to_date, include_cancelled)
    )


@router.post("", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    payload: SlotCreate,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> SlotResponse:
    return unwrap(engine.create_slot(principal, payload))


@router.patch("/{slot_id}", response_model=SlotResponse)
def update_slot(
    slot_id: str,
    payload: SlotUpdate,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> SlotResponse:
    return unwrap(engine.update_slot(principal, slot_id, payload))


@router.delete("/{slot_id}", response_model=SlotDeletionResponse)
def delete_slot(
    slot_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> SlotDeletionResponse:
    return unwrap(engine.delete_slot(principal, slot_id))


@router.post("/{slot_id}/finalize", response_model=SlotResponse)
def finalize_slot(
    slot_id: str,
    principal: Principal = Depends(get_principal),
    engine: SchedulingEngine = Depends(get_engine),
) -> SlotResponse:
    return unwrap(engine.finalize_slot(principal, slot_id))
