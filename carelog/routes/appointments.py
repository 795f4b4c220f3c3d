# carelog/routes/appointments.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_cache, get_reconciler, get_rescheduler, get_store
from ..models import CompletionToggle, RescheduleRequest, SortOrder
from ..service.board import AppointmentBoard
from ..service.crud_services import get_service
from ..service.view_merger import DateFilter, parse_composite_id

router = APIRouter()


async def _board_for_item(appointment_id: str, store, cache) -> AppointmentBoard:
    """Loads the single-day board that contains the given appointment."""
    parsed = parse_composite_id(appointment_id)
    if parsed:
        day = parsed[2]
    else:
        service = await get_service(store, appointment_id)
        if not service:
            raise HTTPException(status_code=404, detail="Appointment not found")
        day = service.date
    return await AppointmentBoard(store, cache, DateFilter.day(day)).load()


@router.get("/")
async def fetch_appointments(
    start: Optional[date] = Query(None, description="YYYY-MM-DD, defaults to today"),
    end: Optional[date] = Query(None, description="YYYY-MM-DD, defaults to start"),
    order: SortOrder = SortOrder.desc,
    store=Depends(get_store),
    cache=Depends(get_cache),
):
    start = start or date.today()
    board = await AppointmentBoard(store, cache, DateFilter(start, end or start), order).load()
    return {"status": "ok", "appointments": board.items, "groups": board.groups()}


@router.post("/{appointment_id}/completion")
async def toggle_completion(appointment_id: str, toggle: CompletionToggle, store=Depends(get_store),
                            cache=Depends(get_cache), reconciler=Depends(get_reconciler)):
    board = await _board_for_item(appointment_id, store, cache)
    outcome = await reconciler.toggle(board, appointment_id, toggle.completed, toggle.user_id)
    return {"status": "ok", **outcome.model_dump()}


@router.post("/{appointment_id}/reschedule")
async def reschedule_appointment(appointment_id: str, request: RescheduleRequest, store=Depends(get_store),
                                 cache=Depends(get_cache), rescheduler=Depends(get_rescheduler)):
    board = await _board_for_item(appointment_id, store, cache)
    outcome = await rescheduler.reschedule(board, appointment_id, request.is_plan_based, request.new_date)
    return {"status": "ok", **outcome.model_dump()}
