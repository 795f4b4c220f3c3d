# carelog/service/rescheduler.py
import logging
from datetime import date
from typing import Optional

from ..errors import CareLogError, ConsistencyWarning, NotFoundError, PersistenceError, ValidationError
from ..models import RescheduleOutcome
from .board import AppointmentBoard
from .crud_patients import get_assigned_plans
from .store import SERVICES_COLL
from .view_merger import parse_composite_id

logger = logging.getLogger(__name__)


def validate_new_date(action: str, current: date, new_date: Optional[date], today: date) -> date:
    if new_date is None:
        raise ValidationError(action, "select a valid date")
    if new_date < today:
        raise ValidationError(action, "cannot reschedule into the past")
    if new_date == current:
        raise ValidationError(action, "select a day different from the current one")
    return new_date


class Rescheduler:
    """Moves a planned instance or a logged service to another day."""

    async def reschedule(self, board: AppointmentBoard, appointment_id: str, is_plan_based: bool,
                         new_date: Optional[date], today: Optional[date] = None) -> RescheduleOutcome:
        action = f"reschedule appointment {appointment_id}"
        today = today or date.today()
        item = board.find(appointment_id)
        if item is None:
            raise NotFoundError(action, "appointment not found in the current view")
        validate_new_date(action, item.date, new_date, today)
        if is_plan_based != item.is_plan_based:
            kind = "a planned instance" if item.is_plan_based else "a logged service"
            raise ValidationError(action, f"appointment is {kind}, the request says otherwise")

        # the item leaves this view now; a failure reloads it from storage
        board.remove(appointment_id)
        try:
            warning = None
            if item.is_plan_based:
                warning = await self._move_instance(appointment_id, new_date, board.store, action)
            elif not await board.store.update(SERVICES_COLL, appointment_id, {"date": new_date}):
                raise NotFoundError(action, f"service {appointment_id} not found")
        except CareLogError as e:
            logger.error("[reschedule] %s failed: %s", action, e)
            await board.reload()
            if isinstance(e, PersistenceError):
                raise PersistenceError(action, "could not move the appointment", e) from e
            raise

        if warning:
            logger.info("[reschedule] %s", warning)
            message = warning.message
        else:
            message = f"Moved to {new_date.strftime('%d/%m/%Y')}"
        return RescheduleOutcome(appointment_id=appointment_id, new_date=new_date,
                                 dropped_duplicate=warning is not None, message=message, items=list(board.items))

    async def _move_instance(self, appointment_id, new_date, store, action) -> Optional[ConsistencyWarning]:
        parsed = parse_composite_id(appointment_id)
        if parsed is None:
            raise ValidationError(action, "invalid plan appointment id")
        patient_id, plan_id, old_date = parsed

        assigned = await get_assigned_plans(store, patient_id)
        target = next((ap for ap in assigned if ap.plan_id == plan_id), None)
        if target is None:
            raise NotFoundError(action, f"plan {plan_id} is not assigned to patient {patient_id}")
        index = next((i for i, inst in enumerate(target.scheduled_instances) if inst.date == old_date), None)
        if index is None:
            raise NotFoundError(action, f"no instance scheduled on {old_date}")

        warning = None
        clash = any(i != index and inst.date == new_date for i, inst in enumerate(target.scheduled_instances))
        if clash:
            # destination wins, the source would duplicate its date
            del target.scheduled_instances[index]
            warning = ConsistencyWarning(
                action, f"an instance already existed on {new_date.strftime('%d/%m/%y')}, "
                        "the moved duplicate was removed")
        else:
            target.scheduled_instances[index] = target.scheduled_instances[index].model_copy(update={"date": new_date})
        target.scheduled_instances.sort(key=lambda inst: inst.sort_key())

        await store.replace_assigned_plans(patient_id, [ap.model_dump() for ap in assigned])
        return warning
