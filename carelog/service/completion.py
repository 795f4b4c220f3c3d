# carelog/service/completion.py
import logging
from datetime import datetime
from typing import Optional, Set

from ..errors import CareLogError, NotFoundError, PersistenceError, ToggleInProgressError, ValidationError
from ..models import AppointmentView, Plan, ServiceCreate, ToggleOutcome
from ..utils.timeutils import add_minutes, is_unset, now_hhmm, time_or_unset
from .board import AppointmentBoard
from .crud_services import add_service, delete_service, get_service
from .view_merger import (composite_id, effective_duration, parse_composite_id, plan_description,
                          plan_name_from_description, service_view)

logger = logging.getLogger(__name__)


class CompletionReconciler:
    """
    Planned <-> logged transitions for appointment items.

    Completing a planned instance logs a Service on the instance's own date;
    un-completing a logged plan service deletes it and brings the planned
    instance back. Toggles on the same item id are serialized; a second toggle
    while one is pending is rejected.
    """

    def __init__(self):
        self._in_flight: Set[str] = set()

    def is_pending(self, item_id: str) -> bool:
        return item_id in self._in_flight

    async def toggle(self, board: AppointmentBoard, item_id: str, completed: bool,
                     user_id: Optional[str] = None, now: Optional[datetime] = None) -> ToggleOutcome:
        action = f"{'complete' if completed else 'un-complete'} appointment {item_id}"
        if item_id in self._in_flight:
            raise ToggleInProgressError(action, "an update for this item is already in progress")
        item = board.find(item_id)
        if item is None:
            raise NotFoundError(action, "appointment not found in the current view")

        self._in_flight.add(item_id)
        previous = board.is_completed(item_id)
        board.set_completed(item_id, completed)
        try:
            if completed and item.is_plan_based:
                return await self._complete_plan(board, item, user_id, now)
            if not completed and not item.is_plan_based:
                return await self._uncomplete_service(board, item)
            if completed:
                # the service row still exists, only the flag was out of sync
                logger.warning("[completion] re-checking service %s, view state was inconsistent", item_id)
                return self._outcome(board, item, True, f"Service {item.description} marked as completed")
            logger.info("[completion] plan item %s unchecked, nothing to persist", item_id)
            return self._outcome(board, item, False, f"Plan {item.plan_name or ''} marked as to do")
        except CareLogError as e:
            logger.error("[completion] %s failed: %s", action, e)
            board.set_completed(item_id, previous)
            await board.reload()
            if isinstance(e, PersistenceError):
                raise PersistenceError(action, "could not update the completion state", e) from e
            raise
        finally:
            self._in_flight.discard(item_id)

    def _outcome(self, board, item, completed, message, replaced_by=None) -> ToggleOutcome:
        return ToggleOutcome(appointment_id=item.id, completed=completed, replaced_by=replaced_by,
                             message=message, items=list(board.items))

    def _plan_for_item(self, board: AppointmentBoard, item: AppointmentView) -> Plan:
        parsed = parse_composite_id(item.id)
        if parsed is None:
            raise ValidationError(f"complete appointment {item.id}", "invalid plan item id")
        _, plan_id, _ = parsed
        plan = board.snapshot.plans.get(plan_id)
        if plan is None:
            raise NotFoundError(f"complete appointment {item.id}", f"plan {plan_id} not found")
        return plan

    async def _complete_plan(self, board, item, user_id, now) -> ToggleOutcome:
        plan = self._plan_for_item(board, item)
        start = now_hhmm(now) if is_unset(item.time) else item.time
        duration = item.duration_minutes if item.duration_minutes is not None else plan.default_duration
        service = await add_service(board.store, ServiceCreate(
            patient_id=item.patient_id,
            date=item.date,   # the scheduled day, even when completed late
            start_time=start,
            end_time=add_minutes(start, duration),
            description=plan_description(item.plan_name or plan.name),
            user_id=user_id,
            plan_id=plan.id,
        ))
        logger.info("[completion] service %s created from %s", service.id, item.id)
        board.replace(item.id, service_view(service, board.snapshot.patients, board.snapshot.companies))
        return self._outcome(board, item, True, f"Plan {plan.name} logged as a service", replaced_by=service.id)

    async def _uncomplete_service(self, board, item) -> ToggleOutcome:
        service = await get_service(board.store, item.id)
        if service is None:
            raise NotFoundError(f"un-complete appointment {item.id}", "service not found")
        await delete_service(board.store, item.id)
        board.remove(item.id)
        logger.info("[completion] service %s deleted", item.id)

        plan = self._resolve_plan(board, service)
        if plan is None:
            return self._outcome(board, item, False, f"Service {item.description} removed")

        planned_id = composite_id(service.patient_id, plan.id, service.date)
        if not board.has(planned_id):
            board.add(self._planned_item(board, item, plan, planned_id))
        return self._outcome(board, item, False, f"Service {item.description} back to do", replaced_by=planned_id)

    def _resolve_plan(self, board, service) -> Optional[Plan]:
        plans = board.snapshot.plans
        if service.plan_id and service.plan_id in plans:
            return plans[service.plan_id]
        name = plan_name_from_description(service.description)
        if name is None:
            return None
        return next((p for p in plans.values() if p.name == name), None)

    def _planned_item(self, board, item, plan, planned_id) -> AppointmentView:
        patient = board.snapshot.patients.get(item.patient_id)
        assigned = None
        if patient:
            assigned = next((ap for ap in patient.assigned_plans if ap.plan_id == plan.id), None)
        duration = effective_duration(assigned, plan) if assigned else plan.default_duration
        # the service start may have been filled in at completion time
        time = item.time
        if assigned:
            instance = next((i for i in assigned.scheduled_instances if i.date == item.date), None)
            if instance:
                time = time_or_unset(instance.time)
        company = board.snapshot.companies.get(patient.company_id) if patient else None
        return AppointmentView(
            id=planned_id,
            patient_id=item.patient_id,
            patient_name=item.patient_name,
            patient_contact=patient.contact if patient else item.patient_contact,
            company_name=company.name if company else item.company_name,
            time=time,
            date=item.date,
            description=plan_description(plan.name),
            plan_name=plan.name,
            is_plan_based=True,
            is_completed=False,
            duration_minutes=duration,
        )
