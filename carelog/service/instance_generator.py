# carelog/service/instance_generator.py
import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional

from ..errors import NotFoundError, ValidationError
from ..models import AssignedPlan, InstanceGenerationRequest, Plan, ScheduledInstance
from ..utils.timeutils import is_valid_time, js_weekday
from .crud_patients import get_assigned_plans, normalize_assigned_plans
from .store import PATIENTS_COLL, PLANS_COLL

logger = logging.getLogger(__name__)

WEEKDAY_LABELS = {1: "Lun", 2: "Mar", 3: "Mer", 4: "Gio", 5: "Ven", 6: "Sab", 0: "Dom"}


class GenerationError(ValidationError):
    pass


def generate_instances(start_date: Optional[date], total_required: Optional[int],
                       weekdays: Iterable[int], time: Optional[str] = None) -> List[ScheduledInstance]:
    """
    Walks forward a day at a time from start_date (inclusive) and emits an
    instance for every day whose weekday (Sunday = 0) is selected, until
    total_required instances exist.

    Returns an empty list when start_date is missing, total_required is not
    positive or no weekday is selected. Raises GenerationError when the scan
    bound is exceeded.
    """
    selected = {d for d in weekdays if 0 <= d <= 6}
    if start_date is None or not total_required or total_required <= 0 or not selected:
        return []

    limit = total_required * 7 + 30
    instances: List[ScheduledInstance] = []
    current = start_date
    scanned = 0
    while len(instances) < total_required:
        if scanned >= limit:
            logger.error("Exceeded generation limit for %d instances from %s", total_required, start_date)
            raise GenerationError("generate instances",
                                  f"could not place {total_required} dates within {limit} days")
        if js_weekday(current) in selected:
            instances.append(ScheduledInstance(date=current, time=time))
        current += timedelta(days=1)
        scanned += 1
    return instances


def validate_generation(request: InstanceGenerationRequest) -> None:
    action = "generate instances"
    if not request.total_required or request.total_required <= 0:
        raise ValidationError(action, "total instances must be greater than zero")
    if request.start_date is None:
        raise ValidationError(action, "a start date is required")
    if not request.weekdays:
        raise ValidationError(action, "select at least one weekday")
    if any(d < 0 or d > 6 for d in request.weekdays):
        raise ValidationError(action, "weekdays must be between 0 (Sunday) and 6 (Saturday)")
    if request.time and not is_valid_time(request.time):
        raise ValidationError(action, f"invalid time {request.time}, use HH:MM")


async def apply_generated_instances(store, patient_id: str, plan_id: str,
                                    request: InstanceGenerationRequest) -> AssignedPlan:
    """
    Replaces the scheduled instances of one assignment with a generated batch
    and persists the patient's whole assignment set.
    """
    action = "generate instances"
    validate_generation(request)
    if not await store.get_by_id(PATIENTS_COLL, patient_id):
        raise NotFoundError(action, f"patient {patient_id} not found")
    plan_doc = await store.get_by_id(PLANS_COLL, plan_id)
    if not plan_doc:
        raise NotFoundError(action, f"plan {plan_id} not found")
    plan = Plan.model_validate(plan_doc)

    generated = generate_instances(request.start_date, request.total_required, request.weekdays, request.time)
    if len(generated) != request.total_required:
        raise GenerationError(action, f"could not generate exactly {request.total_required} dates")

    assigned = await get_assigned_plans(store, patient_id)
    target = next((ap for ap in assigned if ap.plan_id == plan_id), None)
    if target is None:
        target = AssignedPlan(plan_id=plan_id)
        assigned.append(target)
    target.scheduled_instances = generated
    target.total_instances_required = request.total_required

    normalized = normalize_assigned_plans(assigned, await _plans_by_id(store), action)
    await store.replace_assigned_plans(patient_id, [ap.model_dump() for ap in normalized])
    logger.info("[generator] %d dates applied for %s on %s (%s)", len(generated), plan.name, patient_id,
                ", ".join(WEEKDAY_LABELS[d] for d in sorted(set(request.weekdays))))
    return next(ap for ap in normalized if ap.plan_id == plan_id)


async def _plans_by_id(store):
    return {p["id"]: Plan.model_validate(p) for p in await store.list_all(PLANS_COLL)}
