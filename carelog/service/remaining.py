# carelog/service/remaining.py
from typing import Dict, Iterable, Optional

from ..models import UNKNOWN_PLAN, AssignedPlan, Plan, Service
from .view_merger import service_references_plan


def remaining_instances(assigned: AssignedPlan, services: Iterable[Service], plan_name: str) -> Optional[int]:
    """
    Sessions still owed for an assignment, or None when no total is tracked.
    `services` should already be limited to the assignment's patient.
    """
    total = assigned.total_instances_required
    if total is None or total <= 0:
        return None
    done = sum(1 for s in services if service_references_plan(s, assigned.plan_id, plan_name))
    return max(0, total - done)


def remaining_for_patient(assigned_plans: Iterable[AssignedPlan], services: Iterable[Service],
                          plans: Dict[str, Plan]) -> Dict[str, Optional[int]]:
    services = list(services)
    result = {}
    for ap in assigned_plans:
        plan = plans.get(ap.plan_id)
        result[ap.plan_id] = remaining_instances(ap, services, plan.name if plan else UNKNOWN_PLAN)
    return result
