# carelog/service/crud_plans.py
from typing import List, Optional

from ..errors import NotFoundError, ValidationError
from ..models import Plan, PlanUpdate
from .store import PLANS_COLL


async def add_plan(store, plan: Plan) -> Plan:
    if not plan.name or not plan.name.strip():
        raise ValidationError("add plan", "name is required")
    doc = plan.model_dump(exclude={"id"})
    doc["name"] = doc["name"].strip()
    return Plan.model_validate(await store.create(PLANS_COLL, doc))


async def get_plan(store, plan_id: str) -> Optional[Plan]:
    doc = await store.get_by_id(PLANS_COLL, plan_id)
    return Plan.model_validate(doc) if doc else None


async def list_plans(store) -> List[Plan]:
    return [Plan.model_validate(d) for d in await store.list_all(PLANS_COLL, [("name", "asc")])]


async def update_plan(store, plan_id: str, changes: PlanUpdate) -> Plan:
    if "name" in changes.model_fields_set and not (changes.name or "").strip():
        raise ValidationError("update plan", "name cannot be empty")
    if "default_duration" in changes.model_fields_set and changes.default_duration is None:
        raise ValidationError("update plan", "default duration cannot be removed")
    if not await store.get_by_id(PLANS_COLL, plan_id):
        raise NotFoundError("update plan", f"plan {plan_id} not found")
    await store.update(PLANS_COLL, plan_id, changes.model_dump(exclude_unset=True))
    return await get_plan(store, plan_id)


async def delete_plan(store, plan_id: str) -> None:
    # assignments referencing the plan are left alone and render as the unknown plan
    if not await store.get_by_id(PLANS_COLL, plan_id):
        raise NotFoundError("delete plan", f"plan {plan_id} not found")
    await store.delete(PLANS_COLL, plan_id)
