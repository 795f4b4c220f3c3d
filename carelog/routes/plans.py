# carelog/routes/plans.py
from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_store
from ..models import Plan, PlanUpdate
from ..service.crud_plans import add_plan, delete_plan, get_plan, list_plans, update_plan

router = APIRouter()


@router.post("/", status_code=201)
async def create_plan(plan: Plan, store=Depends(get_store)):
    return {"status": "ok", "plan": await add_plan(store, plan)}


@router.get("/")
async def fetch_plans(store=Depends(get_store)):
    return {"status": "ok", "plans": await list_plans(store)}


@router.get("/{plan_id}")
async def fetch_plan(plan_id: str, store=Depends(get_store)):
    plan = await get_plan(store, plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    return {"status": "ok", "plan": plan}


@router.patch("/{plan_id}")
async def edit_plan(plan_id: str, changes: PlanUpdate, store=Depends(get_store)):
    return {"status": "ok", "plan": await update_plan(store, plan_id, changes)}


@router.delete("/{plan_id}")
async def remove_plan(plan_id: str, store=Depends(get_store)):
    await delete_plan(store, plan_id)
    return {"status": "ok"}
