# carelog/routes/patients.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_cache, get_store
from ..models import AssignedPlan, InstanceGenerationRequest, PatientCreate, PatientUpdate, SortOrder
from ..service.board import AppointmentBoard
from ..service.crud_patients import (add_patient, delete_patient, get_assigned_plans, get_patient, list_patients,
                                     save_assigned_plans, update_patient)
from ..service.crud_plans import list_plans
from ..service.crud_services import list_services_by_patient
from ..service.instance_generator import apply_generated_instances
from ..service.remaining import remaining_for_patient

router = APIRouter()


async def _require_patient(store, patient_id: str):
    patient = await get_patient(store, patient_id)
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


@router.post("/", status_code=201)
async def create_patient(data: PatientCreate, store=Depends(get_store)):
    return {"status": "ok", "patient": await add_patient(store, data)}


@router.get("/")
async def fetch_patients(store=Depends(get_store)):
    return {"status": "ok", "patients": await list_patients(store)}


@router.get("/{patient_id}")
async def fetch_patient(patient_id: str, store=Depends(get_store)):
    return {"status": "ok", "patient": await _require_patient(store, patient_id)}


@router.patch("/{patient_id}")
async def edit_patient(patient_id: str, changes: PatientUpdate, store=Depends(get_store)):
    return {"status": "ok", "patient": await update_patient(store, patient_id, changes)}


@router.delete("/{patient_id}")
async def remove_patient(patient_id: str, store=Depends(get_store)):
    """Logged services of the patient are kept."""
    await delete_patient(store, patient_id)
    return {"status": "ok"}


@router.get("/{patient_id}/assigned-plans")
async def fetch_assigned_plans(patient_id: str, store=Depends(get_store)):
    await _require_patient(store, patient_id)
    return {"status": "ok", "assigned_plans": await get_assigned_plans(store, patient_id)}


@router.put("/{patient_id}/assigned-plans")
async def replace_assigned_plans(patient_id: str, assigned: List[AssignedPlan], store=Depends(get_store)):
    saved = await save_assigned_plans(store, patient_id, assigned)
    return {"status": "ok", "assigned_plans": saved}


@router.post("/{patient_id}/assigned-plans/{plan_id}/generate")
async def generate_plan_instances(patient_id: str, plan_id: str, request: InstanceGenerationRequest,
                                  store=Depends(get_store)):
    assigned = await apply_generated_instances(store, patient_id, plan_id, request)
    return {"status": "ok", "assigned_plan": assigned, "generated": len(assigned.scheduled_instances)}


@router.get("/{patient_id}/remaining")
async def fetch_remaining(patient_id: str, store=Depends(get_store)):
    patient = await _require_patient(store, patient_id)
    plans = {p.id: p for p in await list_plans(store)}
    services = await list_services_by_patient(store, patient_id)
    return {"status": "ok", "remaining": remaining_for_patient(patient.assigned_plans, services, plans)}


@router.get("/{patient_id}/appointments")
async def fetch_patient_appointments(patient_id: str, store=Depends(get_store), cache=Depends(get_cache)):
    await _require_patient(store, patient_id)
    board = await AppointmentBoard(store, cache, order=SortOrder.asc, patient_id=patient_id).load()
    return {"status": "ok", "appointments": board.items}
