# carelog/service/crud_patients.py
import logging
from typing import Dict, List, Optional

from ..database import settings
from ..errors import NotFoundError, ValidationError
from ..models import AssignedPlan, Patient, PatientCreate, PatientUpdate, Plan
from ..utils.timeutils import is_valid_time
from .store import COMPANIES_COLL, PATIENTS_COLL, PLANS_COLL

logger = logging.getLogger(__name__)


async def add_patient(store, data: PatientCreate) -> Patient:
    """
    Creates a patient under the next sequential id (p1, p2, ...).
    The assigned-plans sub-collection starts empty.
    """
    if not data.name or not data.name.strip():
        raise ValidationError("add patient", "name is required")
    if not data.company_id:
        raise ValidationError("add patient", "company is required")
    if not await store.get_by_id(COMPANIES_COLL, data.company_id):
        raise NotFoundError("add patient", f"company {data.company_id} not found")

    patient_id = await store.next_sequential_id(settings.PATIENT_COUNTER, settings.PATIENT_ID_PREFIX)
    doc = data.model_dump()
    doc["name"] = doc["name"].strip()
    await store.create_with_id(PATIENTS_COLL, patient_id, doc)
    logger.info("[patients] created %s", patient_id)
    return Patient(id=patient_id, **doc)


async def get_patient(store, patient_id: str) -> Optional[Patient]:
    doc = await store.get_by_id(PATIENTS_COLL, patient_id)
    if not doc:
        return None
    doc["assigned_plans"] = await store.list_assigned_plans(patient_id)
    return Patient.model_validate(doc)


async def list_patients(store) -> List[Patient]:
    patients = []
    for doc in await store.list_all(PATIENTS_COLL, [("name", "asc")]):
        doc["assigned_plans"] = await store.list_assigned_plans(doc["id"])
        patients.append(Patient.model_validate(doc))
    return patients


async def update_patient(store, patient_id: str, changes: PatientUpdate) -> Patient:
    data = changes.model_dump(exclude_unset=True)
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("update patient", "name cannot be empty")
    if "company_id" in data and not data["company_id"]:
        raise ValidationError("update patient", "company is required")
    if not await store.get_by_id(PATIENTS_COLL, patient_id):
        raise NotFoundError("update patient", f"patient {patient_id} not found")
    if data.get("company_id") and not await store.get_by_id(COMPANIES_COLL, data["company_id"]):
        raise NotFoundError("update patient", f"company {data['company_id']} not found")
    for key in ("address", "contact"):
        if key in data and data[key] is None:
            data[key] = ""
    # services keep the company they were logged under
    await store.update(PATIENTS_COLL, patient_id, data)
    return await get_patient(store, patient_id)


async def delete_patient(store, patient_id: str) -> None:
    """Deletes the patient and its assigned plans. Logged services are kept."""
    if not await store.get_by_id(PATIENTS_COLL, patient_id):
        raise NotFoundError("delete patient", f"patient {patient_id} not found")
    await store.delete_assigned_plans(patient_id)
    await store.delete(PATIENTS_COLL, patient_id)
    logger.info("[patients] deleted %s, services left in place", patient_id)


async def get_assigned_plans(store, patient_id: str) -> List[AssignedPlan]:
    if not patient_id:
        return []
    return [AssignedPlan.model_validate(doc) for doc in await store.list_assigned_plans(patient_id)]


def normalize_assigned_plans(assigned: List[AssignedPlan], plans: Dict[str, Plan],
                             action: str = "save assigned plans") -> List[AssignedPlan]:
    """
    Validates an assignment set and returns a normalized copy:
    custom durations equal to the plan default are dropped and instances sorted.
    """
    seen_plans = set()
    normalized = []
    for ap in assigned:
        plan = plans.get(ap.plan_id)
        if plan is None:
            raise NotFoundError(action, f"plan {ap.plan_id} not found")
        if ap.plan_id in seen_plans:
            raise ValidationError(action, f"plan {plan.name} is assigned more than once")
        seen_plans.add(ap.plan_id)

        effective = ap.custom_duration if ap.custom_duration is not None else plan.default_duration
        if effective is None or effective <= 0:
            raise ValidationError(action, f"plan {plan.name} has an invalid duration")
        if ap.total_instances_required is not None and ap.total_instances_required <= 0:
            raise ValidationError(action, f"plan {plan.name} needs a total greater than zero")

        dates = set()
        for inst in ap.scheduled_instances:
            if inst.time and not is_valid_time(inst.time):
                raise ValidationError(action, f"invalid time {inst.time} for {plan.name} on {inst.date}, use HH:MM")
            if inst.date in dates:
                raise ValidationError(action, f"{plan.name} is scheduled twice on {inst.date}")
            dates.add(inst.date)

        normalized.append(AssignedPlan(
            plan_id=ap.plan_id,
            custom_duration=None if ap.custom_duration == plan.default_duration else ap.custom_duration,
            total_instances_required=ap.total_instances_required,
            scheduled_instances=sorted(ap.scheduled_instances, key=lambda i: i.sort_key()),
        ))
    return normalized


async def save_assigned_plans(store, patient_id: str, assigned: List[AssignedPlan]) -> List[AssignedPlan]:
    """Validates, normalizes and persists the full set of a patient's assigned plans."""
    if not await store.get_by_id(PATIENTS_COLL, patient_id):
        raise NotFoundError("save assigned plans", f"patient {patient_id} not found")
    plans = {p["id"]: Plan.model_validate(p) for p in await store.list_all(PLANS_COLL)}
    normalized = normalize_assigned_plans(assigned, plans)
    await store.replace_assigned_plans(patient_id, [ap.model_dump() for ap in normalized])
    return normalized
