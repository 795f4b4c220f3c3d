# carelog/service/crud_services.py
import logging
from datetime import date
from typing import List, Optional

from ..errors import NotFoundError, ValidationError
from ..models import Service, ServiceCreate
from ..utils.timeutils import duration_minutes, to_minutes
from .store import PATIENTS_COLL, SERVICES_COLL, Filter

logger = logging.getLogger(__name__)


async def add_service(store, data: ServiceCreate) -> Service:
    """
    Logs a performed service. The company is copied from the patient at this
    moment and never follows later reassignments.
    """
    action = "log service"
    if not data.patient_id or not data.description or not data.description.strip():
        raise ValidationError(action, "patient and description are required")
    start, end = to_minutes(data.start_time), to_minutes(data.end_time)
    if start is None or end is None:
        raise ValidationError(action, "start and end time must match HH:MM")
    if end < start:
        raise ValidationError(action, "end time must be after start time")

    patient = await store.get_by_id(PATIENTS_COLL, data.patient_id)
    if not patient:
        raise NotFoundError(action, f"patient {data.patient_id} not found")
    company_id = patient.get("company_id")
    if not company_id:
        raise ValidationError(action, f"patient {data.patient_id} has no company")

    doc = {
        "patient_id": data.patient_id,
        "company_id": company_id,
        "date": data.date,
        "start_time": data.start_time,
        "end_time": data.end_time,
        "description": data.description.strip(),
        "duration_minutes": duration_minutes(data.start_time, data.end_time),
        "user_id": data.user_id or "unknown",
        "plan_id": data.plan_id,
    }
    created = await store.create(SERVICES_COLL, doc)
    logger.info("[services] logged %s for %s on %s", created["id"], data.patient_id, data.date)
    return Service.model_validate(created)


async def get_service(store, service_id: str) -> Optional[Service]:
    doc = await store.get_by_id(SERVICES_COLL, service_id)
    return Service.model_validate(doc) if doc else None


async def delete_service(store, service_id: str) -> None:
    if not await store.get_by_id(SERVICES_COLL, service_id):
        raise NotFoundError("delete service", f"service {service_id} not found")
    await store.delete(SERVICES_COLL, service_id)


async def list_services(store) -> List[Service]:
    docs = await store.list_all(SERVICES_COLL, [("date", "desc"), ("start_time", "desc")])
    return [Service.model_validate(d) for d in docs]


async def list_services_for_period(store, start: date, end: date) -> List[Service]:
    docs = await store.query(
        SERVICES_COLL,
        [Filter("date", ">=", start), Filter("date", "<=", end)],
        [("date", "asc"), ("start_time", "asc")],
    )
    return [Service.model_validate(d) for d in docs]


async def list_services_by_patient(store, patient_id: str) -> List[Service]:
    docs = await store.query(SERVICES_COLL, [Filter("patient_id", "==", patient_id)], [("date", "desc")])
    return [Service.model_validate(d) for d in docs]


async def list_services_by_company_for_period(store, company_id: str, start: date, end: date) -> List[Service]:
    docs = await store.query(
        SERVICES_COLL,
        [Filter("company_id", "==", company_id), Filter("date", ">=", start), Filter("date", "<=", end)],
        [("date", "asc"), ("start_time", "asc")],
    )
    return [Service.model_validate(d) for d in docs]
