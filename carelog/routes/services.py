# carelog/routes/services.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_store
from ..models import ServiceCreate
from ..service.crud_services import (add_service, delete_service, get_service, list_services,
                                     list_services_by_company_for_period, list_services_by_patient,
                                     list_services_for_period)

router = APIRouter()


@router.post("/", status_code=201)
async def log_service(data: ServiceCreate, store=Depends(get_store)):
    return {"status": "ok", "service": await add_service(store, data)}


@router.get("/")
async def fetch_services(
    start: Optional[date] = Query(None, description="YYYY-MM-DD"),
    end: Optional[date] = Query(None, description="YYYY-MM-DD, defaults to start"),
    patient_id: Optional[str] = None,
    company_id: Optional[str] = None,
    store=Depends(get_store),
):
    if patient_id:
        services = await list_services_by_patient(store, patient_id)
    elif start and company_id:
        services = await list_services_by_company_for_period(store, company_id, start, end or start)
    elif start:
        services = await list_services_for_period(store, start, end or start)
    else:
        services = await list_services(store)
    return {"status": "ok", "services": services}


@router.get("/{service_id}")
async def fetch_service(service_id: str, store=Depends(get_store)):
    service = await get_service(store, service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    return {"status": "ok", "service": service}


@router.delete("/{service_id}")
async def remove_service(service_id: str, store=Depends(get_store)):
    await delete_service(store, service_id)
    return {"status": "ok"}
