# carelog/service/statistics.py
from datetime import date
from typing import Iterable, Mapping, Optional

from ..models import UNKNOWN_COMPANY, UNKNOWN_PATIENT, Company, Patient, Service, Statistics, UsageTotals
from ..utils.timeutils import format_duration
from .crud_companies import list_companies
from .crud_services import list_services, list_services_for_period
from .store import PATIENTS_COLL


def summarize(services: Iterable[Service], companies: Mapping[str, Company],
              patients: Mapping[str, Patient]) -> Statistics:
    """Minutes and counts overall, per company (as logged) and per patient."""
    stats = Statistics()
    for s in services:
        minutes = s.duration_minutes or 0
        stats.total_minutes += minutes
        stats.total_services += 1

        company = companies.get(s.company_id)
        per_company = stats.per_company.setdefault(
            s.company_id, UsageTotals(name=company.name if company else UNKNOWN_COMPANY))
        per_company.total_minutes += minutes
        per_company.service_count += 1

        patient = patients.get(s.patient_id)
        per_patient = stats.per_patient.setdefault(
            s.patient_id, UsageTotals(name=patient.name if patient else UNKNOWN_PATIENT))
        per_patient.total_minutes += minutes
        per_patient.service_count += 1

    stats.total_duration = format_duration(stats.total_minutes)
    return stats


async def compute_statistics(store, start: Optional[date] = None, end: Optional[date] = None) -> Statistics:
    if start or end:
        services = await list_services_for_period(store, start or date.min, end or date.max)
    else:
        services = await list_services(store)
    companies = {c.id: c for c in await list_companies(store)}
    # names only, the assigned-plans sub-collections are not needed here
    patients = {p["id"]: Patient.model_validate(p) for p in await store.list_all(PATIENTS_COLL)}
    return summarize(services, companies, patients)
