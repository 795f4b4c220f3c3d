# carelog/service/view_merger.py
"""
Builds the unified appointment list shown on the home, calendar and patient
pages. Logged services and planned instances are merged so that a visit is
represented once: a planned instance already covered by a service is hidden.
"""
import re
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..models import (PLAN_DESCRIPTION_PREFIX, UNKNOWN_COMPANY, UNKNOWN_PATIENT, UNKNOWN_PLAN, AppointmentGroup,
                      AppointmentView, AssignedPlan, Company, Patient, Plan, ScheduledInstance, Service, SortOrder)
from ..utils.timeutils import NOT_SPECIFIED, is_unset, time_or_unset

_COMPOSITE_ID = re.compile(r"^plan-(?P<patient>.+?)-(?P<plan>.+)-(?P<day>\d{4}-\d{2}-\d{2})$")
_PLAN_DESCRIPTION = re.compile(r"^" + re.escape(PLAN_DESCRIPTION_PREFIX) + r"(.+)$")


@dataclass(frozen=True)
class DateFilter:
    start: Optional[date] = None
    end: Optional[date] = None

    @classmethod
    def day(cls, value: date) -> "DateFilter":
        return cls(value, value)

    def contains(self, value: date) -> bool:
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True


def composite_id(patient_id: str, plan_id: str, day: date) -> str:
    return f"plan-{patient_id}-{plan_id}-{day.isoformat()}"


def parse_composite_id(appointment_id: str) -> Optional[Tuple[str, str, date]]:
    m = _COMPOSITE_ID.match(appointment_id or "")
    if not m:
        return None
    try:
        day = date.fromisoformat(m.group("day"))
    except ValueError:
        return None
    return m.group("patient"), m.group("plan"), day


def plan_description(plan_name: str) -> str:
    return f"{PLAN_DESCRIPTION_PREFIX}{plan_name}"


def plan_name_from_description(description: Optional[str]) -> Optional[str]:
    m = _PLAN_DESCRIPTION.match(description or "")
    return m.group(1) if m else None


def service_references_plan(service: Service, plan_id: str, plan_name: str) -> bool:
    """
    A service refers to a plan through its plan_id. Legacy records without one
    are matched on the description, which is only a substring heuristic.
    """
    if service.plan_id:
        return service.plan_id == plan_id
    description = service.description or ""
    if description == plan_description(plan_name):
        return True
    return plan_name != UNKNOWN_PLAN and plan_name in description


def service_covers_instance(service: Service, patient_id: str, plan_id: str, plan_name: str,
                            instance: ScheduledInstance) -> bool:
    if service.patient_id != patient_id or service.date != instance.date:
        return False
    if not service_references_plan(service, plan_id, plan_name):
        return False
    return is_unset(instance.time) or is_unset(service.start_time) or service.start_time == instance.time


def effective_duration(assigned: AssignedPlan, plan: Optional[Plan]) -> Optional[int]:
    if assigned.custom_duration is not None:
        return assigned.custom_duration
    return plan.default_duration if plan else None


def _time_key(item: AppointmentView):
    return (1, "") if is_unset(item.time) else (0, item.time)


def sort_appointments(items: List[AppointmentView], order: SortOrder = SortOrder.desc) -> List[AppointmentView]:
    sign = -1 if order == SortOrder.desc else 1
    return sorted(items, key=lambda i: (sign * i.date.toordinal(), _time_key(i), i.patient_name))


def service_view(service: Service, patients: Mapping[str, Patient],
                 companies: Mapping[str, Company]) -> AppointmentView:
    patient = patients.get(service.patient_id)
    company = companies.get(service.company_id)
    return AppointmentView(
        id=service.id,
        patient_id=service.patient_id,
        patient_name=patient.name if patient else UNKNOWN_PATIENT,
        patient_contact=patient.contact if patient else None,
        company_name=company.name if company else UNKNOWN_COMPANY,
        time=time_or_unset(service.start_time),
        date=service.date,
        description=service.description,
        plan_name=None,
        is_plan_based=False,
        is_completed=True,
        duration_minutes=service.duration_minutes,
    )


def planned_view(patient: Patient, assigned: AssignedPlan, instance: ScheduledInstance,
                 plans: Mapping[str, Plan], companies: Mapping[str, Company]) -> AppointmentView:
    plan = plans.get(assigned.plan_id)
    plan_name = plan.name if plan else UNKNOWN_PLAN
    company = companies.get(patient.company_id)
    return AppointmentView(
        id=composite_id(patient.id, assigned.plan_id, instance.date),
        patient_id=patient.id,
        patient_name=patient.name,
        patient_contact=patient.contact,
        company_name=company.name if company else UNKNOWN_COMPANY,
        time=time_or_unset(instance.time),
        date=instance.date,
        description=plan_description(plan_name),
        plan_name=plan_name,
        is_plan_based=True,
        is_completed=False,
        duration_minutes=effective_duration(assigned, plan),
    )


def _by_id(records: Iterable) -> Dict[str, object]:
    if isinstance(records, Mapping):
        return dict(records)
    return {r.id: r for r in records}


def build_appointment_view(services: Iterable[Service], patients: Iterable[Patient], plans: Iterable[Plan],
                           companies: Iterable[Company], date_filter: Optional[DateFilter] = None,
                           order: SortOrder = SortOrder.desc) -> List[AppointmentView]:
    date_filter = date_filter or DateFilter()
    patients_map = _by_id(patients)
    plans_map = _by_id(plans)
    companies_map = _by_id(companies)

    in_range = [s for s in services if date_filter.contains(s.date)]
    items = [service_view(s, patients_map, companies_map) for s in in_range]

    emitted = set()
    for patient in patients_map.values():
        patient_services = [s for s in in_range if s.patient_id == patient.id]
        for assigned in patient.assigned_plans:
            plan = plans_map.get(assigned.plan_id)
            plan_name = plan.name if plan else UNKNOWN_PLAN
            for instance in assigned.scheduled_instances:
                if not date_filter.contains(instance.date):
                    continue
                instance_id = composite_id(patient.id, assigned.plan_id, instance.date)
                if instance_id in emitted:
                    continue
                emitted.add(instance_id)
                if any(service_covers_instance(s, patient.id, assigned.plan_id, plan_name, instance)
                       for s in patient_services):
                    continue
                items.append(planned_view(patient, assigned, instance, plans_map, companies_map))

    return sort_appointments(items, order)


def group_key(item: AppointmentView) -> str:
    return f"{item.patient_id.strip()}-{item.time or NOT_SPECIFIED}"


def group_appointments(items: Iterable[AppointmentView],
                       completion: Optional[Mapping[str, bool]] = None) -> List[AppointmentGroup]:
    """
    Groups items sharing patient and time, in first-seen order. Completion is
    resolved per item; a group is complete only when all of its items are.
    """
    completion = completion or {}
    groups: Dict[str, List[AppointmentView]] = {}
    for item in items:
        groups.setdefault(group_key(item), []).append(item)
    return [
        AppointmentGroup(
            key=key,
            patient_id=members[0].patient_id,
            time=members[0].time,
            items=members,
            is_complete=all(completion.get(m.id, m.is_completed) for m in members),
        )
        for key, members in groups.items()
    ]
