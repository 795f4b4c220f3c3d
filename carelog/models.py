# carelog/models.py
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .utils.timeutils import is_valid_time, to_day

PLAN_DESCRIPTION_PREFIX = "Piano: "
UNKNOWN_PATIENT = "Paziente Sconosciuto"
UNKNOWN_COMPANY = "Azienda Sconosciuta"
UNKNOWN_PLAN = "Piano Sconosciuto"


def _check_hhmm(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_time(value):
        raise ValueError("time must match HH:MM")
    return value


class Company(BaseModel):
    id: Optional[str] = None
    name: str
    address: Optional[str] = None
    contact: Optional[str] = None


class CompanyUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None


class Plan(BaseModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    default_duration: int = Field(gt=0)  # minutes


class PlanUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    default_duration: Optional[int] = Field(default=None, gt=0)


class ScheduledInstance(BaseModel):
    date: date
    time: Optional[str] = None   # HH:MM

    @field_validator("date", mode="before")
    @classmethod
    def _truncate(cls, value):
        return to_day(value)

    @field_validator("time", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        return value or None

    def sort_key(self):
        # unset times sort after any HH:MM
        return (self.date, self.time or "~")


class AssignedPlan(BaseModel):
    plan_id: str
    custom_duration: Optional[int] = None
    total_instances_required: Optional[int] = None
    scheduled_instances: List[ScheduledInstance] = Field(default_factory=list)


class Patient(BaseModel):
    id: Optional[str] = None
    name: str
    company_id: str
    address: str = ""
    contact: str = ""
    assigned_plans: List[AssignedPlan] = Field(default_factory=list)


class PatientCreate(BaseModel):
    name: str
    company_id: str
    address: str = ""
    contact: str = ""


class PatientUpdate(BaseModel):
    name: Optional[str] = None
    company_id: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None


class Service(BaseModel):
    id: Optional[str] = None
    patient_id: str
    company_id: str
    date: date
    start_time: str
    end_time: str
    description: str
    duration_minutes: int = 0
    user_id: str = "unknown"
    plan_id: Optional[str] = None   # absent on legacy records

    @field_validator("date", mode="before")
    @classmethod
    def _truncate(cls, value):
        return to_day(value)


class ServiceCreate(BaseModel):
    patient_id: str
    date: date
    start_time: str
    end_time: str
    description: str
    user_id: Optional[str] = None
    plan_id: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _times(cls, value):
        return _check_hhmm(value)


class AppointmentView(BaseModel):
    id: str
    patient_id: str
    patient_name: str
    patient_contact: Optional[str] = None
    company_name: str
    time: str                       # HH:MM or 'N/D'
    date: date
    description: str = ""
    plan_name: Optional[str] = None
    is_plan_based: bool
    is_completed: bool
    duration_minutes: Optional[int] = None


class SortOrder(str, Enum):
    asc = "asc"     # patient pages
    desc = "desc"   # home and calendar


class AppointmentGroup(BaseModel):
    key: str
    patient_id: str
    time: str
    items: List[AppointmentView]
    is_complete: bool


class InstanceGenerationRequest(BaseModel):
    start_date: Optional[date] = None
    total_required: Optional[int] = None
    weekdays: List[int] = Field(default_factory=list)   # 0 = Sunday
    time: Optional[str] = None


class CompletionToggle(BaseModel):
    completed: bool
    user_id: Optional[str] = None


class RescheduleRequest(BaseModel):
    is_plan_based: bool
    new_date: Optional[date] = None


class ToggleOutcome(BaseModel):
    appointment_id: str
    completed: bool
    replaced_by: Optional[str] = None   # id of the entry that took its place
    message: str
    items: List[AppointmentView] = Field(default_factory=list)


class RescheduleOutcome(BaseModel):
    appointment_id: str
    new_date: date
    dropped_duplicate: bool = False
    message: str
    items: List[AppointmentView] = Field(default_factory=list)


class UsageTotals(BaseModel):
    name: str
    total_minutes: int = 0
    service_count: int = 0


class Statistics(BaseModel):
    total_minutes: int = 0
    total_services: int = 0
    total_duration: str = "0 min"
    per_company: Dict[str, UsageTotals] = Field(default_factory=dict)
    per_patient: Dict[str, UsageTotals] = Field(default_factory=dict)
