# carelog/service/board.py
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models import AppointmentGroup, AppointmentView, Company, Patient, Plan, Service, SortOrder
from .crud_companies import list_companies
from .crud_patients import list_patients
from .crud_plans import list_plans
from .crud_services import list_services, list_services_by_patient, list_services_for_period
from .view_merger import DateFilter, build_appointment_view, group_appointments, sort_appointments

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    plans: Dict[str, Plan] = field(default_factory=dict)
    companies: Dict[str, Company] = field(default_factory=dict)
    patients: Dict[str, Patient] = field(default_factory=dict)


class SnapshotCache:
    """
    Read-through cache of plans, companies and patients (with assigned plans).
    Reloaded whenever the store reports a mutation since the last load.
    """

    def __init__(self):
        self._snapshot: Optional[Snapshot] = None
        self._version = None
        self._store_id = None

    def invalidate(self):
        self._snapshot = None

    async def get(self, store) -> Snapshot:
        if self._snapshot is not None and self._version == store.version and self._store_id == id(store):
            return self._snapshot
        version = store.version
        snapshot = Snapshot(
            plans={p.id: p for p in await list_plans(store)},
            companies={c.id: c for c in await list_companies(store)},
            patients={p.id: p for p in await list_patients(store)},
        )
        self._snapshot, self._version, self._store_id = snapshot, version, id(store)
        logger.debug("[cache] loaded %d plans, %d companies, %d patients",
                     len(snapshot.plans), len(snapshot.companies), len(snapshot.patients))
        return snapshot


class AppointmentBoard:
    """
    In-memory appointment list for one date range (optionally one patient).

    Mutations are applied here first; callers reload() when the persistence
    call behind a mutation fails instead of trying to undo it by hand.
    """

    def __init__(self, store, cache: SnapshotCache, date_filter: Optional[DateFilter] = None,
                 order: SortOrder = SortOrder.desc, patient_id: Optional[str] = None):
        self.store = store
        self.cache = cache
        self.date_filter = date_filter or DateFilter()
        self.order = order
        self.patient_id = patient_id
        self.snapshot = Snapshot()
        self.items: List[AppointmentView] = []
        self.completion: Dict[str, bool] = {}

    async def _fetch_services(self) -> List[Service]:
        if self.patient_id:
            return await list_services_by_patient(self.store, self.patient_id)
        if self.date_filter.start and self.date_filter.end:
            return await list_services_for_period(self.store, self.date_filter.start, self.date_filter.end)
        return await list_services(self.store)

    async def load(self) -> "AppointmentBoard":
        self.snapshot = await self.cache.get(self.store)
        patients = self.snapshot.patients
        if self.patient_id:
            patients = {k: v for k, v in patients.items() if k == self.patient_id}
        services = await self._fetch_services()
        self.items = build_appointment_view(services, patients, self.snapshot.plans, self.snapshot.companies,
                                            self.date_filter, self.order)
        self.completion = {i.id: i.is_completed for i in self.items}
        return self

    async def reload(self):
        self.cache.invalidate()
        try:
            await self.load()
        except Exception as e:
            # the caller is already handling the original failure
            logger.error("[board] reload failed: %s", e)

    def find(self, item_id: str) -> Optional[AppointmentView]:
        return next((i for i in self.items if i.id == item_id), None)

    def has(self, item_id: str) -> bool:
        return self.find(item_id) is not None

    def is_completed(self, item_id: str) -> bool:
        item = self.find(item_id)
        return self.completion.get(item_id, item.is_completed if item else False)

    def set_completed(self, item_id: str, value: bool):
        self.completion[item_id] = value

    def remove(self, item_id: str):
        self.items = [i for i in self.items if i.id != item_id]
        self.completion.pop(item_id, None)

    def add(self, item: AppointmentView):
        self.items = sort_appointments(self.items + [item], self.order)
        self.completion[item.id] = item.is_completed

    def replace(self, old_id: str, item: AppointmentView):
        self.remove(old_id)
        self.add(item)

    def groups(self) -> List[AppointmentGroup]:
        return group_appointments(self.items, self.completion)
