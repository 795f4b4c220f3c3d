# tests/conftest.py
import asyncio
from datetime import date
from types import SimpleNamespace

import pytest

from carelog.models import AssignedPlan, Company, PatientCreate, Plan, ScheduledInstance
from carelog.service.board import SnapshotCache
from carelog.service.crud_companies import add_company
from carelog.service.crud_patients import add_patient, save_assigned_plans
from carelog.service.crud_plans import add_plan

from fakes import InMemoryStore


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def cache():
    return SnapshotCache()


async def _seed(store):
    company = await add_company(store, Company(name="Cooperativa Sole"))
    medicazione = await add_plan(store, Plan(name="Medicazione", default_duration=30))
    prelievo = await add_plan(store, Plan(name="Prelievo", default_duration=15))
    patient = await add_patient(store, PatientCreate(name="Mario Rossi", company_id=company.id,
                                                     address="Via Roma 1", contact="3331234567"))
    await save_assigned_plans(store, patient.id, [
        AssignedPlan(plan_id=medicazione.id, total_instances_required=4, scheduled_instances=[
            ScheduledInstance(date=date(2024, 6, 10), time="10:00"),
            ScheduledInstance(date=date(2024, 6, 12), time="10:00"),
        ]),
        AssignedPlan(plan_id=prelievo.id, custom_duration=20, scheduled_instances=[
            ScheduledInstance(date=date(2024, 6, 10)),
        ]),
    ])
    return SimpleNamespace(store=store, company=company, medicazione=medicazione, prelievo=prelievo,
                           patient=patient)


@pytest.fixture
def seeded(store):
    return run(_seed(store))
