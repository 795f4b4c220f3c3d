from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from carelog.dependencies import get_cache, get_reconciler, get_rescheduler, get_store
from carelog.main import app
from carelog.service.board import SnapshotCache
from carelog.service.completion import CompletionReconciler
from carelog.service.rescheduler import Rescheduler

FUTURE = date.today() + timedelta(days=30)


@pytest.fixture
def client(seeded):
    cache, reconciler, rescheduler = SnapshotCache(), CompletionReconciler(), Rescheduler()
    app.dependency_overrides[get_store] = lambda: seeded.store
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    app.dependency_overrides[get_rescheduler] = lambda: rescheduler
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_company_crud(client):
    created = client.post("/api/companies/", json={"name": "Assistenza Nord"})
    assert created.status_code == 201
    company_id = created.json()["company"]["id"]

    res = client.patch(f"/api/companies/{company_id}", json={"contact": "02 1234"})
    assert res.json()["company"]["contact"] == "02 1234"

    names = [c["name"] for c in client.get("/api/companies/").json()["companies"]]
    assert names == ["Assistenza Nord", "Cooperativa Sole"]

    assert client.delete(f"/api/companies/{company_id}").json() == {"status": "ok"}
    assert client.get(f"/api/companies/{company_id}").status_code == 404


def test_patient_gets_next_sequential_id(client, seeded):
    res = client.post("/api/patients/", json={"name": "Lucia Bianchi", "company_id": seeded.company.id})
    assert res.status_code == 201
    assert res.json()["patient"]["id"] == "p2"


def test_generate_instances(client, seeded):
    start = FUTURE
    res = client.post(f"/api/patients/{seeded.patient.id}/assigned-plans/{seeded.prelievo.id}/generate",
                      json={"start_date": start.isoformat(), "total_required": 3,
                            "weekdays": [1, 3, 5], "time": "08:30"})
    body = res.json()
    assert res.status_code == 200
    assert body["generated"] == 3
    assert body["assigned_plan"]["total_instances_required"] == 3
    assert body["assigned_plan"]["custom_duration"] == 20
    for inst in body["assigned_plan"]["scheduled_instances"]:
        day = date.fromisoformat(inst["date"])
        assert day >= start
        assert (day.weekday() + 1) % 7 in (1, 3, 5)
        assert inst["time"] == "08:30"


def test_generate_rejects_empty_weekdays(client, seeded):
    res = client.post(f"/api/patients/{seeded.patient.id}/assigned-plans/{seeded.prelievo.id}/generate",
                      json={"start_date": FUTURE.isoformat(), "total_required": 3, "weekdays": []})
    assert res.status_code == 422
    assert "action" in res.json()


def test_appointments_for_day(client, seeded):
    res = client.get("/api/appointments/", params={"start": "2024-06-10"})
    body = res.json()
    assert [a["plan_name"] for a in body["appointments"]] == ["Medicazione", "Prelievo"]
    assert body["appointments"][1]["time"] == "N/D"
    assert body["appointments"][1]["duration_minutes"] == 20
    assert len(body["groups"]) == 2


def test_completion_round_trip(client, seeded):
    planned_id = f"plan-{seeded.patient.id}-{seeded.medicazione.id}-2024-06-10"
    res = client.post(f"/api/appointments/{planned_id}/completion", json={"completed": True, "user_id": "n1"})
    body = res.json()
    assert res.status_code == 200
    service_id = body["replaced_by"]
    assert service_id

    service = client.get(f"/api/services/{service_id}").json()["service"]
    assert service["description"] == "Piano: Medicazione"
    assert service["end_time"] == "10:30"

    res = client.post(f"/api/appointments/{service_id}/completion", json={"completed": False})
    assert res.json()["replaced_by"] == planned_id
    assert client.get(f"/api/services/{service_id}").status_code == 404


def test_unknown_appointment_is_404(client):
    res = client.post("/api/appointments/nope/completion", json={"completed": True})
    assert res.status_code == 404


def test_reschedule_service(client, seeded):
    created = client.post("/api/services/", json={
        "patient_id": seeded.patient.id, "date": FUTURE.isoformat(),
        "start_time": "09:00", "end_time": "09:40", "description": "Visita"}).json()["service"]
    target = FUTURE + timedelta(days=2)
    res = client.post(f"/api/appointments/{created['id']}/reschedule",
                      json={"is_plan_based": False, "new_date": target.isoformat()})
    assert res.status_code == 200
    assert res.json()["message"] == f"Moved to {target.strftime('%d/%m/%Y')}"
    assert client.get(f"/api/services/{created['id']}").json()["service"]["date"] == target.isoformat()


def test_reschedule_into_the_past_is_rejected(client, seeded):
    planned_id = f"plan-{seeded.patient.id}-{seeded.medicazione.id}-2024-06-10"
    res = client.post(f"/api/appointments/{planned_id}/reschedule",
                      json={"is_plan_based": True, "new_date": "2024-06-11"})
    assert res.status_code == 422


def test_invalid_service_times(client, seeded):
    res = client.post("/api/services/", json={
        "patient_id": seeded.patient.id, "date": "2024-06-10",
        "start_time": "9:00", "end_time": "10:00", "description": "Visita"})
    assert res.status_code == 422


def test_storage_outage_maps_to_503(client, seeded):
    seeded.store.fail_on.add("query")
    res = client.get("/api/statistics/")
    assert res.status_code == 503
    assert "simulated outage" in res.json()["detail"]


def test_remaining_counts(client, seeded):
    res = client.get(f"/api/patients/{seeded.patient.id}/remaining").json()
    assert res["remaining"][seeded.medicazione.id] == 4
    assert res["remaining"][seeded.prelievo.id] is None


def test_patch_with_null_clears_optional_field(client, seeded):
    client.patch(f"/api/companies/{seeded.company.id}", json={"contact": "02 1234"})
    res = client.patch(f"/api/companies/{seeded.company.id}", json={"contact": None})
    assert res.status_code == 200
    assert res.json()["company"]["contact"] is None
    assert res.json()["company"]["name"] == "Cooperativa Sole"


def test_reschedule_with_wrong_kind_is_rejected(client, seeded):
    created = client.post("/api/services/", json={
        "patient_id": seeded.patient.id, "date": FUTURE.isoformat(),
        "start_time": "09:00", "end_time": "09:40", "description": "Visita"}).json()["service"]
    res = client.post(f"/api/appointments/{created['id']}/reschedule",
                      json={"is_plan_based": True, "new_date": (FUTURE + timedelta(days=1)).isoformat()})
    assert res.status_code == 422
    assert client.get(f"/api/services/{created['id']}").json()["service"]["date"] == FUTURE.isoformat()
