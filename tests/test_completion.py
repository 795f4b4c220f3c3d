import asyncio
from datetime import date, datetime

import pytest

from carelog.errors import NotFoundError, PersistenceError, ToggleInProgressError
from carelog.models import ServiceCreate
from carelog.service.board import AppointmentBoard
from carelog.service.completion import CompletionReconciler
from carelog.service.crud_services import add_service, list_services
from carelog.service.view_merger import DateFilter

DAY = date(2024, 6, 10)


def _board(store, cache, day=DAY):
    return asyncio.run(AppointmentBoard(store, cache, DateFilter.day(day)).load())


def _planned_id(seeded, plan):
    return f"plan-{seeded.patient.id}-{plan.id}-{DAY.isoformat()}"


def test_complete_then_uncomplete_restores_planned_instance(seeded, cache):
    board = _board(seeded.store, cache)
    reconciler = CompletionReconciler()
    planned_id = _planned_id(seeded, seeded.medicazione)

    outcome = asyncio.run(reconciler.toggle(board, planned_id, True, user_id="nurse-1"))
    services = asyncio.run(list_services(seeded.store))
    assert len(services) == 1
    service = services[0]
    assert (service.date, service.start_time, service.end_time) == (DAY, "10:00", "10:30")
    assert service.description == "Piano: Medicazione"
    assert service.duration_minutes == 30
    assert service.plan_id == seeded.medicazione.id
    assert service.user_id == "nurse-1"
    assert service.company_id == seeded.company.id
    assert outcome.replaced_by == service.id
    assert not board.has(planned_id)
    assert board.find(service.id).is_completed

    outcome = asyncio.run(reconciler.toggle(board, service.id, False))
    assert asyncio.run(list_services(seeded.store)) == []
    assert outcome.replaced_by == planned_id
    restored = board.find(planned_id)
    assert restored.is_plan_based and not restored.is_completed
    assert restored.time == "10:00"
    assert restored.duration_minutes == 30

    # and a fresh load agrees with the in-memory board
    assert _board(seeded.store, cache).items == board.items


def test_completing_late_keeps_the_scheduled_date(seeded, cache):
    board = _board(seeded.store, cache)
    asyncio.run(CompletionReconciler().toggle(board, _planned_id(seeded, seeded.medicazione), True,
                                              now=datetime(2024, 6, 20, 18, 0)))
    assert asyncio.run(list_services(seeded.store))[0].date == DAY


def test_unset_time_uses_now_and_custom_duration(seeded, cache):
    board = _board(seeded.store, cache)
    planned_id = _planned_id(seeded, seeded.prelievo)
    assert board.find(planned_id).duration_minutes == 20

    asyncio.run(CompletionReconciler().toggle(board, planned_id, True, now=datetime(2024, 6, 10, 14, 5)))
    service = asyncio.run(list_services(seeded.store))[0]
    assert (service.start_time, service.end_time, service.duration_minutes) == ("14:05", "14:25", 20)


def test_uncomplete_restores_the_instance_time_not_the_logged_start(seeded, cache):
    board = _board(seeded.store, cache)
    reconciler = CompletionReconciler()
    planned_id = _planned_id(seeded, seeded.prelievo)

    outcome = asyncio.run(reconciler.toggle(board, planned_id, True, now=datetime(2024, 6, 10, 14, 5)))
    assert board.find(outcome.replaced_by).time == "14:05"

    asyncio.run(reconciler.toggle(board, outcome.replaced_by, False))
    restored = board.find(planned_id)
    assert restored.time == "N/D"
    assert restored.duration_minutes == 20
    assert _board(seeded.store, cache).find(planned_id) == restored


def test_legacy_service_without_plan_id_is_resurrected(seeded, cache):
    asyncio.run(add_service(seeded.store, ServiceCreate(
        patient_id=seeded.patient.id, date=DAY, start_time="10:00", end_time="10:30",
        description="Piano: Medicazione")))
    board = _board(seeded.store, cache)
    service_item = next(i for i in board.items if not i.is_plan_based)
    assert not board.has(_planned_id(seeded, seeded.medicazione))

    asyncio.run(CompletionReconciler().toggle(board, service_item.id, False))
    assert board.has(_planned_id(seeded, seeded.medicazione))


def test_manual_service_is_simply_removed(seeded, cache):
    manual = asyncio.run(add_service(seeded.store, ServiceCreate(
        patient_id=seeded.patient.id, date=DAY, start_time="16:00", end_time="16:45",
        description="Controllo pressione")))
    board = _board(seeded.store, cache)
    before = {i.id for i in board.items}

    outcome = asyncio.run(CompletionReconciler().toggle(board, manual.id, False))
    assert outcome.replaced_by is None
    assert {i.id for i in board.items} == before - {manual.id}


def test_anomalous_toggles_do_not_touch_storage(seeded, cache):
    manual = asyncio.run(add_service(seeded.store, ServiceCreate(
        patient_id=seeded.patient.id, date=DAY, start_time="16:00", end_time="16:45", description="Visita")))
    board = _board(seeded.store, cache)
    reconciler = CompletionReconciler()
    version = seeded.store.version

    board.set_completed(manual.id, False)
    asyncio.run(reconciler.toggle(board, manual.id, True))
    assert board.is_completed(manual.id)

    planned_id = _planned_id(seeded, seeded.medicazione)
    asyncio.run(reconciler.toggle(board, planned_id, False))
    assert not board.is_completed(planned_id)
    assert seeded.store.version == version


def test_failure_reverts_flag_and_reloads(seeded, cache):
    board = _board(seeded.store, cache)
    planned_id = _planned_id(seeded, seeded.medicazione)
    seeded.store.fail_on.add("create")

    with pytest.raises(PersistenceError) as exc:
        asyncio.run(CompletionReconciler().toggle(board, planned_id, True))
    assert "complete appointment" in str(exc.value)
    assert "simulated outage" in str(exc.value)
    assert board.has(planned_id)
    assert not board.is_completed(planned_id)
    assert asyncio.run(list_services(seeded.store)) == []


def test_second_toggle_on_pending_item_is_rejected(seeded, cache):
    board = _board(seeded.store, cache)
    reconciler = CompletionReconciler()
    planned_id = _planned_id(seeded, seeded.medicazione)
    other_id = _planned_id(seeded, seeded.prelievo)

    async def scenario():
        gate = asyncio.Event()
        original_create = seeded.store.create

        async def slow_create(kind, data):
            await gate.wait()
            return await original_create(kind, data)

        seeded.store.create = slow_create
        first = asyncio.create_task(reconciler.toggle(board, planned_id, True))
        await asyncio.sleep(0)
        assert reconciler.is_pending(planned_id)
        with pytest.raises(ToggleInProgressError):
            await reconciler.toggle(board, planned_id, True)
        # a different item is not blocked
        second = asyncio.create_task(reconciler.toggle(board, other_id, True))
        await asyncio.sleep(0)
        assert reconciler.is_pending(other_id)
        gate.set()
        await asyncio.gather(first, second)

    asyncio.run(scenario())
    assert not reconciler.is_pending(planned_id)
    assert len(asyncio.run(list_services(seeded.store))) == 2


def test_unknown_item(seeded, cache):
    board = _board(seeded.store, cache)
    with pytest.raises(NotFoundError):
        asyncio.run(CompletionReconciler().toggle(board, "nope", True))
