from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

import goalvault.goals as goals_router
from goalvault.services import snapshot_service
from test_snapshot_service import FakeSnapshotConnection

DAY = 24 * 60 * 60


def _app_with_connection(system, connection) -> FastAPI:
    app = FastAPI()
    app.include_router(goals_router.router)

    async def override_db():
        yield connection

    app.dependency_overrides[goals_router.get_db_connection] = override_db
    app.dependency_overrides[goals_router.get_system] = lambda: system
    app.dependency_overrides[goals_router.get_current_account] = lambda: "alice"
    return app


def test_successful_mutation_is_saved(system, fund) -> None:
    fund("alice", 1000)
    connection = FakeSnapshotConnection()

    with TestClient(_app_with_connection(system, connection)) as client:
        created = client.post("/goals", json={"currency": "USDC", "target_amount": 500, "duration": 10 * DAY})
        deposited = client.post("/goals/1/deposits", json={"amount": 300})

    assert created.status_code == 201
    assert deposited.status_code == 200
    assert connection.writes == 2
    stored = connection.rows[snapshot_service.SNAPSHOT_NAME]
    assert stored["ledger"]["balances"]["USDC"]["alice"] == 700
    assert stored["manager"]["positions"]["1"]["principal"] == 300


def test_failed_save_rolls_back_the_change_and_returns_503(system, fund) -> None:
    fund("alice", 1000)
    connection = FakeSnapshotConnection()

    with TestClient(_app_with_connection(system, connection)) as client:
        client.post("/goals", json={"currency": "USDC", "target_amount": 500, "duration": 10 * DAY})
        connection.fail_writes = True
        failed = client.post("/goals/1/deposits", json={"amount": 300})
        details_after_failure = client.get("/goals/1")

        connection.fail_writes = False
        retried = client.post("/goals/1/deposits", json={"amount": 300})

    assert failed.status_code == 503
    assert details_after_failure.json()["goal"]["deposited_amount"] == "0"
    assert retried.status_code == 200
    assert retried.json()["deposited_amount"] == "300"

    assert system.ledger.balance_of("USDC", "alice") == 700
    assert system.manager.get_position(1).principal == 300
    assert len(system.manager.get_goal_deposits(1)) == 1
    stored = connection.rows[snapshot_service.SNAPSHOT_NAME]
    assert stored["manager"]["positions"]["1"]["shares"] == system.manager.get_position(1).shares


def test_domain_error_skips_the_save(system) -> None:
    connection = FakeSnapshotConnection()

    with TestClient(_app_with_connection(system, connection)) as client:
        client.post("/goals", json={"currency": "USDC", "target_amount": 500, "duration": 10 * DAY})
        missing = client.post("/goals/99/deposits", json={"amount": 300})

    assert missing.status_code == 404
    assert connection.writes == 1
