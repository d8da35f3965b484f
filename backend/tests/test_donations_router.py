from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

import goalvault.donations as donations_router
from goalvault.bootstrap import ROUTER_ACCOUNT


def _app_with_overrides(system, account: str) -> FastAPI:
    app = FastAPI()
    app.include_router(donations_router.router)

    async def override_db():
        yield None

    app.dependency_overrides[donations_router.get_db_connection] = override_db
    app.dependency_overrides[donations_router.get_system] = lambda: system
    app.dependency_overrides[donations_router.get_current_account] = lambda: account
    return app


def test_split_preview(system) -> None:
    app = _app_with_overrides(system, "alice")

    with TestClient(app) as client:
        response = client.post(
            "/donations/split-preview", json={"total_yield": 1000, "donation_percentage": 3000}
        )
        invalid = client.post(
            "/donations/split-preview", json={"total_yield": 1000, "donation_percentage": 10001}
        )

    assert response.json() == {"depositor_amount": "700", "donation_amount": "300"}
    assert invalid.status_code == 422


def test_stats_reflect_routed_yield(system, fund) -> None:
    fund(ROUTER_ACCOUNT, 1000)
    system.router.route_yield("goal-manager", "USDC", 1000, 2500, "alice")
    app = _app_with_overrides(system, "alice")

    with TestClient(app) as client:
        stats = client.get("/donations/stats/usdc")
        user = client.get("/donations/users/alice/USDC")

    assert stats.json() == {
        "currency": "USDC",
        "total_donated": "250",
        "total_yield_routed": "1000",
        "route_count": 1,
        "donation_recipient": "donation-sink",
        "paused": False,
    }
    assert user.json()["total_donated"] == "250"


def test_admin_endpoints_reject_other_accounts(system) -> None:
    app = _app_with_overrides(system, "mallory")

    with TestClient(app) as client:
        paused = client.put("/donations/paused", json={"paused": True})
        token = client.put("/donations/tokens/DAI", json={"allowed": False})
        recipient = client.put("/donations/recipient", json={"recipient": "mallory"})
        rescue = client.post(
            "/donations/rescue", json={"currency": "USDC", "amount": 1, "recipient": "mallory"}
        )

    assert [r.status_code for r in (paused, token, recipient, rescue)] == [403, 403, 403, 403]
    assert system.router.paused is False


def test_admin_can_pause_and_update_whitelist(system) -> None:
    app = _app_with_overrides(system, "admin")

    with TestClient(app) as client:
        paused = client.put("/donations/paused", json={"paused": True})
        delisted = client.put("/donations/tokens/dai", json={"allowed": False})
        status = client.get("/donations/tokens/DAI")

    assert paused.json()["paused"] is True
    assert delisted.json() == {"currency": "DAI", "whitelisted": False}
    assert status.json()["whitelisted"] is False


def test_admin_rescue_drains_router_account(system, fund) -> None:
    fund(ROUTER_ACCOUNT, 40)
    app = _app_with_overrides(system, "admin")

    with TestClient(app) as client:
        response = client.post(
            "/donations/rescue", json={"currency": "usdc", "amount": 40, "recipient": "treasury"}
        )
        overdrawn = client.post(
            "/donations/rescue", json={"currency": "USDC", "amount": 1, "recipient": "treasury"}
        )

    assert response.status_code == 204
    assert overdrawn.status_code == 503
    assert system.ledger.balance_of("USDC", "treasury") == 40


def test_whitelisted_tokens_are_listed_sorted(system) -> None:
    app = _app_with_overrides(system, "admin")

    with TestClient(app) as client:
        before = client.get("/donations/tokens")
        client.put("/donations/tokens/usdc", json={"allowed": False})
        after = client.get("/donations/tokens")

    assert before.json() == ["DAI", "USDC"]
    assert after.json() == ["DAI"]
