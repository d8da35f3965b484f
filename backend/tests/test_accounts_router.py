from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

import goalvault.accounts as accounts_router
import seed_data
from goalvault.auth import create_access_token
from goalvault.config import settings


def _app_with_overrides(system, account: str | None = "admin") -> FastAPI:
    app = FastAPI()
    app.include_router(accounts_router.router)

    async def override_db():
        yield None

    app.dependency_overrides[accounts_router.get_db_connection] = override_db
    app.dependency_overrides[accounts_router.get_system] = lambda: system
    if account is not None:
        app.dependency_overrides[accounts_router.get_current_account] = lambda: account
    return app


def test_admin_mint_credits_the_account(system) -> None:
    app = _app_with_overrides(system)

    with TestClient(app) as client:
        first = client.post("/accounts/mint", json={"account": " alice ", "currency": "usdc", "amount": 700})
        second = client.post("/accounts/mint", json={"account": "bob", "currency": "USDC", "amount": 300})

    assert first.status_code == 201
    assert first.json() == {"account": "alice", "currency": "USDC", "balance": "700", "total_supply": "700"}
    assert second.json()["total_supply"] == "1000"
    assert system.ledger.balance_of("USDC", "alice") == 700


def test_mint_is_admin_only(system) -> None:
    app = _app_with_overrides(system, account="alice")

    with TestClient(app) as client:
        response = client.post("/accounts/mint", json={"account": "alice", "currency": "USDC", "amount": 700})

    assert response.status_code == 403
    assert system.ledger.balance_of("USDC", "alice") == 0


def test_mint_rejects_unsupported_currency_and_zero_amount(system) -> None:
    app = _app_with_overrides(system)

    with TestClient(app) as client:
        unsupported = client.post("/accounts/mint", json={"account": "alice", "currency": "EUR", "amount": 700})
        zero = client.post("/accounts/mint", json={"account": "alice", "currency": "USDC", "amount": 0})

    assert unsupported.status_code == 422
    assert zero.status_code == 422
    assert system.ledger.total_supply("EUR") == 0


def test_minted_balance_is_visible_to_its_owner(system) -> None:
    app = _app_with_overrides(system)
    with TestClient(app) as client:
        client.post("/accounts/mint", json={"account": "alice", "currency": "DAI", "amount": 42})

    app.dependency_overrides[accounts_router.get_current_account] = lambda: "alice"
    with TestClient(app) as client:
        balances = client.get("/accounts/me/balances")

    assert {row["currency"]: row["balance"] for row in balances.json()} == {"DAI": "42", "USDC": "0"}


def test_seed_script_mints_sample_balances_with_admin_token(system) -> None:
    app = _app_with_overrides(system, account=None)
    token = create_access_token(settings.admin_account)

    with TestClient(app) as client:
        success, errors = seed_data.seed_balances(client, token)

    assert (success, errors) == (len(seed_data.SAMPLE_BALANCES), 0)
    for grant in seed_data.SAMPLE_BALANCES:
        assert system.ledger.balance_of(grant["currency"], grant["account"]) >= grant["amount"]
    assert system.ledger.balance_of("USDC", "alice") == 5_000_000_000


def test_seed_script_counts_failures_for_non_admin_token(system) -> None:
    app = _app_with_overrides(system, account=None)
    token = create_access_token("mallory")
    grants = [{"account": "mallory", "currency": "USDC", "amount": 10}]

    with TestClient(app) as client:
        success, errors = seed_data.seed_balances(client, token, grants)

    assert (success, errors) == (0, 1)
    assert system.ledger.balance_of("USDC", "mallory") == 0
