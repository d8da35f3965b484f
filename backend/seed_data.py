"""Seed starting balances for sample accounts via the API."""

import os
import sys

import httpx

from goalvault.auth import create_access_token
from goalvault.config import settings

API_BASE = os.environ.get("API_BASE", "http://localhost:8000")

# Amounts are integer base units.
SAMPLE_BALANCES = [
    {"account": "alice", "currency": "USDC", "amount": 5_000_000_000},
    {"account": "alice", "currency": "DAI", "amount": 1_000_000_000},
    {"account": "bob", "currency": "USDC", "amount": 2_500_000_000},
    {"account": "carol", "currency": "DAI", "amount": 750_000_000},
]


def seed_balances(client: httpx.Client, token: str, grants: list[dict] = SAMPLE_BALANCES) -> tuple[int, int]:
    headers = {"Authorization": f"Bearer {token}"}
    success = 0
    errors = 0

    for grant in grants:
        resp = client.post("/accounts/mint", json=grant, headers=headers)
        if resp.status_code == 201:
            success += 1
            print(f"  OK: {grant['account']:10s} +{grant['amount']:>14d} {grant['currency']:5s} balance={resp.json()['balance']}")
        else:
            errors += 1
            print(f"  FAIL ({resp.status_code}): {resp.text}")

    return success, errors


def main():
    # Step 1: admin token signed with the server's settings
    token = create_access_token(settings.admin_account)
    print(f"Seeding balances through {API_BASE} as '{settings.admin_account}'...")

    # Step 2: mint via the API so the running server persists its own snapshot
    with httpx.Client(base_url=API_BASE) as client:
        success, errors = seed_balances(client, token)

    print(f"\nDone! {success} minted, {errors} errors.")
    if errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
