"""Token balances per (currency, account); every value movement goes through here."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from goalvault.errors import InsufficientBalance, ZeroAddress, ZeroAmount

logger = logging.getLogger(__name__)


class TokenLedger:
    """Integer base-unit balances for every currency the system touches."""

    def __init__(self) -> None:
        self._balances: dict[str, dict[str, int]] = defaultdict(dict)
        self._supply: dict[str, int] = defaultdict(int)

    def balance_of(self, currency: str, account: str) -> int:
        return self._balances.get(currency, {}).get(account, 0)

    def total_supply(self, currency: str) -> int:
        return self._supply.get(currency, 0)

    def mint(self, currency: str, account: str, amount: int) -> None:
        """Create new units; stands in for the external test-value dispenser."""
        if not account:
            raise ZeroAddress("mint recipient is required")
        if amount <= 0:
            raise ZeroAmount("mint amount must be greater than 0")

        balances = self._balances[currency]
        balances[account] = balances.get(account, 0) + amount
        self._supply[currency] += amount

    def transfer(self, currency: str, sender: str, recipient: str, amount: int) -> None:
        if not sender or not recipient:
            raise ZeroAddress("transfer endpoints are required")
        if amount <= 0:
            raise ZeroAmount("transfer amount must be greater than 0")

        balances = self._balances[currency]
        available = balances.get(sender, 0)
        if available < amount:
            raise InsufficientBalance(
                f"{sender} holds {available} {currency}, needs {amount}"
            )

        balances[sender] = available - amount
        balances[recipient] = balances.get(recipient, 0) + amount
        logger.debug("transfer %s %s: %s -> %s", amount, currency, sender, recipient)

    def to_state(self) -> dict[str, Any]:
        return {
            "balances": {currency: dict(rows) for currency, rows in self._balances.items()},
            "supply": dict(self._supply),
        }

    def restore_state(self, state: dict[str, Any]) -> None:
        self._balances = defaultdict(dict)
        for currency, rows in state.get("balances", {}).items():
            self._balances[currency] = {account: int(amount) for account, amount in rows.items()}
        self._supply = defaultdict(int, {k: int(v) for k, v in state.get("supply", {}).items()})
