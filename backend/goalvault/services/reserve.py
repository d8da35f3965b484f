"""External yield reserve: the narrow interface vaults depend on, plus a simulation.

The real reserve is an outside system. Vaults only ever place value, reclaim
value and read the pooled valuation, so that is all `ExternalReserve` exposes.
`SimulatedReserve` backs local runs and the test suite: it keeps its own share
accounting over a pooled balance and accrues interest linearly from the shared
clock, or in explicit steps.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from goalvault.clock import Clock
from goalvault.errors import (
    InsufficientBalance,
    InsufficientLiquidity,
    PlacementFailed,
    ZeroAmount,
)
from goalvault.models import BPS_DENOMINATOR
from goalvault.services.ledger import TokenLedger

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365 * 24 * 60 * 60


class ExternalReserve(Protocol):
    currency: str
    account: str

    def place(self, holder: str, amount: int) -> int: ...

    def reclaim(self, holder: str, amount: int, recipient: str) -> int: ...

    def valuation(self) -> int: ...

    def shares_of(self, holder: str) -> int: ...

    def total_shares(self) -> int: ...

    def claim_of(self, holder: str) -> int: ...

    def current_rate_bps(self) -> int: ...


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


class SimulatedReserve:
    """Pooled reserve with linear or stepped accrual and a liquidity knob."""

    def __init__(
        self,
        currency: str,
        account: str,
        ledger: TokenLedger,
        clock: Clock,
        *,
        rate_bps: int = 0,
    ) -> None:
        self.currency = currency
        self.account = account
        self._ledger = ledger
        self._clock = clock
        self._rate_bps = rate_bps
        self._pooled = 0
        self._total_shares = 0
        self._shares: dict[str, int] = {}
        self._last_accrual = clock.now()
        # Units lent out elsewhere; reclaim cannot touch them.
        self.committed = 0
        self.fail_placements = False

    # -- accrual -----------------------------------------------------------

    def _pending_interest(self) -> int:
        if self._pooled == 0 or self._rate_bps == 0:
            return 0
        elapsed = self._clock.now() - self._last_accrual
        if elapsed <= 0:
            return 0
        return self._pooled * self._rate_bps * elapsed // (BPS_DENOMINATOR * SECONDS_PER_YEAR)

    def accrue(self) -> int:
        interest = self._pending_interest()
        if interest > 0:
            self._ledger.mint(self.currency, self.account, interest)
            self._pooled += interest
            self._last_accrual = self._clock.now()
            logger.debug("reserve %s accrued %s %s", self.account, interest, self.currency)
        elif self._pooled == 0 or self._rate_bps == 0:
            self._last_accrual = self._clock.now()
        return interest

    def add_yield(self, amount: int) -> None:
        """Stepped accrual: credit `amount` to the pool at once."""
        if amount <= 0:
            raise ZeroAmount("yield step must be greater than 0")
        self.accrue()
        self._ledger.mint(self.currency, self.account, amount)
        self._pooled += amount

    def set_rate(self, rate_bps: int) -> None:
        self.accrue()
        self._rate_bps = rate_bps

    def current_rate_bps(self) -> int:
        return self._rate_bps

    # -- share accounting --------------------------------------------------

    def valuation(self) -> int:
        return self._pooled + self._pending_interest()

    def total_shares(self) -> int:
        return self._total_shares

    def shares_of(self, holder: str) -> int:
        return self._shares.get(holder, 0)

    def claim_of(self, holder: str) -> int:
        shares = self.shares_of(holder)
        if shares == 0:
            return 0
        return shares * self.valuation() // self._total_shares

    def available_liquidity(self) -> int:
        return max(self._ledger.balance_of(self.currency, self.account) - self.committed, 0)

    def place(self, holder: str, amount: int) -> int:
        if amount <= 0:
            raise ZeroAmount("placement must be greater than 0")
        if self.fail_placements:
            raise PlacementFailed(f"reserve {self.account} is not accepting deposits")

        self.accrue()
        if self._total_shares == 0 or self._pooled == 0:
            minted = amount
        else:
            minted = amount * self._total_shares // self._pooled
        if minted == 0:
            raise PlacementFailed("placement too small to mint reserve shares")

        try:
            self._ledger.transfer(self.currency, holder, self.account, amount)
        except InsufficientBalance as exc:
            raise PlacementFailed(str(exc)) from exc

        self._shares[holder] = self.shares_of(holder) + minted
        self._total_shares += minted
        self._pooled += amount
        return minted

    def reclaim(self, holder: str, amount: int, recipient: str) -> int:
        if amount <= 0:
            raise ZeroAmount("reclaim must be greater than 0")

        self.accrue()
        if amount > self.available_liquidity():
            raise InsufficientLiquidity(
                f"reserve {self.account} can release {self.available_liquidity()}, asked {amount}"
            )

        burned = _ceil_div(amount * self._total_shares, self._pooled) if self._pooled else 0
        held = self.shares_of(holder)
        if burned == 0 or burned > held:
            raise InsufficientLiquidity(f"{holder} has no claim covering {amount}")

        self._shares[holder] = held - burned
        self._total_shares -= burned
        self._pooled -= amount
        self._ledger.transfer(self.currency, self.account, recipient, amount)
        return burned

    def to_state(self) -> dict[str, Any]:
        return {
            "rate_bps": self._rate_bps,
            "pooled": self._pooled,
            "total_shares": self._total_shares,
            "shares": dict(self._shares),
            "last_accrual": self._last_accrual,
            "committed": self.committed,
        }

    def restore_state(self, state: dict[str, Any]) -> None:
        self._rate_bps = int(state["rate_bps"])
        self._pooled = int(state["pooled"])
        self._total_shares = int(state["total_shares"])
        self._shares = {holder: int(value) for holder, value in state["shares"].items()}
        self._last_accrual = int(state["last_accrual"])
        self.committed = int(state.get("committed", 0))
