"""Share ledger over one external reserve plus an idle balance.

Rounding is always against the caller:

- `place` mints floor(amount * totalShares / totalAssets) shares,
- `reclaim` burns ceil(amount * totalShares / totalAssets) shares,
- `redeem_shares` pays floor(shares * totalAssets / totalShares) units.

Repeated small operations therefore can never extract more than they put in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from goalvault.clock import Clock
from goalvault.errors import (
    GoalVaultError,
    InsufficientLiquidity,
    InsufficientShares,
    PlacementFailed,
    Unauthorized,
    ZeroAmount,
)
from goalvault.events import EventLog
from goalvault.models import VaultKey, VaultMode
from goalvault.services.guards import (
    AdminCapability,
    ReentrancyGuard,
    non_reentrant,
    require_account,
)
from goalvault.services.ledger import TokenLedger
from goalvault.services.reserve import ExternalReserve

logger = logging.getLogger(__name__)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


@dataclass(frozen=True)
class VaultInfo:
    currency: str
    mode: VaultMode
    total_assets: int
    total_shares: int
    idle_balance: int
    reserve_claim: int
    last_checkpoint: int
    pending_yield: int
    donation_recipient: str
    apy_bps: int


class VaultAdapter(ReentrancyGuard):
    def __init__(
        self,
        *,
        currency: str,
        mode: VaultMode,
        account: str,
        reserve: ExternalReserve,
        ledger: TokenLedger,
        clock: Clock,
        admin: AdminCapability,
        donation_recipient: str,
    ) -> None:
        if reserve.currency != currency:
            raise ValueError(f"reserve holds {reserve.currency}, vault expects {currency}")

        self.currency = currency
        self.mode = mode
        self.account = require_account(account, "vault account")
        self.key = VaultKey(currency, mode)
        self._reserve = reserve
        self._ledger = ledger
        self._clock = clock
        self._admin = admin
        self.donation_recipient = require_account(donation_recipient, "donation recipient")

        self.total_shares = 0
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self.last_checkpoint = 0
        self.events = EventLog(f"vault:{self.key.label()}")

    # -- views -------------------------------------------------------------

    def idle_balance(self) -> int:
        return self._ledger.balance_of(self.currency, self.account)

    def reserve_claim(self) -> int:
        return self._reserve.claim_of(self.account)

    def total_assets(self) -> int:
        return self.idle_balance() + self.reserve_claim()

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def convert_to_shares(self, assets: int) -> int:
        """Shares minted for `assets`, rounded down."""
        if self.total_shares == 0:
            return assets
        total_assets = self.total_assets()
        if total_assets == 0:
            raise InsufficientLiquidity("vault holds no assets backing its shares")
        return assets * self.total_shares // total_assets

    def preview_reclaim(self, assets: int) -> int:
        """Shares burned to release `assets`, rounded up."""
        if self.total_shares == 0:
            raise InsufficientShares("vault has no shares outstanding")
        total_assets = self.total_assets()
        if total_assets == 0:
            raise InsufficientLiquidity("vault holds no assets backing its shares")
        return _ceil_div(assets * self.total_shares, total_assets)

    def convert_to_assets(self, shares: int) -> int:
        """Value of `shares`, rounded down."""
        if self.total_shares == 0:
            return 0
        return shares * self.total_assets() // self.total_shares

    def max_withdraw(self, holder: str) -> int:
        return self.convert_to_assets(self.balance_of(holder))

    def pending_yield(self) -> int:
        return max(self.total_assets() - self.last_checkpoint, 0)

    def get_current_apy(self) -> int:
        """Annual rate reported by the reserve, in basis points."""
        return self._reserve.current_rate_bps()

    def get_vault_info(self) -> VaultInfo:
        return VaultInfo(
            currency=self.currency,
            mode=self.mode,
            total_assets=self.total_assets(),
            total_shares=self.total_shares,
            idle_balance=self.idle_balance(),
            reserve_claim=self.reserve_claim(),
            last_checkpoint=self.last_checkpoint,
            pending_yield=self.pending_yield(),
            donation_recipient=self.donation_recipient,
            apy_bps=self.get_current_apy(),
        )

    # -- share movements ---------------------------------------------------

    def approve(self, owner: str, spender: str, shares: int) -> None:
        require_account(owner, "owner")
        require_account(spender, "spender")
        if shares < 0:
            raise ZeroAmount("allowance cannot be negative")
        self._allowances[(owner, spender)] = shares

    @non_reentrant
    def place(self, caller: str, amount: int, receiver: str) -> int:
        """Pull `amount` from `caller`, place it with the reserve, mint shares to `receiver`."""
        require_account(caller, "caller")
        require_account(receiver, "receiver")
        if amount <= 0:
            raise ZeroAmount("placement must be greater than 0")

        shares = self.convert_to_shares(amount)
        if shares == 0:
            raise ZeroAmount("placement too small to mint any shares")

        self._ledger.transfer(self.currency, caller, self.account, amount)
        try:
            self._reserve.place(self.account, amount)
        except GoalVaultError as exc:
            self._ledger.transfer(self.currency, self.account, caller, amount)
            logger.warning("placement of %s into %s failed: %s", amount, self.key.label(), exc)
            if isinstance(exc, PlacementFailed):
                raise
            raise PlacementFailed(str(exc)) from exc

        self._balances[receiver] = self.balance_of(receiver) + shares
        self.total_shares += shares
        self.last_checkpoint += amount
        self.events.emit(
            "Deposit",
            self._clock.now(),
            caller=caller,
            receiver=receiver,
            assets=amount,
            shares=shares,
        )
        return shares

    @non_reentrant
    def reclaim(self, caller: str, amount: int, receiver: str, owner: str) -> int:
        """Release exactly `amount` to `receiver`; returns the shares burned from `owner`."""
        require_account(caller, "caller")
        require_account(receiver, "receiver")
        require_account(owner, "owner")
        if amount <= 0:
            raise ZeroAmount("reclaim must be greater than 0")

        shares = self.preview_reclaim(amount)
        self._check_spend(caller, owner, shares)
        self._withdraw(caller, receiver, owner, amount, shares)
        return shares

    @non_reentrant
    def redeem_shares(self, caller: str, shares: int, receiver: str, owner: str) -> int:
        """Burn exactly `shares` from `owner`; returns the units sent to `receiver`."""
        require_account(caller, "caller")
        require_account(receiver, "receiver")
        require_account(owner, "owner")
        if shares <= 0:
            raise ZeroAmount("shares must be greater than 0")

        self._check_spend(caller, owner, shares)
        amount = self.convert_to_assets(shares)
        if amount == 0:
            raise ZeroAmount("shares are worth nothing at the current price")
        self._withdraw(caller, receiver, owner, amount, shares)
        return amount

    def _check_spend(self, caller: str, owner: str, shares: int) -> None:
        if shares > self.balance_of(owner):
            raise InsufficientShares(
                f"{owner} holds {self.balance_of(owner)} shares, needs {shares}"
            )
        if caller != owner and self.allowance(owner, caller) < shares:
            raise Unauthorized(f"{caller} is not approved to move {owner}'s shares")

    def _withdraw(self, caller: str, receiver: str, owner: str, amount: int, shares: int) -> None:
        previous_checkpoint = self.last_checkpoint
        previous_allowance = self.allowance(owner, caller)

        self._balances[owner] = self.balance_of(owner) - shares
        self.total_shares -= shares
        if caller != owner:
            self._allowances[(owner, caller)] = previous_allowance - shares
        self.last_checkpoint = max(previous_checkpoint - amount, 0)

        try:
            idle = self.idle_balance()
            if idle < amount:
                self._reserve.reclaim(self.account, amount - idle, self.account)
            self._ledger.transfer(self.currency, self.account, receiver, amount)
        except GoalVaultError:
            self._balances[owner] = self.balance_of(owner) + shares
            self.total_shares += shares
            if caller != owner:
                self._allowances[(owner, caller)] = previous_allowance
            self.last_checkpoint = previous_checkpoint
            raise

        self.events.emit(
            "Withdraw",
            self._clock.now(),
            caller=caller,
            receiver=receiver,
            owner=owner,
            assets=amount,
            shares=shares,
        )

    # -- yield sweep -------------------------------------------------------

    @non_reentrant
    def harvest_and_donate(self, caller: str) -> int:
        """Send everything above the high-water mark to the donation sink.

        Anyone may trigger the sweep. It competes with per-goal yield splitting
        for the same accrued value: whatever it sends away is no longer
        redeemable by share holders.
        """
        require_account(caller, "caller")
        current = self.total_assets()
        harvested = current - self.last_checkpoint
        if harvested <= 0:
            return 0

        # A failed reclaim leaves the reserve and the checkpoint untouched.
        self._reserve.reclaim(self.account, harvested, self.donation_recipient)
        # Reserve share rounding can shave a unit off our claim; track reality.
        self.last_checkpoint = self.total_assets()

        self.events.emit(
            "YieldHarvested",
            self._clock.now(),
            caller=caller,
            amount=harvested,
            recipient=self.donation_recipient,
        )
        return harvested

    def set_donation_recipient(self, caller: str, recipient: str) -> None:
        self._admin.require(caller)
        self.donation_recipient = require_account(recipient, "donation recipient")
        self.events.emit("DonationRecipientUpdated", self._clock.now(), recipient=recipient)

    # -- persistence -------------------------------------------------------

    def to_state(self) -> dict[str, Any]:
        return {
            "currency": self.currency,
            "mode": self.mode.value,
            "account": self.account,
            "donation_recipient": self.donation_recipient,
            "total_shares": self.total_shares,
            "balances": dict(self._balances),
            "allowances": [
                [owner, spender, value] for (owner, spender), value in self._allowances.items()
            ],
            "last_checkpoint": self.last_checkpoint,
        }

    def restore_state(self, state: dict[str, Any]) -> None:
        self.donation_recipient = state["donation_recipient"]
        self.total_shares = int(state["total_shares"])
        self._balances = {holder: int(value) for holder, value in state["balances"].items()}
        self._allowances = {
            (owner, spender): int(value) for owner, spender, value in state.get("allowances", [])
        }
        self.last_checkpoint = int(state["last_checkpoint"])
