"""Percentage-based yield split with global and per-depositor donation totals."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, NamedTuple, Sequence

from goalvault.clock import Clock
from goalvault.errors import (
    ArrayLengthMismatch,
    GoalVaultError,
    InsufficientBalance,
    InvalidPercentage,
    RouterPaused,
    TokenNotWhitelisted,
    ZeroAmount,
)
from goalvault.events import EventLog
from goalvault.models import BPS_DENOMINATOR
from goalvault.services.guards import (
    AdminCapability,
    ReentrancyGuard,
    non_reentrant,
    require_account,
)
from goalvault.services.ledger import TokenLedger

logger = logging.getLogger(__name__)


class YieldSplit(NamedTuple):
    depositor_amount: int
    donation_amount: int


@dataclass(frozen=True)
class BatchItemResult:
    index: int
    split: YieldSplit | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class GlobalStats:
    total_donated: int
    total_yield_routed: int
    route_count: int


def validate_percentage(donation_pct: int) -> None:
    if donation_pct < 0 or donation_pct > BPS_DENOMINATOR:
        raise InvalidPercentage(f"donation percentage must be within 0..{BPS_DENOMINATOR} bps")


def calculate_split(total_yield: int, donation_pct: int) -> YieldSplit:
    """Split `total_yield` by basis points.

    The donation rounds down and the depositor takes the remainder, so the two
    parts always sum to `total_yield`.
    """
    validate_percentage(donation_pct)
    if total_yield < 0:
        raise ZeroAmount("total yield cannot be negative")

    donation_amount = total_yield * donation_pct // BPS_DENOMINATOR
    return YieldSplit(total_yield - donation_amount, donation_amount)


class YieldRouter(ReentrancyGuard):
    def __init__(
        self,
        *,
        account: str,
        ledger: TokenLedger,
        clock: Clock,
        admin: AdminCapability,
        donation_recipient: str,
        whitelist: Sequence[str] = (),
    ) -> None:
        self.account = require_account(account, "router account")
        self._ledger = ledger
        self._clock = clock
        self._admin = admin
        self.donation_recipient = require_account(donation_recipient, "donation recipient")
        self.paused = False

        self._whitelist: set[str] = set(whitelist)
        self._total_donations: dict[str, int] = defaultdict(int)
        self._user_donations: dict[tuple[str, str], int] = defaultdict(int)
        self._total_routed: dict[str, int] = defaultdict(int)
        self._route_count: dict[str, int] = defaultdict(int)
        self.events = EventLog("yield-router")

    # -- views -------------------------------------------------------------

    def is_token_whitelisted(self, currency: str) -> bool:
        return currency in self._whitelist

    def whitelisted_tokens(self) -> list[str]:
        return sorted(self._whitelist)

    def get_total_donations_by_user(self, depositor: str, currency: str) -> int:
        return self._user_donations.get((depositor, currency), 0)

    def get_global_stats(self, currency: str) -> GlobalStats:
        return GlobalStats(
            total_donated=self._total_donations.get(currency, 0),
            total_yield_routed=self._total_routed.get(currency, 0),
            route_count=self._route_count.get(currency, 0),
        )

    def calculate_split(self, total_yield: int, donation_pct: int) -> YieldSplit:
        return calculate_split(total_yield, donation_pct)

    def check_routable(self, currency: str) -> None:
        """Raise if a route for `currency` would be rejected right now."""
        if self.paused:
            raise RouterPaused("yield routing is paused")
        if currency not in self._whitelist:
            raise TokenNotWhitelisted(f"{currency} is not whitelisted for routing")

    # -- routing -----------------------------------------------------------

    @non_reentrant
    def route_yield(
        self,
        caller: str,
        currency: str,
        total_yield: int,
        donation_pct: int,
        depositor: str,
    ) -> YieldSplit:
        """Pay out yield already transferred to this router.

        The caller must have moved at least `total_yield` units of `currency`
        into the router account beforehand.
        """
        return self._route(caller, currency, total_yield, donation_pct, depositor)

    @non_reentrant
    def batch_route_yield(
        self,
        caller: str,
        currencies: Sequence[str],
        total_yields: Sequence[int],
        donation_pcts: Sequence[int],
        depositors: Sequence[str],
    ) -> list[BatchItemResult]:
        """Route several yields; items succeed or fail independently.

        Only the length check applies to the batch as a whole. An item that
        fails leaves earlier items in place.
        """
        size = len(currencies)
        if not (len(total_yields) == len(donation_pcts) == len(depositors) == size):
            raise ArrayLengthMismatch("batch arrays must have equal length")

        results: list[BatchItemResult] = []
        for index in range(size):
            try:
                split = self._route(
                    caller,
                    currencies[index],
                    total_yields[index],
                    donation_pcts[index],
                    depositors[index],
                )
            except GoalVaultError as exc:
                logger.warning("batch item %s rejected: %s", index, exc)
                results.append(BatchItemResult(index=index, split=None, error=str(exc)))
                continue
            results.append(BatchItemResult(index=index, split=split))
        return results

    def _route(
        self,
        caller: str,
        currency: str,
        total_yield: int,
        donation_pct: int,
        depositor: str,
    ) -> YieldSplit:
        # checks
        self.check_routable(currency)
        require_account(depositor, "depositor")
        validate_percentage(donation_pct)
        if total_yield <= 0:
            raise ZeroAmount("total yield must be greater than 0")
        held = self._ledger.balance_of(currency, self.account)
        if held < total_yield:
            raise InsufficientBalance(
                f"router holds {held} {currency}, route needs {total_yield}"
            )

        split = calculate_split(total_yield, donation_pct)

        # effects
        self._total_donations[currency] += split.donation_amount
        self._user_donations[(depositor, currency)] += split.donation_amount
        self._total_routed[currency] += total_yield
        self._route_count[currency] += 1

        # interactions
        try:
            if split.depositor_amount > 0:
                self._ledger.transfer(currency, self.account, depositor, split.depositor_amount)
            if split.donation_amount > 0:
                self._ledger.transfer(
                    currency, self.account, self.donation_recipient, split.donation_amount
                )
        except GoalVaultError:
            self._total_donations[currency] -= split.donation_amount
            self._user_donations[(depositor, currency)] -= split.donation_amount
            self._total_routed[currency] -= total_yield
            self._route_count[currency] -= 1
            raise

        self.events.emit(
            "YieldRouted",
            self._clock.now(),
            caller=caller,
            depositor=depositor,
            currency=currency,
            total_yield=total_yield,
            depositor_amount=split.depositor_amount,
            donation_amount=split.donation_amount,
        )
        return split

    # -- admin -------------------------------------------------------------

    def set_donation_recipient(self, caller: str, recipient: str) -> None:
        self._admin.require(caller)
        self.donation_recipient = require_account(recipient, "donation recipient")
        self.events.emit("DonationRecipientUpdated", self._clock.now(), recipient=recipient)

    def set_token_whitelist(self, caller: str, currency: str, allowed: bool) -> None:
        self._admin.require(caller)
        require_account(currency, "currency")
        if allowed:
            self._whitelist.add(currency)
        else:
            self._whitelist.discard(currency)
        self.events.emit("TokenWhitelistUpdated", self._clock.now(), currency=currency, allowed=allowed)

    def set_paused(self, caller: str, paused: bool) -> None:
        self._admin.require(caller)
        self.paused = paused
        self.events.emit("PausedUpdated", self._clock.now(), paused=paused)

    @non_reentrant
    def rescue_tokens(self, caller: str, currency: str, amount: int, recipient: str) -> None:
        """Emergency drain of units stranded in the router account."""
        self._admin.require(caller)
        require_account(recipient, "recipient")
        if amount <= 0:
            raise ZeroAmount("rescue amount must be greater than 0")
        self._ledger.transfer(currency, self.account, recipient, amount)
        self.events.emit(
            "TokensRescued",
            self._clock.now(),
            currency=currency,
            amount=amount,
            recipient=recipient,
        )

    # -- persistence -------------------------------------------------------

    def to_state(self) -> dict[str, Any]:
        return {
            "donation_recipient": self.donation_recipient,
            "paused": self.paused,
            "whitelist": sorted(self._whitelist),
            "total_donations": dict(self._total_donations),
            "user_donations": [
                [depositor, currency, value]
                for (depositor, currency), value in self._user_donations.items()
            ],
            "total_routed": dict(self._total_routed),
            "route_count": dict(self._route_count),
        }

    def restore_state(self, state: dict[str, Any]) -> None:
        self.donation_recipient = state["donation_recipient"]
        self.paused = bool(state["paused"])
        self._whitelist = set(state["whitelist"])
        self._total_donations = defaultdict(int, {k: int(v) for k, v in state["total_donations"].items()})
        self._user_donations = defaultdict(
            int,
            {(depositor, currency): int(value) for depositor, currency, value in state["user_donations"]},
        )
        self._total_routed = defaultdict(int, {k: int(v) for k, v in state["total_routed"].items()})
        self._route_count = defaultdict(int, {k: int(v) for k, v in state["route_count"].items()})
