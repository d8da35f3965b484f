"""Goal lifecycle: creation, deposits into vaults, and the two withdrawal paths."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from goalvault.clock import Clock
from goalvault.errors import (
    CurrencyNotSupported,
    GoalNotActive,
    GoalNotCompleted,
    GoalNotFound,
    GoalVaultError,
    InvalidDuration,
    NoPosition,
    Unauthorized,
    ValidationError,
    VaultNotConfigured,
    ZeroAmount,
)
from goalvault.events import EventLog
from goalvault.models import (
    BPS_DENOMINATOR,
    CompletedWithdrawal,
    DepositPosition,
    DepositRecord,
    EarlyWithdrawal,
    Goal,
    GoalDetails,
    GoalEvent,
    GoalStatus,
    VaultKey,
    VaultMode,
    next_status,
)
from goalvault.services.guards import (
    AdminCapability,
    ReentrancyGuard,
    non_reentrant,
    require_account,
)
from goalvault.services.ledger import TokenLedger
from goalvault.services.vault_adapter import VaultAdapter
from goalvault.services.yield_router import YieldRouter, validate_percentage

logger = logging.getLogger(__name__)

DEFAULT_EARLY_WITHDRAWAL_PENALTY_BPS = 200


class GoalManager(ReentrancyGuard):
    """Owns every goal record and the deposit position behind it.

    Shares minted by the vaults are held in this manager's own account; the
    position table attributes them to goals.
    """

    def __init__(
        self,
        *,
        account: str,
        ledger: TokenLedger,
        router: YieldRouter,
        clock: Clock,
        admin: AdminCapability,
        reward_pool: str,
        treasury: str,
        min_duration: int,
        early_withdrawal_penalty_bps: int = DEFAULT_EARLY_WITHDRAWAL_PENALTY_BPS,
        supported_currencies: Iterable[str] = (),
    ) -> None:
        if not 0 <= early_withdrawal_penalty_bps <= BPS_DENOMINATOR:
            raise ValueError("early withdrawal penalty must be within 0..10000 bps")

        self.account = require_account(account, "manager account")
        self._ledger = ledger
        self._router = router
        self._clock = clock
        self._admin = admin
        self.reward_pool = require_account(reward_pool, "reward pool")
        self.treasury = require_account(treasury, "treasury")
        self.min_duration = min_duration
        self.early_withdrawal_penalty_bps = early_withdrawal_penalty_bps

        self._supported: set[str] = set(supported_currencies)
        self._vaults: dict[VaultKey, VaultAdapter] = {}
        self._goals: dict[int, Goal] = {}
        self._next_goal_id = 1
        self._owner_goals: dict[str, list[int]] = {}
        self._positions: dict[int, DepositPosition] = {}
        self._deposits: dict[int, list[DepositRecord]] = {}
        self.events = EventLog("goal-manager")

    # -- admin -------------------------------------------------------------

    def configure_vault(self, caller: str, currency: str, mode: VaultMode, vault: VaultAdapter) -> None:
        self._admin.require(caller)
        if vault.currency != currency or vault.mode != mode:
            raise ValidationError(
                f"vault {vault.key.label()} cannot serve {currency}:{mode.value}"
            )
        self._vaults[VaultKey(currency, mode)] = vault
        self.events.emit(
            "VaultConfigured",
            self._clock.now(),
            currency=currency,
            mode=mode.value,
            vault=vault.account,
        )

    def set_currency_supported(self, caller: str, currency: str, supported: bool = True) -> None:
        self._admin.require(caller)
        require_account(currency, "currency")
        if supported:
            self._supported.add(currency)
        else:
            self._supported.discard(currency)
        self.events.emit(
            "CurrencySupportUpdated", self._clock.now(), currency=currency, supported=supported
        )

    # -- views -------------------------------------------------------------

    def get_supported_currencies(self) -> list[str]:
        return sorted(self._supported)

    def get_vault(self, currency: str, mode: VaultMode) -> VaultAdapter:
        vault = self._vaults.get(VaultKey(currency, mode))
        if vault is None:
            raise VaultNotConfigured(f"no vault configured for {currency}:{mode.value}")
        return vault

    def configured_vaults(self) -> dict[VaultKey, VaultAdapter]:
        return dict(self._vaults)

    def get_vault_apy(self, currency: str, mode: VaultMode) -> int:
        return self.get_vault(currency, mode).get_current_apy()

    def get_goal(self, goal_id: int) -> Goal:
        goal = self._goals.get(goal_id)
        if goal is None:
            raise GoalNotFound(f"goal {goal_id} does not exist")
        return goal

    def get_position(self, goal_id: int) -> DepositPosition | None:
        self.get_goal(goal_id)
        return self._positions.get(goal_id)

    def get_goal_deposits(self, goal_id: int) -> list[DepositRecord]:
        self.get_goal(goal_id)
        return list(self._deposits.get(goal_id, []))

    def get_user_goals(self, owner: str) -> list[int]:
        return list(self._owner_goals.get(owner, []))

    def get_goal_details(self, goal_id: int) -> GoalDetails:
        goal = self.get_goal(goal_id)
        position = self._positions.get(goal_id)
        if position is None:
            return GoalDetails(goal=goal, current_value=0, yield_earned=0)

        current_value = self.get_vault(*goal.vault_key).convert_to_assets(position.shares)
        return GoalDetails(
            goal=goal,
            current_value=current_value,
            yield_earned=max(current_value - position.principal, 0),
        )

    # -- lifecycle ---------------------------------------------------------

    @non_reentrant
    def create_goal(
        self,
        owner: str,
        currency: str,
        mode: VaultMode,
        target_amount: int,
        duration: int,
        donation_percentage: int,
    ) -> int:
        require_account(owner, "owner")
        if currency not in self._supported:
            raise CurrencyNotSupported(f"{currency} is not supported")
        if target_amount <= 0:
            raise ZeroAmount("target amount must be greater than 0")
        if duration < self.min_duration:
            raise InvalidDuration(f"duration must be at least {self.min_duration} seconds")
        validate_percentage(donation_percentage)
        self.get_vault(currency, mode)

        goal_id = self._next_goal_id
        now = self._clock.now()
        self._goals[goal_id] = Goal(
            id=goal_id,
            owner=owner,
            currency=currency,
            mode=mode,
            target_amount=target_amount,
            duration=duration,
            donation_percentage=donation_percentage,
            deposited_amount=0,
            created_at=now,
            last_deposit_at=None,
            status=GoalStatus.ACTIVE,
        )
        self._next_goal_id += 1
        self._owner_goals.setdefault(owner, []).append(goal_id)

        self.events.emit(
            "GoalCreated",
            now,
            goal_id=goal_id,
            owner=owner,
            currency=currency,
            mode=mode.value,
            target_amount=target_amount,
            donation_percentage=donation_percentage,
        )
        return goal_id

    def _owned_goal(self, caller: str, goal_id: int) -> Goal:
        goal = self.get_goal(goal_id)
        if caller != goal.owner:
            raise Unauthorized(f"{caller or '<anonymous>'} does not own goal {goal_id}")
        return goal

    @non_reentrant
    def deposit(self, caller: str, goal_id: int, amount: int) -> Goal:
        goal = self._owned_goal(caller, goal_id)
        if goal.status is not GoalStatus.ACTIVE:
            raise GoalNotActive(f"goal {goal_id} is {goal.status.value}")
        if amount <= 0:
            raise ZeroAmount("deposit must be greater than 0")
        vault = self.get_vault(*goal.vault_key)

        self._ledger.transfer(goal.currency, caller, self.account, amount)
        try:
            shares = vault.place(self.account, amount, self.account)
        except GoalVaultError:
            self._ledger.transfer(goal.currency, self.account, caller, amount)
            raise

        now = self._clock.now()
        position = self._positions.get(goal_id)
        if position is None:
            self._positions[goal_id] = DepositPosition(principal=amount, shares=shares, updated_at=now)
        else:
            position.principal += amount
            position.shares += shares
            position.updated_at = now

        goal.deposited_amount += amount
        goal.last_deposit_at = now
        self._deposits.setdefault(goal_id, []).append(
            DepositRecord(goal_id=goal_id, amount=amount, shares=shares, timestamp=now)
        )
        self.events.emit("Deposited", now, goal_id=goal_id, amount=amount, shares=shares)

        if goal.deposited_amount >= goal.target_amount:
            goal.status = next_status(goal.status, GoalEvent.TARGET_REACHED)
            self.events.emit("GoalCompleted", now, goal_id=goal_id, deposited=goal.deposited_amount)
        return goal

    @non_reentrant
    def withdraw_completed(self, caller: str, goal_id: int) -> CompletedWithdrawal:
        goal = self._owned_goal(caller, goal_id)
        if goal.status is not GoalStatus.COMPLETED:
            raise GoalNotCompleted(f"goal {goal_id} is {goal.status.value}")
        position = self._positions.get(goal_id)
        if position is None:
            raise NoPosition(f"goal {goal_id} has nothing left to withdraw")
        vault = self.get_vault(*goal.vault_key)

        current_value = vault.convert_to_assets(position.shares)
        if current_value > position.principal and goal.donation_percentage > 0:
            self._router.check_routable(goal.currency)

        del self._positions[goal_id]
        try:
            redeemed = vault.redeem_shares(self.account, position.shares, self.account, self.account)
        except GoalVaultError:
            self._positions[goal_id] = position
            raise

        # A harvest sweep can leave the redeemable value below principal.
        principal = min(position.principal, redeemed)
        yield_earned = redeemed - principal
        depositor_yield, donation = yield_earned, 0

        if principal > 0:
            self._ledger.transfer(goal.currency, self.account, caller, principal)
        if yield_earned > 0 and goal.donation_percentage > 0:
            self._ledger.transfer(goal.currency, self.account, self._router.account, yield_earned)
            depositor_yield, donation = self._router.route_yield(
                self.account, goal.currency, yield_earned, goal.donation_percentage, caller
            )
        elif yield_earned > 0:
            self._ledger.transfer(goal.currency, self.account, caller, yield_earned)

        result = CompletedWithdrawal(
            goal_id=goal_id,
            principal=principal,
            yield_earned=yield_earned,
            depositor_yield=depositor_yield,
            donation=donation,
        )
        self.events.emit(
            "GoalWithdrawn",
            self._clock.now(),
            goal_id=goal_id,
            principal=principal,
            yield_earned=yield_earned,
            donation=donation,
        )
        return result

    @non_reentrant
    def withdraw_early(self, caller: str, goal_id: int) -> EarlyWithdrawal:
        goal = self._owned_goal(caller, goal_id)
        if goal.status is not GoalStatus.ACTIVE:
            raise GoalNotActive(f"goal {goal_id} is {goal.status.value}")
        position = self._positions.get(goal_id)
        if position is None:
            raise NoPosition(f"goal {goal_id} has nothing to withdraw")
        vault = self.get_vault(*goal.vault_key)
        abandoned = next_status(goal.status, GoalEvent.EARLY_EXIT)

        del self._positions[goal_id]
        goal.status = abandoned
        try:
            total_value = vault.redeem_shares(self.account, position.shares, self.account, self.account)
        except GoalVaultError:
            self._positions[goal_id] = position
            goal.status = GoalStatus.ACTIVE
            raise

        # Penalty applies to the whole redeemed value; odd unit goes to treasury.
        penalty = total_value * self.early_withdrawal_penalty_bps // BPS_DENOMINATOR
        to_rewards = penalty // 2
        to_treasury = penalty - to_rewards
        after_penalty = total_value - penalty

        if after_penalty > 0:
            self._ledger.transfer(goal.currency, self.account, caller, after_penalty)
        if to_rewards > 0:
            self._ledger.transfer(goal.currency, self.account, self.reward_pool, to_rewards)
        if to_treasury > 0:
            self._ledger.transfer(goal.currency, self.account, self.treasury, to_treasury)

        result = EarlyWithdrawal(
            goal_id=goal_id,
            total_value=total_value,
            penalty=penalty,
            penalty_to_rewards=to_rewards,
            penalty_to_treasury=to_treasury,
            amount_after_penalty=after_penalty,
        )
        self.events.emit(
            "GoalAbandoned",
            self._clock.now(),
            goal_id=goal_id,
            total_value=total_value,
            penalty=penalty,
        )
        return result

    def set_donation_percentage(self, caller: str, goal_id: int, donation_percentage: int) -> Goal:
        # Not gated on status: completed and abandoned goals accept updates too.
        goal = self._owned_goal(caller, goal_id)
        validate_percentage(donation_percentage)
        goal.donation_percentage = donation_percentage
        self.events.emit(
            "DonationPercentageUpdated",
            self._clock.now(),
            goal_id=goal_id,
            donation_percentage=donation_percentage,
        )
        return goal

    # -- persistence -------------------------------------------------------

    def to_state(self) -> dict[str, Any]:
        return {
            "next_goal_id": self._next_goal_id,
            "supported": sorted(self._supported),
            "vaults": [
                [key.currency, key.mode.value, vault.account] for key, vault in self._vaults.items()
            ],
            "goals": [goal.to_state() for goal in self._goals.values()],
            "owner_goals": {owner: list(ids) for owner, ids in self._owner_goals.items()},
            "positions": {
                str(goal_id): {
                    "principal": position.principal,
                    "shares": position.shares,
                    "updated_at": position.updated_at,
                }
                for goal_id, position in self._positions.items()
            },
            "deposits": {
                str(goal_id): [[r.amount, r.shares, r.timestamp] for r in records]
                for goal_id, records in self._deposits.items()
            },
        }

    def restore_state(self, state: dict[str, Any], vaults_by_account: Mapping[str, VaultAdapter]) -> None:
        self._next_goal_id = int(state["next_goal_id"])
        self._supported = set(state["supported"])
        self._vaults = {}
        for currency, mode, account in state["vaults"]:
            vault = vaults_by_account.get(account)
            if vault is None:
                logger.warning("vault %s from snapshot is not available; skipping", account)
                continue
            self._vaults[VaultKey(currency, VaultMode(mode))] = vault

        self._goals = {}
        for data in state["goals"]:
            goal = Goal.from_state(data)
            self._goals[goal.id] = goal
        self._owner_goals = {owner: [int(i) for i in ids] for owner, ids in state["owner_goals"].items()}
        self._positions = {
            int(goal_id): DepositPosition(**data) for goal_id, data in state["positions"].items()
        }
        self._deposits = {
            int(goal_id): [
                DepositRecord(goal_id=int(goal_id), amount=amount, shares=shares, timestamp=ts)
                for amount, shares, ts in records
            ]
            for goal_id, records in state["deposits"].items()
        }
