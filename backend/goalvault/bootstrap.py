"""Wires ledger, reserves, vaults, router and goal manager from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from goalvault.clock import Clock, SystemClock
from goalvault.config import Settings
from goalvault.errors import CurrencyNotSupported
from goalvault.models import VaultKey, VaultMode
from goalvault.services.goal_manager import GoalManager
from goalvault.services.guards import AdminCapability
from goalvault.services.ledger import TokenLedger
from goalvault.services.reserve import SimulatedReserve
from goalvault.services.vault_adapter import VaultAdapter
from goalvault.services.yield_router import YieldRouter

logger = logging.getLogger(__name__)

MANAGER_ACCOUNT = "goal-manager"
ROUTER_ACCOUNT = "yield-router"


def vault_account(key: VaultKey) -> str:
    return f"vault:{key.label()}"


def reserve_account(key: VaultKey) -> str:
    return f"reserve:{key.label()}"


@dataclass
class GoalVaultSystem:
    clock: Clock
    ledger: TokenLedger
    admin: AdminCapability
    router: YieldRouter
    manager: GoalManager
    reserves: dict[VaultKey, SimulatedReserve] = field(default_factory=dict)
    vaults: dict[VaultKey, VaultAdapter] = field(default_factory=dict)

    def mint(self, caller: str, currency: str, account: str, amount: int) -> int:
        """Admin seeding of test value into `account`; returns its new balance."""
        self.admin.require(caller)
        if currency not in self.manager.get_supported_currencies():
            raise CurrencyNotSupported(f"{currency} is not supported")
        self.ledger.mint(currency, account, amount)
        logger.info("minted %s %s to %s", amount, currency, account)
        return self.ledger.balance_of(currency, account)

    def vault_by_account(self) -> dict[str, VaultAdapter]:
        return {vault.account: vault for vault in self.vaults.values()}

    def to_state(self) -> dict[str, Any]:
        return {
            "ledger": self.ledger.to_state(),
            "router": self.router.to_state(),
            "manager": self.manager.to_state(),
            "reserves": {key.label(): reserve.to_state() for key, reserve in self.reserves.items()},
            "vaults": {key.label(): vault.to_state() for key, vault in self.vaults.items()},
        }

    def restore_state(self, state: dict[str, Any]) -> None:
        self.ledger.restore_state(state["ledger"])
        self.router.restore_state(state["router"])
        for key, reserve in self.reserves.items():
            if key.label() in state["reserves"]:
                reserve.restore_state(state["reserves"][key.label()])
        for key, vault in self.vaults.items():
            if key.label() in state["vaults"]:
                vault.restore_state(state["vaults"][key.label()])
        self.manager.restore_state(state["manager"], self.vault_by_account())


def build_system(settings: Settings, clock: Clock | None = None) -> GoalVaultSystem:
    clock = clock or SystemClock()
    ledger = TokenLedger()
    admin = AdminCapability(settings.admin_account)
    currencies = settings.currency_list()

    router = YieldRouter(
        account=ROUTER_ACCOUNT,
        ledger=ledger,
        clock=clock,
        admin=admin,
        donation_recipient=settings.donation_recipient,
        whitelist=currencies,
    )
    manager = GoalManager(
        account=MANAGER_ACCOUNT,
        ledger=ledger,
        router=router,
        clock=clock,
        admin=admin,
        reward_pool=settings.reward_pool_account,
        treasury=settings.treasury_account,
        min_duration=settings.min_goal_duration_seconds,
        early_withdrawal_penalty_bps=settings.early_withdrawal_penalty_bps,
        supported_currencies=currencies,
    )
    system = GoalVaultSystem(clock=clock, ledger=ledger, admin=admin, router=router, manager=manager)

    rates = {
        VaultMode.LITE: settings.lite_reserve_rate_bps,
        VaultMode.PRO: settings.pro_reserve_rate_bps,
    }
    for currency in currencies:
        for mode, rate_bps in rates.items():
            key = VaultKey(currency, mode)
            reserve = SimulatedReserve(currency, reserve_account(key), ledger, clock, rate_bps=rate_bps)
            vault = VaultAdapter(
                currency=currency,
                mode=mode,
                account=vault_account(key),
                reserve=reserve,
                ledger=ledger,
                clock=clock,
                admin=admin,
                donation_recipient=settings.donation_recipient,
            )
            manager.configure_vault(admin.account, currency, mode, vault)
            system.reserves[key] = reserve
            system.vaults[key] = vault

    logger.info("goal vault system ready: currencies=%s vaults=%d", currencies, len(system.vaults))
    return system
