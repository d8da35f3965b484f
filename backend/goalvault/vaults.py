"""Vault router: share-ledger views, direct placement/redemption and the harvest sweep."""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_serializer

from .api_errors import http_error
from .auth import get_current_account
from .bootstrap import GoalVaultSystem
from .database import get_db_connection
from .errors import GoalVaultError
from .models import VaultMode
from .runtime import get_system, persisted
from .services.vault_adapter import VaultAdapter, VaultInfo
from .utils import bps_to_percent, format_units

ModeName = Literal["lite", "pro"]

router = APIRouter(prefix="/vaults", tags=["vaults"])


class VaultInfoResponse(BaseModel):
    currency: str
    mode: ModeName
    total_assets: int
    total_shares: int
    idle_balance: int
    reserve_claim: int
    last_checkpoint: int
    pending_yield: int
    donation_recipient: str
    apy_bps: int
    apy_percent: str

    @field_serializer(
        "total_assets",
        "total_shares",
        "idle_balance",
        "reserve_claim",
        "last_checkpoint",
        "pending_yield",
    )
    def serialize_units(self, value: int) -> str:
        return format_units(value)


class ApyResponse(BaseModel):
    currency: str
    mode: ModeName
    apy_bps: int
    apy_percent: str


class AmountRequest(BaseModel):
    amount: int = Field(gt=0)


class SharesRequest(BaseModel):
    shares: int = Field(gt=0)


class RecipientRequest(BaseModel):
    recipient: str = Field(min_length=1, max_length=120)


class VaultMovementResponse(BaseModel):
    assets: int
    shares: int
    share_balance: int

    @field_serializer("assets", "shares", "share_balance")
    def serialize_units(self, value: int) -> str:
        return format_units(value)


class HarvestResponse(BaseModel):
    harvested: int
    recipient: str

    @field_serializer("harvested")
    def serialize_units(self, value: int) -> str:
        return format_units(value)


def _info_out(info: VaultInfo) -> VaultInfoResponse:
    return VaultInfoResponse(
        currency=info.currency,
        mode=info.mode.value,
        total_assets=info.total_assets,
        total_shares=info.total_shares,
        idle_balance=info.idle_balance,
        reserve_claim=info.reserve_claim,
        last_checkpoint=info.last_checkpoint,
        pending_yield=info.pending_yield,
        donation_recipient=info.donation_recipient,
        apy_bps=info.apy_bps,
        apy_percent=bps_to_percent(info.apy_bps),
    )


def _resolve_vault(system: GoalVaultSystem, currency: str, mode: ModeName) -> VaultAdapter:
    try:
        return system.manager.get_vault(currency.upper(), VaultMode(mode))
    except GoalVaultError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("", response_model=list[VaultInfoResponse])
async def list_vaults(
    system: GoalVaultSystem = Depends(get_system),
) -> list[VaultInfoResponse]:
    vaults = system.manager.configured_vaults()
    return [_info_out(vaults[key].get_vault_info()) for key in sorted(vaults, key=lambda k: k.label())]


@router.get("/{currency}/{mode}", response_model=VaultInfoResponse)
async def get_vault_info(
    currency: str,
    mode: ModeName,
    system: GoalVaultSystem = Depends(get_system),
) -> VaultInfoResponse:
    return _info_out(_resolve_vault(system, currency, mode).get_vault_info())


@router.get("/{currency}/{mode}/apy", response_model=ApyResponse)
async def get_vault_apy(
    currency: str,
    mode: ModeName,
    system: GoalVaultSystem = Depends(get_system),
) -> ApyResponse:
    try:
        apy_bps = system.manager.get_vault_apy(currency.upper(), VaultMode(mode))
    except GoalVaultError as exc:
        raise http_error(exc) from exc
    return ApyResponse(
        currency=currency.upper(),
        mode=mode,
        apy_bps=apy_bps,
        apy_percent=bps_to_percent(apy_bps),
    )


@router.post("/{currency}/{mode}/deposits", response_model=VaultMovementResponse)
async def place_endpoint(
    currency: str,
    mode: ModeName,
    payload: AmountRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> VaultMovementResponse:
    """Place value directly, outside any goal; shares go to the caller."""
    vault = _resolve_vault(system, currency, mode)
    async with persisted(connection, system):
        try:
            shares = vault.place(account, payload.amount, account)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return VaultMovementResponse(assets=payload.amount, shares=shares, share_balance=vault.balance_of(account))


@router.post("/{currency}/{mode}/withdrawals", response_model=VaultMovementResponse)
async def reclaim_endpoint(
    currency: str,
    mode: ModeName,
    payload: AmountRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> VaultMovementResponse:
    """Withdraw an exact amount; shares burned are rounded up."""
    vault = _resolve_vault(system, currency, mode)
    async with persisted(connection, system):
        try:
            shares = vault.reclaim(account, payload.amount, account, account)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return VaultMovementResponse(assets=payload.amount, shares=shares, share_balance=vault.balance_of(account))


@router.post("/{currency}/{mode}/redemptions", response_model=VaultMovementResponse)
async def redeem_endpoint(
    currency: str,
    mode: ModeName,
    payload: SharesRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> VaultMovementResponse:
    """Burn an exact number of shares; value paid is rounded down."""
    vault = _resolve_vault(system, currency, mode)
    async with persisted(connection, system):
        try:
            assets = vault.redeem_shares(account, payload.shares, account, account)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return VaultMovementResponse(assets=assets, shares=payload.shares, share_balance=vault.balance_of(account))


@router.post("/{currency}/{mode}/harvest", response_model=HarvestResponse)
async def harvest_endpoint(
    currency: str,
    mode: ModeName,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> HarvestResponse:
    """Sweep accrued value above the checkpoint to the donation sink."""
    vault = _resolve_vault(system, currency, mode)
    async with persisted(connection, system):
        try:
            harvested = vault.harvest_and_donate(account)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return HarvestResponse(harvested=harvested, recipient=vault.donation_recipient)


@router.put("/{currency}/{mode}/donation-recipient", response_model=VaultInfoResponse)
async def set_vault_donation_recipient(
    currency: str,
    mode: ModeName,
    payload: RecipientRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> VaultInfoResponse:
    """Admin only."""
    vault = _resolve_vault(system, currency, mode)
    async with persisted(connection, system):
        try:
            vault.set_donation_recipient(account, payload.recipient.strip())
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return _info_out(vault.get_vault_info())
