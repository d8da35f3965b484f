"""Donations router: split previews, donation totals and yield-router administration."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_serializer

from .api_errors import http_error
from .auth import get_current_account
from .bootstrap import GoalVaultSystem
from .database import get_db_connection
from .errors import GoalVaultError
from .models import BPS_DENOMINATOR
from .runtime import get_system, persisted
from .utils import format_units

router = APIRouter(prefix="/donations", tags=["donations"])


class SplitRequest(BaseModel):
    total_yield: int = Field(ge=0)
    donation_percentage: int = Field(ge=0, le=BPS_DENOMINATOR)


class SplitResponse(BaseModel):
    depositor_amount: int
    donation_amount: int

    @field_serializer("depositor_amount", "donation_amount")
    def serialize_units(self, value: int) -> str:
        return format_units(value)


class GlobalStatsResponse(BaseModel):
    currency: str
    total_donated: int
    total_yield_routed: int
    route_count: int
    donation_recipient: str
    paused: bool

    @field_serializer("total_donated", "total_yield_routed")
    def serialize_units(self, value: int) -> str:
        return format_units(value)


class UserDonationsResponse(BaseModel):
    depositor: str
    currency: str
    total_donated: int

    @field_serializer("total_donated")
    def serialize_units(self, value: int) -> str:
        return format_units(value)


class WhitelistRequest(BaseModel):
    allowed: bool


class WhitelistResponse(BaseModel):
    currency: str
    whitelisted: bool


class PausedRequest(BaseModel):
    paused: bool


class RecipientRequest(BaseModel):
    recipient: str = Field(min_length=1, max_length=120)


class RescueRequest(BaseModel):
    currency: str = Field(min_length=1, max_length=16)
    amount: int = Field(gt=0)
    recipient: str = Field(min_length=1, max_length=120)


def _stats_out(system: GoalVaultSystem, currency: str) -> GlobalStatsResponse:
    stats = system.router.get_global_stats(currency)
    return GlobalStatsResponse(
        currency=currency,
        total_donated=stats.total_donated,
        total_yield_routed=stats.total_yield_routed,
        route_count=stats.route_count,
        donation_recipient=system.router.donation_recipient,
        paused=system.router.paused,
    )


@router.post("/split-preview", response_model=SplitResponse)
async def split_preview(
    payload: SplitRequest,
    system: GoalVaultSystem = Depends(get_system),
) -> SplitResponse:
    try:
        split = system.router.calculate_split(payload.total_yield, payload.donation_percentage)
    except GoalVaultError as exc:
        raise http_error(exc) from exc
    return SplitResponse(depositor_amount=split.depositor_amount, donation_amount=split.donation_amount)


@router.get("/stats/{currency}", response_model=GlobalStatsResponse)
async def global_stats(
    currency: str,
    system: GoalVaultSystem = Depends(get_system),
) -> GlobalStatsResponse:
    return _stats_out(system, currency.upper())


@router.get("/users/{depositor}/{currency}", response_model=UserDonationsResponse)
async def user_donations(
    depositor: str,
    currency: str,
    system: GoalVaultSystem = Depends(get_system),
) -> UserDonationsResponse:
    code = currency.upper()
    return UserDonationsResponse(
        depositor=depositor,
        currency=code,
        total_donated=system.router.get_total_donations_by_user(depositor, code),
    )


@router.get("/tokens", response_model=list[str])
async def list_whitelisted_tokens(
    system: GoalVaultSystem = Depends(get_system),
) -> list[str]:
    return system.router.whitelisted_tokens()


@router.get("/tokens/{currency}", response_model=WhitelistResponse)
async def token_whitelist_status(
    currency: str,
    system: GoalVaultSystem = Depends(get_system),
) -> WhitelistResponse:
    code = currency.upper()
    return WhitelistResponse(currency=code, whitelisted=system.router.is_token_whitelisted(code))


@router.put("/tokens/{currency}", response_model=WhitelistResponse)
async def set_token_whitelist(
    currency: str,
    payload: WhitelistRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> WhitelistResponse:
    """Admin only."""
    code = currency.upper()
    async with persisted(connection, system):
        try:
            system.router.set_token_whitelist(account, code, payload.allowed)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return WhitelistResponse(currency=code, whitelisted=system.router.is_token_whitelisted(code))


@router.put("/paused", response_model=GlobalStatsResponse)
async def set_paused(
    payload: PausedRequest,
    currency: str = "USDC",
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> GlobalStatsResponse:
    """Admin only. Pausing blocks every route, including goal withdrawals that donate."""
    async with persisted(connection, system):
        try:
            system.router.set_paused(account, payload.paused)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return _stats_out(system, currency.upper())


@router.put("/recipient", response_model=GlobalStatsResponse)
async def set_router_donation_recipient(
    payload: RecipientRequest,
    currency: str = "USDC",
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> GlobalStatsResponse:
    """Admin only."""
    async with persisted(connection, system):
        try:
            system.router.set_donation_recipient(account, payload.recipient.strip())
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return _stats_out(system, currency.upper())


@router.post("/rescue", status_code=204)
async def rescue_tokens(
    payload: RescueRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
):
    """Admin only. Drains units stranded in the router account."""
    async with persisted(connection, system):
        try:
            system.router.rescue_tokens(
                account,
                payload.currency.upper(),
                payload.amount,
                payload.recipient.strip(),
            )
        except GoalVaultError as exc:
            raise http_error(exc) from exc
