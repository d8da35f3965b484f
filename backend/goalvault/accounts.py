"""Account balances and admin seeding of test value."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_serializer

from .api_errors import http_error
from .auth import get_current_account
from .bootstrap import GoalVaultSystem
from .database import get_db_connection
from .errors import GoalVaultError
from .runtime import get_system, persisted
from .utils import format_units

router = APIRouter(prefix="/accounts", tags=["accounts"])


class BalanceOut(BaseModel):
    currency: str
    balance: int

    @field_serializer("balance")
    def serialize_units(self, value: int) -> str:
        return format_units(value)


class MintRequest(BaseModel):
    account: str = Field(min_length=1, max_length=120)
    currency: str = Field(min_length=1, max_length=16)
    amount: int = Field(gt=0)


class MintResponse(BaseModel):
    account: str
    currency: str
    balance: int
    total_supply: int

    @field_serializer("balance", "total_supply")
    def serialize_units(self, value: int) -> str:
        return format_units(value)


@router.get("/me/balances", response_model=list[BalanceOut])
async def my_balances(
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
) -> list[BalanceOut]:
    return [
        BalanceOut(currency=currency, balance=system.ledger.balance_of(currency, account))
        for currency in system.manager.get_supported_currencies()
    ]


@router.post("/mint", response_model=MintResponse, status_code=status.HTTP_201_CREATED)
async def mint_endpoint(
    payload: MintRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> MintResponse:
    """Admin only. Credits fresh units to an account so it can fund goals."""
    currency = payload.currency.upper()
    recipient = payload.account.strip()
    async with persisted(connection, system):
        try:
            balance = system.mint(account, currency, recipient, payload.amount)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return MintResponse(
        account=recipient,
        currency=currency,
        balance=balance,
        total_supply=system.ledger.total_supply(currency),
    )
