"""Goals router: lifecycle endpoints over the goal manager."""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_serializer

from .api_errors import http_error
from .auth import get_current_account
from .bootstrap import GoalVaultSystem
from .database import get_db_connection
from .errors import GoalVaultError
from .models import BPS_DENOMINATOR, DepositRecord, Goal, GoalDetails, VaultMode
from .runtime import get_system, persisted
from .utils import format_units

ModeName = Literal["lite", "pro"]
GoalStatusName = Literal["active", "completed", "abandoned"]

router = APIRouter(prefix="/goals", tags=["goals"])


class GoalCreateRequest(BaseModel):
    currency: str = Field(min_length=1, max_length=16)
    mode: ModeName = "lite"
    target_amount: int = Field(gt=0)
    duration: int = Field(gt=0, description="Seconds until the goal is due")
    donation_percentage: int = Field(default=0, ge=0, le=BPS_DENOMINATOR)


class DepositRequest(BaseModel):
    amount: int = Field(gt=0)


class DonationPercentageRequest(BaseModel):
    donation_percentage: int = Field(ge=0, le=BPS_DENOMINATOR)


class GoalResponse(BaseModel):
    id: int
    owner: str
    currency: str
    mode: ModeName
    target_amount: int
    duration: int
    donation_percentage: int
    deposited_amount: int
    created_at: int
    last_deposit_at: int | None
    status: GoalStatusName

    @field_serializer("target_amount", "deposited_amount")
    def serialize_units(self, value: int) -> str:
        return format_units(value)

    @classmethod
    def from_goal(cls, goal: Goal) -> "GoalResponse":
        return cls(**goal.to_state())


class GoalDetailsResponse(BaseModel):
    goal: GoalResponse
    current_value: int
    yield_earned: int

    @field_serializer("current_value", "yield_earned")
    def serialize_units(self, value: int) -> str:
        return format_units(value)

    @classmethod
    def from_details(cls, details: GoalDetails) -> "GoalDetailsResponse":
        return cls(
            goal=GoalResponse.from_goal(details.goal),
            current_value=details.current_value,
            yield_earned=details.yield_earned,
        )


class DepositRecordResponse(BaseModel):
    amount: int
    shares: int
    timestamp: int

    @field_serializer("amount", "shares")
    def serialize_units(self, value: int) -> str:
        return format_units(value)


class CompletedWithdrawalResponse(BaseModel):
    goal_id: int
    principal: int
    yield_earned: int
    depositor_yield: int
    donation: int
    paid_to_owner: int

    @field_serializer("principal", "yield_earned", "depositor_yield", "donation", "paid_to_owner")
    def serialize_units(self, value: int) -> str:
        return format_units(value)


class EarlyWithdrawalResponse(BaseModel):
    goal_id: int
    total_value: int
    penalty: int
    penalty_to_rewards: int
    penalty_to_treasury: int
    amount_after_penalty: int

    @field_serializer(
        "total_value",
        "penalty",
        "penalty_to_rewards",
        "penalty_to_treasury",
        "amount_after_penalty",
    )
    def serialize_units(self, value: int) -> str:
        return format_units(value)


def _deposit_out(record: DepositRecord) -> DepositRecordResponse:
    return DepositRecordResponse(amount=record.amount, shares=record.shares, timestamp=record.timestamp)


@router.get("/currencies", response_model=list[str])
async def list_supported_currencies(
    system: GoalVaultSystem = Depends(get_system),
) -> list[str]:
    return system.manager.get_supported_currencies()


@router.post("", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
async def create_goal_endpoint(
    payload: GoalCreateRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> GoalResponse:
    """Create one savings goal owned by the caller."""
    async with persisted(connection, system):
        try:
            goal_id = system.manager.create_goal(
                account,
                payload.currency.upper(),
                VaultMode(payload.mode),
                payload.target_amount,
                payload.duration,
                payload.donation_percentage,
            )
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return GoalResponse.from_goal(system.manager.get_goal(goal_id))


@router.get("", response_model=list[GoalResponse])
async def list_goals_endpoint(
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
) -> list[GoalResponse]:
    """List the caller's goals, oldest first."""
    return [
        GoalResponse.from_goal(system.manager.get_goal(goal_id))
        for goal_id in system.manager.get_user_goals(account)
    ]


@router.get("/{goal_id}", response_model=GoalDetailsResponse)
async def get_goal_endpoint(
    goal_id: int,
    _: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
) -> GoalDetailsResponse:
    """Goal record with its current redeemable value and unrealized yield."""
    try:
        return GoalDetailsResponse.from_details(system.manager.get_goal_details(goal_id))
    except GoalVaultError as exc:
        raise http_error(exc) from exc


@router.get("/{goal_id}/deposits", response_model=list[DepositRecordResponse])
async def list_deposits_endpoint(
    goal_id: int,
    _: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
) -> list[DepositRecordResponse]:
    try:
        return [_deposit_out(record) for record in system.manager.get_goal_deposits(goal_id)]
    except GoalVaultError as exc:
        raise http_error(exc) from exc


@router.post("/{goal_id}/deposits", response_model=GoalResponse)
async def deposit_endpoint(
    goal_id: int,
    payload: DepositRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> GoalResponse:
    """Move `amount` from the caller's balance into the goal's vault."""
    async with persisted(connection, system):
        try:
            goal = system.manager.deposit(account, goal_id, payload.amount)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return GoalResponse.from_goal(goal)


@router.post("/{goal_id}/withdraw", response_model=CompletedWithdrawalResponse)
async def withdraw_completed_endpoint(
    goal_id: int,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> CompletedWithdrawalResponse:
    """Pay out a completed goal: principal plus the depositor's share of yield."""
    async with persisted(connection, system):
        try:
            result = system.manager.withdraw_completed(account, goal_id)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return CompletedWithdrawalResponse(
        goal_id=result.goal_id,
        principal=result.principal,
        yield_earned=result.yield_earned,
        depositor_yield=result.depositor_yield,
        donation=result.donation,
        paid_to_owner=result.paid_to_owner,
    )


@router.post("/{goal_id}/withdraw-early", response_model=EarlyWithdrawalResponse)
async def withdraw_early_endpoint(
    goal_id: int,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> EarlyWithdrawalResponse:
    """Abandon an active goal and take its value minus the early-exit penalty."""
    async with persisted(connection, system):
        try:
            result = system.manager.withdraw_early(account, goal_id)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return EarlyWithdrawalResponse(
        goal_id=result.goal_id,
        total_value=result.total_value,
        penalty=result.penalty,
        penalty_to_rewards=result.penalty_to_rewards,
        penalty_to_treasury=result.penalty_to_treasury,
        amount_after_penalty=result.amount_after_penalty,
    )


@router.patch("/{goal_id}/donation-percentage", response_model=GoalResponse)
async def set_donation_percentage_endpoint(
    goal_id: int,
    payload: DonationPercentageRequest,
    account: str = Depends(get_current_account),
    system: GoalVaultSystem = Depends(get_system),
    connection: Any = Depends(get_db_connection),
) -> GoalResponse:
    async with persisted(connection, system):
        try:
            goal = system.manager.set_donation_percentage(account, goal_id, payload.donation_percentage)
        except GoalVaultError as exc:
            raise http_error(exc) from exc

    return GoalResponse.from_goal(goal)
