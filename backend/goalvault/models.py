"""Goal records, positions and the central status transition table."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, NamedTuple

from goalvault.errors import InvalidTransition

BPS_DENOMINATOR = 10_000


class GoalStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class VaultMode(Enum):
    LITE = "lite"
    PRO = "pro"


class GoalEvent(Enum):
    TARGET_REACHED = "target_reached"
    EARLY_EXIT = "early_exit"


class VaultKey(NamedTuple):
    """Composite key of the vault configuration table."""

    currency: str
    mode: VaultMode

    def label(self) -> str:
        return f"{self.currency}:{self.mode.value}"


# Only these edges exist; everything else is rejected.
TRANSITIONS: dict[tuple[GoalStatus, GoalEvent], GoalStatus] = {
    (GoalStatus.ACTIVE, GoalEvent.TARGET_REACHED): GoalStatus.COMPLETED,
    (GoalStatus.ACTIVE, GoalEvent.EARLY_EXIT): GoalStatus.ABANDONED,
}


def next_status(current: GoalStatus, event: GoalEvent) -> GoalStatus:
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransition(
            f"cannot apply {event.value} to a goal that is {current.value}"
        ) from None


@dataclass
class Goal:
    id: int
    owner: str
    currency: str
    mode: VaultMode
    target_amount: int
    duration: int
    donation_percentage: int
    deposited_amount: int
    created_at: int
    last_deposit_at: int | None
    status: GoalStatus

    @property
    def vault_key(self) -> VaultKey:
        return VaultKey(self.currency, self.mode)

    def to_state(self) -> dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        data["status"] = self.status.value
        return data

    @classmethod
    def from_state(cls, data: dict[str, Any]) -> "Goal":
        return cls(
            **{
                **data,
                "mode": VaultMode(data["mode"]),
                "status": GoalStatus(data["status"]),
            }
        )


@dataclass
class DepositPosition:
    principal: int
    shares: int
    updated_at: int


@dataclass(frozen=True)
class DepositRecord:
    goal_id: int
    amount: int
    shares: int
    timestamp: int


@dataclass(frozen=True)
class GoalDetails:
    goal: Goal
    current_value: int
    yield_earned: int


@dataclass(frozen=True)
class CompletedWithdrawal:
    goal_id: int
    principal: int
    yield_earned: int
    depositor_yield: int
    donation: int

    @property
    def paid_to_owner(self) -> int:
        return self.principal + self.depositor_yield


@dataclass(frozen=True)
class EarlyWithdrawal:
    goal_id: int
    total_value: int
    penalty: int
    penalty_to_rewards: int
    penalty_to_treasury: int
    amount_after_penalty: int
