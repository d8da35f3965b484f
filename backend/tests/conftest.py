import os

import pytest

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_ALGORITHM", "HS256")

from goalvault.bootstrap import GoalVaultSystem, build_system  # noqa: E402
from goalvault.clock import ManualClock  # noqa: E402
from goalvault.config import Settings  # noqa: E402

DAY = 24 * 60 * 60


def make_settings(**overrides) -> Settings:
    values = {
        "jwt_secret_key": "test-secret-key",
        "jwt_algorithm": "HS256",
        "supported_currencies": "USDC,DAI",
        "min_goal_duration_seconds": 7 * DAY,
        "early_withdrawal_penalty_bps": 200,
        # Accrual is stepped explicitly in tests unless a test sets a rate.
        "lite_reserve_rate_bps": 0,
        "pro_reserve_rate_bps": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def system(clock: ManualClock) -> GoalVaultSystem:
    return build_system(make_settings(), clock=clock)


@pytest.fixture
def fund(system: GoalVaultSystem):
    def _fund(account: str, amount: int, currency: str = "USDC") -> None:
        system.ledger.mint(currency, account, amount)

    return _fund
