import pytest

from goalvault.clock import ManualClock
from goalvault.errors import (
    ArrayLengthMismatch,
    InsufficientBalance,
    InvalidPercentage,
    RouterPaused,
    TokenNotWhitelisted,
    Unauthorized,
    ZeroAddress,
    ZeroAmount,
)
from goalvault.services.guards import AdminCapability
from goalvault.services.ledger import TokenLedger
from goalvault.services.yield_router import YieldRouter, YieldSplit, calculate_split

ROUTER = "router"
SINK = "sink"
ADMIN = "admin"


def _router(ledger: TokenLedger, whitelist=("USDC",)) -> YieldRouter:
    return YieldRouter(
        account=ROUTER,
        ledger=ledger,
        clock=ManualClock(),
        admin=AdminCapability(ADMIN),
        donation_recipient=SINK,
        whitelist=whitelist,
    )


def test_calculate_split_reference_values() -> None:
    assert calculate_split(1000, 3000) == YieldSplit(700, 300)
    assert calculate_split(100, 0) == (100, 0)
    assert calculate_split(100, 10000) == (0, 100)


def test_split_remainder_favors_depositor() -> None:
    # 7 * 3333 / 10000 = 2.33 -> donation floors to 2
    assert calculate_split(7, 3333) == (5, 2)
    assert calculate_split(1, 9999) == (1, 0)


@pytest.mark.parametrize("total_yield", [1, 7, 999, 1_000_003, 10**24 + 17])
def test_split_parts_always_sum_to_total(total_yield: int) -> None:
    for pct in range(0, 10001, 37):
        depositor, donation = calculate_split(total_yield, pct)
        assert depositor + donation == total_yield
        assert depositor >= 0 and donation >= 0


def test_calculate_split_rejects_out_of_range_percentage() -> None:
    with pytest.raises(InvalidPercentage):
        calculate_split(100, 10001)
    with pytest.raises(InvalidPercentage):
        calculate_split(100, -1)


def test_route_yield_pays_both_parties_and_updates_totals() -> None:
    ledger = TokenLedger()
    router = _router(ledger)
    ledger.mint("USDC", ROUTER, 1000)

    split = router.route_yield("manager", "USDC", 1000, 3000, "alice")

    assert split == (700, 300)
    assert ledger.balance_of("USDC", "alice") == 700
    assert ledger.balance_of("USDC", SINK) == 300
    assert ledger.balance_of("USDC", ROUTER) == 0
    assert router.get_total_donations_by_user("alice", "USDC") == 300
    stats = router.get_global_stats("USDC")
    assert stats.total_donated == 300
    assert stats.total_yield_routed == 1000
    assert stats.route_count == 1
    assert router.events.all("YieldRouted")[0].data["donation_amount"] == 300


def test_route_yield_requires_funds_already_in_router() -> None:
    ledger = TokenLedger()
    router = _router(ledger)
    ledger.mint("USDC", ROUTER, 99)

    with pytest.raises(InsufficientBalance):
        router.route_yield("manager", "USDC", 100, 3000, "alice")

    assert router.get_global_stats("USDC").total_donated == 0
    assert ledger.balance_of("USDC", ROUTER) == 99


def test_route_yield_validation() -> None:
    ledger = TokenLedger()
    router = _router(ledger)
    ledger.mint("USDC", ROUTER, 100)
    ledger.mint("DAI", ROUTER, 100)

    with pytest.raises(TokenNotWhitelisted):
        router.route_yield("manager", "DAI", 100, 3000, "alice")
    with pytest.raises(ZeroAmount):
        router.route_yield("manager", "USDC", 0, 3000, "alice")
    with pytest.raises(InvalidPercentage):
        router.route_yield("manager", "USDC", 100, 10001, "alice")
    with pytest.raises(ZeroAddress):
        router.route_yield("manager", "USDC", 100, 3000, "")


def test_paused_router_rejects_routes() -> None:
    ledger = TokenLedger()
    router = _router(ledger)
    ledger.mint("USDC", ROUTER, 100)
    router.set_paused(ADMIN, True)

    with pytest.raises(RouterPaused):
        router.route_yield("manager", "USDC", 100, 3000, "alice")

    router.set_paused(ADMIN, False)
    assert router.route_yield("manager", "USDC", 100, 3000, "alice") == (70, 30)


def test_batch_rejects_mismatched_lengths_before_any_item() -> None:
    ledger = TokenLedger()
    router = _router(ledger)
    ledger.mint("USDC", ROUTER, 1000)

    with pytest.raises(ArrayLengthMismatch):
        router.batch_route_yield("manager", ["USDC", "USDC"], [100, 100], [1000], ["a", "b"])

    assert router.get_global_stats("USDC").route_count == 0
    assert ledger.balance_of("USDC", ROUTER) == 1000


def test_batch_items_are_independent() -> None:
    ledger = TokenLedger()
    router = _router(ledger)
    ledger.mint("USDC", ROUTER, 250)

    results = router.batch_route_yield(
        "manager",
        ["USDC", "DAI", "USDC", "USDC"],
        [100, 50, 100, 100],
        [5000, 5000, 10000, 0],
        ["alice", "bob", "carol", "dave"],
    )

    assert [r.ok for r in results] == [True, False, True, False]
    assert results[0].split == (50, 50)
    assert "whitelisted" in results[1].error
    assert results[2].split == (0, 100)
    # Only 50 units were left for the last item.
    assert results[3].split is None
    assert ledger.balance_of("USDC", "alice") == 50
    assert ledger.balance_of("USDC", SINK) == 150
    assert router.get_global_stats("USDC").route_count == 2


def test_admin_operations_require_admin() -> None:
    ledger = TokenLedger()
    router = _router(ledger)

    with pytest.raises(Unauthorized):
        router.set_paused("mallory", True)
    with pytest.raises(Unauthorized):
        router.set_token_whitelist("mallory", "DAI", True)
    with pytest.raises(Unauthorized):
        router.set_donation_recipient("mallory", "mallory")
    with pytest.raises(Unauthorized):
        router.rescue_tokens("mallory", "USDC", 1, "mallory")


def test_whitelist_and_recipient_updates() -> None:
    ledger = TokenLedger()
    router = _router(ledger)

    router.set_token_whitelist(ADMIN, "DAI", True)
    assert router.is_token_whitelisted("DAI")
    router.set_token_whitelist(ADMIN, "USDC", False)
    assert not router.is_token_whitelisted("USDC")

    router.set_donation_recipient(ADMIN, "charity-2")
    ledger.mint("DAI", ROUTER, 10)
    router.route_yield("manager", "DAI", 10, 10000, "alice")
    assert ledger.balance_of("DAI", "charity-2") == 10


def test_rescue_moves_stranded_tokens_without_touching_totals() -> None:
    ledger = TokenLedger()
    router = _router(ledger)
    ledger.mint("USDC", ROUTER, 100)
    router.route_yield("manager", "USDC", 60, 5000, "alice")

    router.rescue_tokens(ADMIN, "USDC", 40, "treasury")

    assert ledger.balance_of("USDC", "treasury") == 40
    assert ledger.balance_of("USDC", ROUTER) == 0
    assert router.get_global_stats("USDC").total_donated == 30

    with pytest.raises(InsufficientBalance):
        router.rescue_tokens(ADMIN, "USDC", 1, "treasury")
