import os
import sys
from decimal import Decimal

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "../../../../.."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from dlmm_bot.controllers.generic.dlmm_lp_domain.components import CompoundingMode, PositionValuation
from dlmm_bot.controllers.generic.dlmm_lp_domain.session import SessionState, split_fees


def _session(mode=CompoundingMode.BOTH, auto_compound=True, deposit=Decimal("1000")):
    return SessionState.start(
        deposit_native=Decimal("5"),
        deposit_usd=deposit,
        auto_compound=auto_compound,
        compounding_mode=mode,
        swapless_enabled=False,
        now=100.0,
    )


def _valuation(liquidity, fee_x_usd=Decimal("0"), fee_y_usd=Decimal("0")):
    return PositionValuation(
        price_x=Decimal("1"),
        price_y=Decimal("1"),
        amount_x=liquidity,
        amount_y=Decimal("0"),
        fee_x=fee_x_usd,
        fee_y=fee_y_usd,
        liquidity_usd=liquidity,
        fee_x_usd=fee_x_usd,
        fee_y_usd=fee_y_usd,
    )


def test_start_sets_baseline_to_deposit():
    session = _session()
    assert session.baseline_usd == Decimal("1000")
    assert session.initial_deposit_usd == Decimal("1000")
    assert session.rebalance_count == 0


def test_start_rejects_non_positive_deposit():
    with pytest.raises(ValueError):
        _session(deposit=Decimal("0"))


def test_session_pnl_includes_unclaimed_fees():
    session = _session()
    view = session.update_pnl(_valuation(Decimal("1040"), fee_x_usd=Decimal("6"), fee_y_usd=Decimal("4")))

    assert view.total_value_usd == Decimal("1050")
    assert view.session_pnl_usd == Decimal("50")
    assert view.session_pnl_pct == Decimal("5")
    assert session.last_pnl is view


@pytest.mark.parametrize(
    "mode, compounded, claimed",
    [
        (CompoundingMode.BOTH, Decimal("10"), Decimal("0")),
        (CompoundingMode.SOL_ONLY, Decimal("6"), Decimal("4")),
        (CompoundingMode.TOKEN_ONLY, Decimal("4"), Decimal("6")),
        (CompoundingMode.NONE, Decimal("0"), Decimal("10")),
    ],
)
def test_fee_split_per_mode(mode, compounded, claimed):
    split = split_fees(
        auto_compound=True,
        mode=mode,
        reserve_fee_usd=Decimal("6"),
        other_fee_usd=Decimal("4"),
    )
    assert split.compounded_usd == compounded
    assert split.claimed_usd == claimed
    assert split.total_usd == Decimal("10")


def test_auto_compound_off_claims_everything():
    split = split_fees(
        auto_compound=False,
        mode=CompoundingMode.BOTH,
        reserve_fee_usd=Decimal("6"),
        other_fee_usd=Decimal("4"),
    )
    assert split.compounded_usd == Decimal("0")
    assert split.claimed_usd == Decimal("10")


def test_rebalance_with_full_compounding_redeploys_fees():
    session = _session(mode=CompoundingMode.BOTH)

    session.apply_rebalance(
        redeployed_usd=Decimal("1000"),
        reserve_fee_usd=Decimal("12"),
        other_fee_usd=Decimal("8"),
    )

    assert session.baseline_usd == Decimal("1000")
    assert session.total_compounded_fees_usd == Decimal("20")
    assert session.total_claimed_fees_usd == Decimal("0")
    assert session.rebalance_count == 1


def test_rebalance_without_compounding_claims_all_fees():
    session = _session(mode=CompoundingMode.NONE)

    session.apply_rebalance(
        redeployed_usd=Decimal("980"),
        reserve_fee_usd=Decimal("12"),
        other_fee_usd=Decimal("8"),
    )

    assert session.baseline_usd == Decimal("980")
    assert session.total_claimed_fees_usd == Decimal("20")

    # Claimed fees count toward lifetime P&L, not session P&L.
    view = session.update_pnl(_valuation(Decimal("990")))
    assert view.session_pnl_usd == Decimal("10")
    assert view.lifetime_pnl_usd == Decimal("10")


def test_fresh_baseline_after_rebalance_resets_session_pnl():
    session = _session(mode=CompoundingMode.BOTH)
    session.update_pnl(_valuation(Decimal("1100")))

    session.apply_rebalance(
        redeployed_usd=Decimal("1100"),
        reserve_fee_usd=Decimal("0"),
        other_fee_usd=Decimal("0"),
    )
    view = session.update_pnl(_valuation(Decimal("1100")))

    assert view.session_pnl_usd == Decimal("0")
    assert view.lifetime_pnl_usd == Decimal("100")
    assert view.lifetime_pnl_pct == Decimal("10")


def test_record_claim_and_deposit_ignore_non_positive():
    session = _session()
    session.record_claim(Decimal("3"))
    session.record_claim(Decimal("-1"))
    session.record_deposit(Decimal("0"))

    assert session.total_claimed_fees_usd == Decimal("3")
    assert session.cumulative_deposits_usd == Decimal("1000")


def test_baseline_is_the_redeployed_value_not_the_closed_value():
    session = _session(mode=CompoundingMode.BOTH)

    # Closed at $1000 with $20 of fees; the open withheld $70 of it.
    session.apply_rebalance(
        redeployed_usd=Decimal("950"),
        reserve_fee_usd=Decimal("12"),
        other_fee_usd=Decimal("8"),
    )
    view = session.update_pnl(_valuation(Decimal("950")))

    assert session.baseline_usd == Decimal("950")
    assert session.total_compounded_fees_usd == Decimal("20")
    assert view.session_pnl_usd == Decimal("0")


def test_rebalance_rejects_non_positive_redeployed_value():
    session = _session()

    with pytest.raises(ValueError):
        session.apply_rebalance(
            redeployed_usd=Decimal("0"),
            reserve_fee_usd=Decimal("0"),
            other_fee_usd=Decimal("0"),
        )
    assert session.rebalance_count == 0
