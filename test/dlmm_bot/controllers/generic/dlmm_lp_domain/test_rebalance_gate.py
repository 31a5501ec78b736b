import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "../../../../.."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from dlmm_bot.controllers.generic.dlmm_lp_domain.components import (
    BinRange,
    MonitorContext,
    MonitorState,
    PoolMetadata,
    PositionSnapshot,
    RebalanceDirection,
)
from dlmm_bot.controllers.generic.dlmm_lp_domain.rebalance_engine import (
    InitialPhaseGate,
    PreflightCheck,
    RebalanceEngine,
    needs_rebalance,
)

SOL = "So11111111111111111111111111111111111111112"


class DummyConfig:
    def __init__(self, **overrides):
        self.rebalance_check_interval_sec = 0
        self.rebalance_cooldown_sec = 0
        self.base_fee_lamports = 10_000
        self.token_account_rent_lamports = 2_039_280
        self.priority_fee_micro_lamports = 50_000
        self.compute_unit_limit = 400_000
        self.preflight_buffer_lamports = 50_000_000
        for key, value in overrides.items():
            setattr(self, key, value)


def _ctx(lower=80, upper=100, creation_bin=100, gate=None, now=0.0):
    ctx = MonitorContext(state=MonitorState.MONITORING)
    ctx.position_id = "pos"
    ctx.position_range = BinRange(lower=lower, upper=upper)
    ctx.last_rebalance_ts = now
    gate = gate or InitialPhaseGate(threshold_bins=2)
    ctx.gate = gate.arm(creation_bin, ctx.position_range, now)
    return ctx


@pytest.mark.parametrize(
    "active, expected",
    [
        (79, (True, RebalanceDirection.DOWN)),
        (80, (False, None)),
        (90, (False, None)),
        (100, (False, None)),
        (101, (True, RebalanceDirection.UP)),
    ],
)
def test_needs_rebalance_boundaries(active, expected):
    signal = needs_rebalance(active, 80, 100)
    assert (signal.needs_rebalance, signal.direction) == expected
    # Pure: same inputs, same answer.
    assert needs_rebalance(active, 80, 100) == signal


def test_gate_bias_matches_range_edge():
    assert InitialPhaseGate.bias_for_range(100, BinRange(80, 100)) == RebalanceDirection.DOWN
    assert InitialPhaseGate.bias_for_range(100, BinRange(100, 120)) == RebalanceDirection.UP
    assert InitialPhaseGate.bias_for_range(100, BinRange(90, 110)) is None


def test_gate_stays_active_until_threshold_is_reached_in_bias_direction():
    gate = InitialPhaseGate(threshold_bins=2)
    state = gate.arm(100, BinRange(80, 100))

    assert gate.observe(state, 99) is True
    assert state.active is True
    # Movement against the bias does not count.
    assert gate.observe(state, 105) is True
    assert gate.observe(state, 97) is False
    assert state.active is False
    # Once off, it stays off.
    assert gate.observe(state, 100) is False


def test_gate_with_zero_threshold_is_never_active():
    gate = InitialPhaseGate(threshold_bins=0)
    state = gate.arm(100, BinRange(80, 100))
    assert state.active is False


def test_gate_max_hold_releases_after_timeout():
    gate = InitialPhaseGate(threshold_bins=2, max_hold_sec=60)
    state = gate.arm(100, BinRange(100, 120), now=1000.0)

    assert gate.observe(state, 99, now=1030.0) is True
    assert gate.observe(state, 99, now=1060.0) is False


def test_out_of_range_is_blocked_while_gate_active():
    engine = RebalanceEngine(config=DummyConfig(), gate=InitialPhaseGate(threshold_bins=5))
    ctx = _ctx(lower=100, upper=120, creation_bin=100, gate=engine.gate)

    # UP-biased gate; price drops one bin below the range.
    signal, reason = engine.evaluate(10.0, 99, ctx)

    assert signal.needs_rebalance is False
    assert reason == "initial_gate"


def test_gate_released_then_rebalance_fires():
    engine = RebalanceEngine(config=DummyConfig(), gate=InitialPhaseGate(threshold_bins=2))
    ctx = _ctx(lower=80, upper=100, creation_bin=100, gate=engine.gate)

    signal, reason = engine.evaluate(10.0, 99, ctx)
    assert reason == "in_range"
    signal, reason = engine.evaluate(20.0, 77, ctx)

    assert ctx.gate.active is False
    assert signal.needs_rebalance is True
    assert signal.direction == RebalanceDirection.DOWN
    assert reason == "out_of_range_down"


def test_gate_and_cooldown_are_independent():
    config = DummyConfig(rebalance_cooldown_sec=300)
    engine = RebalanceEngine(config=config, gate=InitialPhaseGate(threshold_bins=2))
    ctx = _ctx(lower=100, upper=120, creation_bin=100, gate=engine.gate, now=1000.0)

    # Gate releases on the first out-of-range tick but the open-time cooldown still holds.
    signal, reason = engine.evaluate(1100.0, 130, ctx)
    assert ctx.gate.active is False
    assert reason == "cooldown"

    signal, reason = engine.evaluate(1300.0, 130, ctx)
    assert signal.needs_rebalance is True
    assert reason == "out_of_range_up"


def test_gate_observes_ticks_inside_check_interval():
    config = DummyConfig(rebalance_check_interval_sec=60)
    engine = RebalanceEngine(config=config, gate=InitialPhaseGate(threshold_bins=2))
    ctx = _ctx(lower=80, upper=100, creation_bin=100, gate=engine.gate)

    _, reason = engine.evaluate(100.0, 100, ctx)
    assert reason == "in_range"
    _, reason = engine.evaluate(110.0, 97, ctx)

    assert reason == "check_interval"
    assert ctx.gate.active is False


def test_preflight_counts_reserve_side_and_wallet_balance():
    config = DummyConfig()
    check = PreflightCheck(config=config)
    pool = PoolMetadata("pool", SOL, "USDC", 9, 6, 10, SOL)
    position = PositionSnapshot("pos", "pool", 80, 100, 30_000_000, 5_000_000, 1_000_000, 10)

    overhead = check.overhead_lamports()
    assert overhead == 2_039_280 + 20_000 + 10_000 + 50_000_000

    estimate = check.estimate(position, pool)
    assert estimate.freed_raw == 31_000_000
    assert estimate.ok is False

    estimate = check.estimate(position, pool, wallet_native_raw=30_000_000)
    assert estimate.freed_raw == 61_000_000
    assert estimate.ok is True
    assert estimate.net_raw == 61_000_000 - overhead


def test_preflight_uses_y_side_when_reserve_is_y():
    check = PreflightCheck(config=DummyConfig())
    pool = PoolMetadata("pool", "TOKEN", SOL, 6, 9, 10, SOL)
    position = PositionSnapshot("pos", "pool", 80, 100, 999, 100_000_000, 999, 1)

    assert check.estimate(position, pool).freed_raw == 100_000_001


def test_needs_rebalance_handles_negative_bin_ids():
    assert needs_rebalance(-5, -3, 3).direction == RebalanceDirection.DOWN
    assert needs_rebalance(4, -3, 3).direction == RebalanceDirection.UP


def test_preflight_ignores_non_native_reserve_amounts():
    check = PreflightCheck(config=DummyConfig())
    pool = PoolMetadata("pool", "USDC", "BONK", 6, 5, 10, "USDC")
    # 40 USDC in micro-units must not be compared against lamports.
    position = PositionSnapshot("pos", "pool", 80, 100, 40_000_000, 0, 5_000_000, 0)

    estimate = check.estimate(position, pool)
    assert estimate.freed_raw == 0
    assert estimate.ok is False

    estimate = check.estimate(position, pool, wallet_native_raw=100_000_000)
    assert estimate.freed_raw == 100_000_000
    assert estimate.ok is True


def test_preflight_counts_sol_side_when_reserve_is_another_token():
    check = PreflightCheck(config=DummyConfig())
    pool = PoolMetadata("pool", SOL, "USDC", 9, 6, 10, "USDC")
    position = PositionSnapshot("pos", "pool", 80, 100, 60_000_000, 900_000_000, 1_000, 7)

    assert check.estimate(position, pool).freed_raw == 60_001_000
