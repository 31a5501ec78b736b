from dataclasses import dataclass
from typing import Optional, Tuple

from .components import (
    BinRange,
    InitialGateState,
    MonitorContext,
    PoolMetadata,
    PositionSnapshot,
    RebalanceDirection,
    RebalanceSignal,
)

SOL_MINT = "So11111111111111111111111111111111111111112"
BASE_FEE_LAMPORTS = 10_000
TOKEN_ACCOUNT_SIZE = 165
TOKEN_ACCOUNT_RENT_LAMPORTS = 2_039_280
PREFLIGHT_SOL_BUFFER_LAMPORTS = 50_000_000
DEFAULT_PRIORITY_FEE_MICRO_LAMPORTS = 50_000
DEFAULT_COMPUTE_UNIT_LIMIT = 400_000


def needs_rebalance(active_bin: int, lower_bin: int, upper_bin: int) -> RebalanceSignal:
    if active_bin < lower_bin:
        return RebalanceSignal(needs_rebalance=True, direction=RebalanceDirection.DOWN)
    if active_bin > upper_bin:
        return RebalanceSignal(needs_rebalance=True, direction=RebalanceDirection.UP)
    return RebalanceSignal(needs_rebalance=False, direction=None)


class InitialPhaseGate:
    def __init__(self, *, threshold_bins: int = 2, max_hold_sec: float = 0.0) -> None:
        self._threshold = max(0, int(threshold_bins))
        self._max_hold_sec = max(0.0, float(max_hold_sec))

    @property
    def threshold_bins(self) -> int:
        return self._threshold

    @staticmethod
    def bias_for_range(creation_bin: int, bin_range: BinRange) -> Optional[RebalanceDirection]:
        if bin_range.upper == creation_bin and bin_range.lower < creation_bin:
            return RebalanceDirection.DOWN
        if bin_range.lower == creation_bin and bin_range.upper > creation_bin:
            return RebalanceDirection.UP
        return None

    def arm(self, creation_bin: int, bin_range: BinRange, now: float = 0.0) -> InitialGateState:
        return InitialGateState(
            creation_bin=creation_bin,
            bias=self.bias_for_range(creation_bin, bin_range),
            active=self._threshold > 0,
            armed_ts=now,
        )

    @staticmethod
    def moved_bins(state: InitialGateState, active_bin: int) -> int:
        if state.creation_bin is None:
            return 0
        if state.bias == RebalanceDirection.DOWN:
            return state.creation_bin - active_bin
        if state.bias == RebalanceDirection.UP:
            return active_bin - state.creation_bin
        return abs(active_bin - state.creation_bin)

    def observe(self, state: InitialGateState, active_bin: int, now: float = 0.0) -> bool:
        """Feed one active-bin observation; returns True while the gate still blocks."""
        if not state.active:
            return False
        if state.creation_bin is None:
            state.active = False
            return False
        if self._max_hold_sec > 0 and now - state.armed_ts >= self._max_hold_sec:
            state.active = False
            return False
        if self.moved_bins(state, active_bin) >= self._threshold:
            state.active = False
        return state.active


class RebalanceEngine:
    def __init__(self, *, config, gate: InitialPhaseGate) -> None:
        self._config = config
        self._gate = gate

    @property
    def gate(self) -> InitialPhaseGate:
        return self._gate

    def evaluate(self, now: float, active_bin: int, ctx: MonitorContext) -> Tuple[RebalanceSignal, str]:
        # The gate sees every valuation tick; the check cadence does not delay it.
        self._gate.observe(ctx.gate, active_bin, now)

        check_interval = float(getattr(self._config, "rebalance_check_interval_sec", 0) or 0)
        if ctx.last_rebalance_check_ts > 0 and now - ctx.last_rebalance_check_ts < check_interval:
            return RebalanceSignal(needs_rebalance=False), "check_interval"
        ctx.last_rebalance_check_ts = now

        if ctx.position_range is None:
            return RebalanceSignal(needs_rebalance=False), "no_position"
        signal = needs_rebalance(active_bin, ctx.position_range.lower, ctx.position_range.upper)
        if not signal.needs_rebalance:
            return signal, "in_range"
        if ctx.gate.active:
            return RebalanceSignal(needs_rebalance=False), "initial_gate"

        cooldown = float(getattr(self._config, "rebalance_cooldown_sec", 0) or 0)
        if ctx.last_rebalance_ts > 0 and now - ctx.last_rebalance_ts < cooldown:
            return RebalanceSignal(needs_rebalance=False), "cooldown"
        return signal, f"out_of_range_{signal.direction.value.lower()}"


@dataclass(frozen=True)
class PreflightEstimate:
    freed_raw: int
    overhead_raw: int

    @property
    def net_raw(self) -> int:
        return self.freed_raw - self.overhead_raw

    @property
    def ok(self) -> bool:
        return self.net_raw > 0


class PreflightCheck:
    def __init__(self, *, config) -> None:
        self._config = config

    def overhead_lamports(self) -> int:
        base_fee = int(getattr(self._config, "base_fee_lamports", BASE_FEE_LAMPORTS))
        rent = int(getattr(self._config, "token_account_rent_lamports", TOKEN_ACCOUNT_RENT_LAMPORTS))
        priority_micro = int(getattr(self._config, "priority_fee_micro_lamports", DEFAULT_PRIORITY_FEE_MICRO_LAMPORTS))
        cu_limit = int(getattr(self._config, "compute_unit_limit", DEFAULT_COMPUTE_UNIT_LIMIT))
        buffer = int(getattr(self._config, "preflight_buffer_lamports", PREFLIGHT_SOL_BUFFER_LAMPORTS))
        priority = priority_micro * cu_limit // 1_000_000
        return rent + priority + base_fee + buffer

    def estimate(
        self,
        position: PositionSnapshot,
        pool: PoolMetadata,
        *,
        wallet_native_raw: int = 0,
    ) -> PreflightEstimate:
        """Compare the lamports a rebalance frees against the lamports it costs.

        Only the SOL side of the pool counts as freed, whichever token the
        reserve is; a pool without SOL relies on the wallet balance alone.
        """
        if pool.token_x == SOL_MINT:
            native_raw = int(position.amount_x) + int(position.fee_x)
        elif pool.token_y == SOL_MINT:
            native_raw = int(position.amount_y) + int(position.fee_y)
        else:
            native_raw = 0
        return PreflightEstimate(
            freed_raw=native_raw + max(0, int(wallet_native_raw)),
            overhead_raw=self.overhead_lamports(),
        )
