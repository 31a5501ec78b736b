from typing import Optional

from .components import (
    BinRange,
    Decision,
    MonitorAction,
    MonitorContext,
    MonitorState,
    TickSnapshot,
)
from .exit_policy import ExitPolicy
from .rebalance_engine import RebalanceEngine

DEFAULT_MAX_MISSING_ATTEMPTS = 5


class MonitorFSM:
    def __init__(
        self,
        *,
        config,
        exit_policy: ExitPolicy,
        rebalance_engine: RebalanceEngine,
    ) -> None:
        self._config = config
        self._exit_policy = exit_policy
        self._rebalance_engine = rebalance_engine

    def step(self, tick: TickSnapshot, ctx: MonitorContext) -> Decision:
        now = tick.now
        if ctx.state_since_ts <= 0:
            ctx.state_since_ts = now
        if ctx.state == MonitorState.TERMINATED:
            return Decision(reason="terminated")
        if ctx.state != MonitorState.MONITORING:
            return self._stay(ctx, reason=f"busy_{ctx.state.value.lower()}")
        return self._handle_monitoring(tick, ctx)

    def _handle_monitoring(self, tick: TickSnapshot, ctx: MonitorContext) -> Decision:
        now = tick.now
        ctx.missing_position_attempts = 0
        ctx.last_active_bin = tick.active_bin

        exit_signal = self._exit_policy.evaluate(tick.pnl.session_pnl_pct, ctx.trailing)
        if exit_signal is not None:
            ctx.exit_signal = exit_signal
            return self._transition(
                ctx,
                MonitorState.CLOSING,
                now,
                Decision(action=MonitorAction.EXIT, reason=exit_signal.reason.value, exit_signal=exit_signal),
            )

        signal, reason = self._rebalance_engine.evaluate(now, tick.active_bin, ctx)
        if signal.needs_rebalance:
            return self._transition(
                ctx,
                MonitorState.REBALANCING,
                now,
                Decision(action=MonitorAction.REBALANCE, reason=reason, direction=signal.direction),
            )
        return self._stay(ctx, reason=reason)

    def on_position_missing(self, ctx: MonitorContext, now: float) -> Decision:
        ctx.missing_position_attempts += 1
        max_attempts = int(getattr(self._config, "max_missing_position_attempts", DEFAULT_MAX_MISSING_ATTEMPTS))
        if ctx.missing_position_attempts >= max_attempts:
            return self.terminate(
                ctx,
                now,
                reason=f"position {ctx.position_id} missing after {ctx.missing_position_attempts} attempts",
            )
        return self._stay(ctx, reason=f"position_missing_{ctx.missing_position_attempts}")

    def on_opened(
        self,
        ctx: MonitorContext,
        now: float,
        *,
        position_id: str,
        bin_range: BinRange,
        active_bin: int,
        arm_gate: bool = True,
    ) -> Decision:
        self._adopt(ctx, now, position_id=position_id, bin_range=bin_range, active_bin=active_bin, arm_gate=arm_gate)
        return self._transition(ctx, MonitorState.MONITORING, now, Decision(reason="position_opened"))

    def _adopt(
        self,
        ctx: MonitorContext,
        now: float,
        *,
        position_id: str,
        bin_range: BinRange,
        active_bin: int,
        arm_gate: bool,
    ) -> None:
        ctx.position_id = position_id
        ctx.position_range = bin_range
        ctx.opened_ts = now
        ctx.last_rebalance_ts = now
        ctx.last_rebalance_check_ts = 0.0
        ctx.missing_position_attempts = 0
        ctx.last_active_bin = active_bin
        if arm_gate:
            ctx.gate = self._rebalance_engine.gate.arm(active_bin, bin_range, now)
        else:
            ctx.gate.active = False

    def on_rebalanced(
        self,
        ctx: MonitorContext,
        now: float,
        *,
        position_id: str,
        bin_range: BinRange,
        active_bin: int,
    ) -> Decision:
        if getattr(self._config, "trailing_reset_on_rebalance", False):
            ctx.trailing.reset()
        self._adopt(
            ctx,
            now,
            position_id=position_id,
            bin_range=bin_range,
            active_bin=active_bin,
            arm_gate=bool(getattr(self._config, "initial_gate_on_rebalance", False)),
        )
        return self._transition(ctx, MonitorState.MONITORING, now, Decision(reason="rebalanced"))

    def on_rebalance_skipped(
        self,
        ctx: MonitorContext,
        now: float,
        reason: str,
        *,
        attempted: bool = False,
    ) -> Decision:
        if attempted:
            ctx.last_rebalance_ts = now
        return self._transition(ctx, MonitorState.MONITORING, now, Decision(reason=reason))

    def on_close_failed(self, ctx: MonitorContext, now: float, reason: str) -> Decision:
        ctx.exit_signal = None
        return self._transition(ctx, MonitorState.MONITORING, now, Decision(reason=reason))

    def terminate(self, ctx: MonitorContext, now: float, reason: Optional[str]) -> Decision:
        ctx.termination_reason = reason or ctx.termination_reason or "terminated"
        return self._transition(
            ctx,
            MonitorState.TERMINATED,
            now,
            Decision(action=MonitorAction.TERMINATE, reason=ctx.termination_reason),
        )

    @staticmethod
    def _transition(ctx: MonitorContext, state: MonitorState, now: float, decision: Decision) -> Decision:
        ctx.state = state
        ctx.state_since_ts = now
        ctx.last_decision_reason = decision.reason
        return decision

    @staticmethod
    def _stay(ctx: MonitorContext, reason: str) -> Decision:
        ctx.last_decision_reason = reason
        return Decision(reason=reason)
