import asyncio
import logging
import time
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..shared.percent import check_pct_range, pct_to_ratio
from .dlmm_lp_domain.components import (
    BinRange,
    CompoundingMode,
    Decision,
    FeeHandlingMode,
    MonitorAction,
    MonitorContext,
    MonitorState,
    OpenRequest,
    PoolMetadata,
    PositionSnapshot,
    PositionValuation,
    RebalanceDirection,
    RebalanceEvent,
    TickSnapshot,
)
from .dlmm_lp_domain.errors import DLMMError, PositionNotFoundError
from .dlmm_lp_domain.exit_policy import ExitPolicy
from .dlmm_lp_domain.monitor_fsm import MonitorFSM
from .dlmm_lp_domain.range_calculator import BinRangeCalculator
from .dlmm_lp_domain.rebalance_engine import (
    BASE_FEE_LAMPORTS,
    DEFAULT_COMPUTE_UNIT_LIMIT,
    DEFAULT_PRIORITY_FEE_MICRO_LAMPORTS,
    PREFLIGHT_SOL_BUFFER_LAMPORTS,
    SOL_MINT,
    TOKEN_ACCOUNT_RENT_LAMPORTS,
    InitialPhaseGate,
    PreflightCheck,
    RebalanceEngine,
)
from .dlmm_lp_domain.reserve_ledger import NATIVE_DECIMALS, ReserveLedger
from .dlmm_lp_domain.retry import with_progressive_slippage, with_retry
from .dlmm_lp_domain.runtime import (
    PoolCollaborator,
    PositionValuator,
    PriceProvider,
    SwapCollaborator,
    from_raw,
    to_raw,
)
from .dlmm_lp_domain.session import SessionState
from .dlmm_lp_domain.swapless import SwaplessStrategy
from ...scripts.lp.status_formatter import (
    StatusRow,
    format_kv_table,
    format_status_header,
    format_status_row,
    format_summary_lines,
)

SOL_BUFFER_LAMPORTS = 70_000_000
HEADER_EVERY_ROWS = 20


class DLMMLPConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = "dlmm_lp"
    controller_name: str = "dlmm_lp"
    pool_address: str
    reserve_mint: str = SOL_MINT

    capital: Decimal = Field(default=Decimal("0"), json_schema_extra={"is_updatable": True})
    max_deploy_capital: Optional[Decimal] = Field(default=None, json_schema_extra={"is_updatable": True})
    reserve_ratio_pct: Decimal = Field(default=Decimal("100"), json_schema_extra={"is_updatable": True})
    total_bin_span: int = Field(default=20, json_schema_extra={"is_updatable": True})
    liquidity_strategy: str = "spot"
    rebalance_strategy: Optional[str] = None
    min_rebalance_swap_usd: Decimal = Field(default=Decimal("1"), json_schema_extra={"is_updatable": True})

    swapless_enabled: bool = Field(default=False, json_schema_extra={"is_updatable": True})
    swapless_bin_span: int = Field(default=10, json_schema_extra={"is_updatable": True})

    auto_compound: bool = Field(default=True, json_schema_extra={"is_updatable": True})
    compounding_mode: CompoundingMode = Field(default=CompoundingMode.BOTH, json_schema_extra={"is_updatable": True})
    fee_handling_mode: FeeHandlingMode = Field(
        default=FeeHandlingMode.CLAIM_TO_WALLET,
        json_schema_extra={"is_updatable": True},
    )
    min_fee_swap_usd: Decimal = Field(default=Decimal("1"), json_schema_extra={"is_updatable": True})

    take_profit_enabled: bool = Field(default=False, json_schema_extra={"is_updatable": True})
    take_profit_pct: Decimal = Field(default=Decimal("15"), json_schema_extra={"is_updatable": True})
    stop_loss_enabled: bool = Field(default=False, json_schema_extra={"is_updatable": True})
    stop_loss_pct: Decimal = Field(default=Decimal("10"), json_schema_extra={"is_updatable": True})
    trailing_stop_enabled: bool = Field(default=False, json_schema_extra={"is_updatable": True})
    trailing_trigger_pct: Decimal = Field(default=Decimal("5"), json_schema_extra={"is_updatable": True})
    trailing_distance_pct: Decimal = Field(default=Decimal("2"), json_schema_extra={"is_updatable": True})
    trailing_reset_on_rebalance: bool = Field(default=False, json_schema_extra={"is_updatable": True})

    initial_gate_bins: int = Field(default=2, json_schema_extra={"is_updatable": True})
    initial_gate_on_rebalance: bool = Field(default=False, json_schema_extra={"is_updatable": True})
    initial_gate_max_sec: float = Field(default=0.0, json_schema_extra={"is_updatable": True})

    pnl_check_interval_sec: float = Field(default=10.0, json_schema_extra={"is_updatable": True})
    rebalance_check_interval_sec: float = Field(default=60.0, json_schema_extra={"is_updatable": True})
    rebalance_cooldown_sec: float = Field(default=300.0, json_schema_extra={"is_updatable": True})

    max_missing_position_attempts: int = 5
    missing_position_retry_sec: float = 5.0
    close_confirm_attempts: int = 10
    close_confirm_interval_sec: float = 1.0
    exit_settle_sec: float = 1.5
    exit_dust_raw: int = 1000
    retry_max_attempts: int = 3
    retry_delay_sec: float = 0.5
    swap_slippage_steps_pct: List[Decimal] = Field(default_factory=lambda: [Decimal("1"), Decimal("2"), Decimal("3")])

    fee_buffer_lamports: int = SOL_BUFFER_LAMPORTS
    haircut_bps: int = 5
    preflight_enabled: bool = True
    preflight_buffer_lamports: int = PREFLIGHT_SOL_BUFFER_LAMPORTS
    base_fee_lamports: int = BASE_FEE_LAMPORTS
    token_account_rent_lamports: int = TOKEN_ACCOUNT_RENT_LAMPORTS
    priority_fee_micro_lamports: int = DEFAULT_PRIORITY_FEE_MICRO_LAMPORTS
    compute_unit_limit: int = DEFAULT_COMPUTE_UNIT_LIMIT

    @field_validator("take_profit_pct", mode="after")
    @classmethod
    def validate_take_profit_pct(cls, v):
        return check_pct_range("take_profit_pct", v, Decimal("0.1"), Decimal("200"))

    @field_validator("stop_loss_pct", mode="after")
    @classmethod
    def validate_stop_loss_pct(cls, v):
        return check_pct_range("stop_loss_pct", v, Decimal("0.1"), Decimal("100"))

    @field_validator("trailing_trigger_pct", "trailing_distance_pct", mode="after")
    @classmethod
    def validate_trailing_pct(cls, v, info):
        return check_pct_range(info.field_name, v, Decimal("0.1"), Decimal("200"))

    @field_validator("reserve_ratio_pct", mode="after")
    @classmethod
    def validate_reserve_ratio_pct(cls, v):
        return check_pct_range("reserve_ratio_pct", v, Decimal("0"), Decimal("100"))

    @field_validator("total_bin_span", "swapless_bin_span", mode="after")
    @classmethod
    def validate_span(cls, v, info):
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("liquidity_strategy", "rebalance_strategy", mode="after")
    @classmethod
    def validate_strategy(cls, v):
        if v is None:
            return v
        if v not in ("spot", "curve", "bid_ask"):
            raise ValueError("strategy must be one of spot, curve, bid_ask")
        return v

    @field_validator("capital", "min_rebalance_swap_usd", "min_fee_swap_usd", mode="after")
    @classmethod
    def validate_non_negative(cls, v, info):
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @property
    def reserve_ratio(self) -> Decimal:
        return pct_to_ratio(self.reserve_ratio_pct)


class DLMMLPController:
    """Monitors one DLMM position: values it, rebalances it, and closes it on exit triggers."""

    _logger: Optional[logging.Logger] = None

    @classmethod
    def logger(cls) -> logging.Logger:
        if cls._logger is None:
            cls._logger = logging.getLogger(__name__)
        return cls._logger

    def __init__(
        self,
        config: DLMMLPConfig,
        *,
        pool: PoolCollaborator,
        swaps: SwapCollaborator,
        prices: PriceProvider,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Any] = asyncio.sleep,
        emit: Optional[Callable[[str], None]] = None,
    ):
        self.config = config
        self._pool = pool
        self._swaps = swaps
        self._prices = prices
        self._clock = clock
        self._sleep = sleep
        self._emit = emit or print

        self._ctx = MonitorContext()
        self._ledger = ReserveLedger()
        self._exit_policy = ExitPolicy(config=self.config)
        self._rebalance_engine = RebalanceEngine(
            config=self.config,
            gate=InitialPhaseGate(
                threshold_bins=self.config.initial_gate_bins,
                max_hold_sec=self.config.initial_gate_max_sec,
            ),
        )
        self._fsm = MonitorFSM(
            config=self.config,
            exit_policy=self._exit_policy,
            rebalance_engine=self._rebalance_engine,
        )
        self._preflight = PreflightCheck(config=self.config)
        self._swapless = SwaplessStrategy(bin_span=self.config.swapless_bin_span)

        self._pool_meta: Optional[PoolMetadata] = None
        self._session: Optional[SessionState] = None
        self._events: List[RebalanceEvent] = []
        self._last_tick: Optional[TickSnapshot] = None
        self._rows_rendered = 0
        self._stop = asyncio.Event()
        self._fatal = False

    @property
    def context(self) -> MonitorContext:
        return self._ctx

    @property
    def session(self) -> Optional[SessionState]:
        return self._session

    @property
    def ledger(self) -> ReserveLedger:
        return self._ledger

    @property
    def events(self) -> List[RebalanceEvent]:
        return list(self._events)

    @property
    def fatal(self) -> bool:
        return self._fatal

    def request_stop(self) -> None:
        self._stop.set()

    # ==================== Lifecycle ====================

    async def run(self, position_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            await self.start(position_id)
            while self._ctx.state != MonitorState.TERMINATED:
                if self._stop.is_set():
                    self._fsm.terminate(self._ctx, self._clock(), reason="shutdown requested")
                    break
                await self.tick()
                if self._ctx.state == MonitorState.TERMINATED:
                    break
                await self._idle(self.config.pnl_check_interval_sec)
        except Exception as e:
            self._fatal = True
            self.logger().error(f"Monitor stopped on fatal error: {e}", exc_info=True)
            self._fsm.terminate(self._ctx, self._clock(), reason=f"fatal: {e}")
        summary = self.summary()
        self._emit(f"Monitor terminated: {self._ctx.termination_reason}")
        for line in format_summary_lines(summary):
            self._emit(line)
        return summary

    async def _idle(self, interval: float) -> None:
        if self._stop.is_set():
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=max(0.0, float(interval)))
        except asyncio.TimeoutError:
            pass

    async def start(self, position_id: Optional[str] = None) -> None:
        now = self._clock()
        self._ctx.state = MonitorState.OPENING
        self._ctx.state_since_ts = now
        pool = await self._pool.get_pool(self.config.pool_address)
        self._pool_meta = pool
        active_bin = await self._pool.get_active_bin(self.config.pool_address)

        if position_id:
            snapshot = await self._pool.get_position(position_id)
            if snapshot is None:
                raise PositionNotFoundError(f"position {position_id} not found")
            bin_range = BinRange(lower=snapshot.lower_bin, upper=snapshot.upper_bin)
            price_x, price_y = await self._prices.pool_prices(pool)
            valuation = PositionValuator.value(snapshot, pool, price_x, price_y)
            deposit_usd = valuation.total_usd
            self.logger().info(f"Attached to {position_id} bins [{bin_range.lower}, {bin_range.upper}]")
        else:
            position_id, bin_range, deposit_usd = await self._open_initial(pool, active_bin)
            price_x, price_y = await self._prices.pool_prices(pool)

        price_reserve, _ = pool.split_reserve_other(price_x, price_y)
        self._session = SessionState.start(
            deposit_native=deposit_usd / price_reserve,
            deposit_usd=deposit_usd,
            auto_compound=self.config.auto_compound,
            compounding_mode=self.config.compounding_mode,
            swapless_enabled=self.config.swapless_enabled,
            now=now,
        )
        self._fsm.on_opened(
            self._ctx,
            self._clock(),
            position_id=position_id,
            bin_range=bin_range,
            active_bin=active_bin,
        )
        self.logger().info(
            f"Monitoring {position_id}: baseline ${deposit_usd:.2f}, gate={self._ctx.gate.active} "
            f"bias={self._ctx.gate.bias.value if self._ctx.gate.bias else 'none'}"
        )

    async def _open_initial(self, pool: PoolMetadata, active_bin: int) -> Tuple[str, BinRange, Decimal]:
        capital = self.config.capital
        if capital <= 0:
            raise DLMMError("capital must be > 0 to open a new position")
        ratio = self.config.reserve_ratio
        bin_range = BinRangeCalculator.allocation_range(active_bin, self.config.total_bin_span, pool.below_ratio(ratio))
        if bin_range is None:
            raise DLMMError("could not compute an initial bin range")

        reserve_amount = capital * ratio
        other_amount = Decimal("0")
        swap_reserve = capital - reserve_amount
        if swap_reserve > 0:
            price_x, price_y = await self._prices.pool_prices(pool)
            price_reserve, price_other = pool.split_reserve_other(price_x, price_y)
            expected_other = swap_reserve * price_reserve / price_other
            signature = await self._swap(pool.reserve_token, pool.other_token, swap_reserve, label="entry-swap")
            if signature is None:
                raise DLMMError("entry swap into the non-reserve asset failed")
            balance = await self._swaps.get_balance(pool.other_token)
            other_amount = min(balance, expected_other)

        amount_x, amount_y = pool.join_reserve_other(reserve_amount, other_amount)
        request = OpenRequest(
            pool_address=self.config.pool_address,
            bin_range=bin_range,
            amount_x=amount_x,
            amount_y=amount_y,
            strategy=self.config.liquidity_strategy,
            capital=self.config.max_deploy_capital,
        )
        result = await self._open(request)
        return result.position_id, bin_range, result.deposit_usd

    async def _open(self, request: OpenRequest):
        async def attempt():
            # Tallies describe the successful open only.
            self._ledger.reset()
            return await self._pool.open_position(request, self._ledger)

        return await with_retry(
            attempt,
            "open-position",
            max_attempts=self.config.retry_max_attempts,
            delay_sec=self.config.retry_delay_sec,
            sleep=self._sleep,
        )

    async def _close(self, position_id: str):
        return await with_retry(
            lambda: self._pool.close_position(position_id),
            "close-position",
            max_attempts=self.config.retry_max_attempts,
            delay_sec=self.config.retry_delay_sec,
            sleep=self._sleep,
        )

    async def _swap(self, asset_in: str, asset_out: str, amount: Decimal, *, label: str) -> Optional[str]:
        return await with_progressive_slippage(
            lambda slippage: self._swaps.swap(asset_in, asset_out, amount, slippage),
            label,
            slippage_steps=self.config.swap_slippage_steps_pct,
            delay_sec=self.config.retry_delay_sec,
            sleep=self._sleep,
        )

    # ==================== Tick ====================

    async def tick(self) -> Decision:
        now = self._clock()
        if self._ctx.state != MonitorState.MONITORING:
            return Decision(reason=f"not_monitoring_{self._ctx.state.value.lower()}")
        pool = self._pool_meta
        position = await self._fetch_position(now)
        if position is None:
            return Decision(action=MonitorAction.TERMINATE, reason=self._ctx.termination_reason or "")

        active_bin = await self._pool.get_active_bin(self.config.pool_address)
        price_x, price_y = await self._prices.pool_prices(pool)
        valuation = PositionValuator.value(position, pool, price_x, price_y)
        pnl = self._session.update_pnl(valuation)
        tick = TickSnapshot(now=now, active_bin=active_bin, position=position, valuation=valuation, pnl=pnl)
        self._last_tick = tick

        decision = self._fsm.step(tick, self._ctx)
        if decision.action == MonitorAction.EXIT:
            self.logger().info(
                f"Exit triggered: {decision.reason} at {pnl.session_pnl_pct:+.2f}% "
                f"(threshold {decision.exit_signal.threshold_pct:+.2f}%)"
            )
            await self._exit(position, valuation, decision)
        elif decision.action == MonitorAction.REBALANCE:
            self.logger().info(f"Rebalance triggered: {decision.reason} active_bin={active_bin}")
            await self._rebalance(position, valuation, active_bin, decision.direction)
        else:
            self.logger().debug(f"Tick {self._ctx.state.value}/{decision.reason} active_bin={active_bin}")
        self._render(tick)
        return decision

    async def _fetch_position(self, now: float) -> Optional[PositionSnapshot]:
        position_id = self._ctx.position_id
        while True:
            try:
                snapshot = await self._pool.get_position(position_id)
            except httpx.RequestError as e:
                self.logger().warning(f"Position read failed for {position_id}: {e}")
                snapshot = None
            if snapshot is not None:
                self._ctx.missing_position_attempts = 0
                return snapshot
            decision = self._fsm.on_position_missing(self._ctx, now)
            if self._ctx.state == MonitorState.TERMINATED:
                self.logger().error(decision.reason)
                return None
            self.logger().warning(
                f"Position {position_id} not visible yet ({self._ctx.missing_position_attempts}/"
                f"{self.config.max_missing_position_attempts}), retrying in {self.config.missing_position_retry_sec}s"
            )
            await self._sleep(self.config.missing_position_retry_sec)
            now = self._clock()

    # ==================== Rebalance ====================

    async def _native_balance_raw(self) -> int:
        try:
            balance = await self._swaps.get_balance(SOL_MINT)
        except httpx.HTTPError as e:
            self.logger().warning(f"Wallet balance unavailable for preflight: {e}")
            return 0
        return to_raw(balance, NATIVE_DECIMALS)

    async def _rebalance(
        self,
        position: PositionSnapshot,
        valuation: PositionValuation,
        active_bin: int,
        direction: RebalanceDirection,
    ) -> Optional[RebalanceEvent]:
        pool = self._pool_meta
        now = self._clock()
        trigger = self._ctx.last_decision_reason
        if self.config.preflight_enabled:
            estimate = self._preflight.estimate(position, pool, wallet_native_raw=await self._native_balance_raw())
            if not estimate.ok:
                self.logger().warning(
                    f"Rebalance skipped: freed {estimate.freed_raw} < overhead {estimate.overhead_raw} lamports"
                )
                self._fsm.on_rebalance_skipped(self._ctx, now, "preflight_insufficient")
                return None

        old_id = position.position_id
        try:
            close = await self._close(old_id)
        except (DLMMError, httpx.HTTPError) as e:
            self.logger().error(f"Close of {old_id} failed: {e}; keeping position")
            close = None
        if close is None or not close.success:
            self.logger().error(f"Close of {old_id} did not complete; keeping position")
            self._fsm.on_rebalance_skipped(self._ctx, now, "close_failed", attempted=True)
            event = RebalanceEvent(
                direction=direction,
                old_position_id=old_id,
                new_position_id=None,
                fees_realized_usd=Decimal("0"),
                new_baseline_usd=None,
                success=False,
                reason="close_failed",
            )
            self._events.append(event)
            return event
        await self._wait_for_closure(old_id)

        fee_x = from_raw(close.fee_x or position.fee_x, pool.decimals_x)
        fee_y = from_raw(close.fee_y or position.fee_y, pool.decimals_y)
        amount_x = from_raw(close.amount_x or position.amount_x, pool.decimals_x)
        amount_y = from_raw(close.amount_y or position.amount_y, pool.decimals_y)
        fee_x_usd = fee_x * valuation.price_x
        fee_y_usd = fee_y * valuation.price_y
        reserve_fee_usd, other_fee_usd = pool.split_reserve_other(fee_x_usd, fee_y_usd)
        split = self._session.fee_split(reserve_fee_usd, other_fee_usd)
        compound_x, compound_y = pool.join_reserve_other(split.compound_reserve, split.compound_other)
        deploy_fee_x = fee_x if compound_x else Decimal("0")
        deploy_fee_y = fee_y if compound_y else Decimal("0")

        if self.config.swapless_enabled:
            plan = self._swapless.plan(
                direction=direction,
                active_bin=active_bin,
                pool=pool,
                amount_x=amount_x,
                amount_y=amount_y,
                compound_fee_x=deploy_fee_x,
                compound_fee_y=deploy_fee_y,
            )
            bin_range, open_x, open_y = plan.bin_range, plan.amount_x, plan.amount_y
            self.logger().info(f"Swapless {direction.value}: working asset {plan.working_mint}")
        else:
            bin_range = BinRangeCalculator.allocation_range(
                active_bin,
                self.config.total_bin_span,
                pool.below_ratio(self.config.reserve_ratio),
            )
            open_x, open_y = await self._swap_to_ratio(
                pool,
                amount_x + deploy_fee_x,
                amount_y + deploy_fee_y,
                valuation.price_x,
                valuation.price_y,
            )

        request = OpenRequest(
            pool_address=self.config.pool_address,
            bin_range=bin_range,
            amount_x=open_x,
            amount_y=open_y,
            strategy=self.config.rebalance_strategy or self.config.liquidity_strategy,
            capital=self.config.max_deploy_capital,
            swapless=self.config.swapless_enabled,
            bypass_existing_check=True,
        )
        result = await self._open(request)

        self._session.apply_rebalance(
            redeployed_usd=result.deposit_usd,
            reserve_fee_usd=reserve_fee_usd,
            other_fee_usd=other_fee_usd,
        )
        if (
            self.config.fee_handling_mode == FeeHandlingMode.CLAIM_TO_SOL
            and not split.compound_other
            and other_fee_usd >= self.config.min_fee_swap_usd
        ):
            other_fee = fee_y if pool.reserve_is_x else fee_x
            await self._swap(pool.other_token, pool.reserve_token, other_fee, label="fee-swap")

        self._fsm.on_rebalanced(
            self._ctx,
            self._clock(),
            position_id=result.position_id,
            bin_range=bin_range,
            active_bin=active_bin,
        )
        event = RebalanceEvent(
            direction=direction,
            old_position_id=old_id,
            new_position_id=result.position_id,
            fees_realized_usd=split.total_usd,
            new_baseline_usd=self._session.baseline_usd,
            success=True,
            reason=trigger,
        )
        self._events.append(event)
        self.logger().info(
            f"Rebalance #{self._session.rebalance_count} {direction.value}: {old_id} -> {result.position_id} "
            f"bins [{bin_range.lower}, {bin_range.upper}] baseline ${self._session.baseline_usd:.2f} "
            f"(compounded ${split.compounded_usd:.2f}, claimed ${split.claimed_usd:.2f}, "
            f"reserved {self._ledger.total_reserved} native)"
        )
        return event

    async def _swap_to_ratio(
        self,
        pool: PoolMetadata,
        amount_x: Decimal,
        amount_y: Decimal,
        price_x: Decimal,
        price_y: Decimal,
    ) -> Tuple[Decimal, Decimal]:
        reserve_amt, other_amt = pool.split_reserve_other(amount_x, amount_y)
        price_reserve, price_other = pool.split_reserve_other(price_x, price_y)
        total_usd = reserve_amt * price_reserve + other_amt * price_other
        excess_usd = reserve_amt * price_reserve - total_usd * self.config.reserve_ratio
        if abs(excess_usd) < self.config.min_rebalance_swap_usd:
            return amount_x, amount_y

        if excess_usd > 0:
            sell = excess_usd / price_reserve
            signature = await self._swap(pool.reserve_token, pool.other_token, sell, label="rebalance-swap")
            if signature is not None:
                reserve_amt -= sell
                expected = other_amt + excess_usd / price_other
                other_amt = min(expected, await self._swaps.get_balance(pool.other_token))
        else:
            sell = -excess_usd / price_other
            signature = await self._swap(pool.other_token, pool.reserve_token, sell, label="rebalance-swap")
            if signature is not None:
                other_amt -= sell
                reserve_amt += -excess_usd / price_reserve
        if signature is None:
            self.logger().warning("Rebalance swap failed; reopening with the current asset mix")
        return pool.join_reserve_other(reserve_amt, other_amt)

    async def _wait_for_closure(self, position_id: str) -> bool:
        for _ in range(max(1, self.config.close_confirm_attempts)):
            try:
                if await self._pool.get_position(position_id) is None:
                    return True
            except httpx.RequestError as e:
                self.logger().debug(f"Closure poll failed for {position_id}: {e}")
            await self._sleep(self.config.close_confirm_interval_sec)
        self.logger().warning(f"Position {position_id} still visible after close; continuing")
        return False

    # ==================== Exit ====================

    async def _exit(self, position: PositionSnapshot, valuation: PositionValuation, decision: Decision) -> None:
        pool = self._pool_meta
        position_id = position.position_id
        try:
            close = await self._close(position_id)
        except (DLMMError, httpx.HTTPError) as e:
            self.logger().error(f"Exit close of {position_id} failed: {e}; monitoring continues")
            self._fsm.on_close_failed(self._ctx, self._clock(), "exit_close_failed")
            return
        if not close.success:
            self.logger().error(f"Exit close of {position_id} reported failure; monitoring continues")
            self._fsm.on_close_failed(self._ctx, self._clock(), "exit_close_failed")
            return

        fee_x = from_raw(close.fee_x or position.fee_x, pool.decimals_x)
        fee_y = from_raw(close.fee_y or position.fee_y, pool.decimals_y)
        self._session.record_claim(fee_x * valuation.price_x + fee_y * valuation.price_y)

        await self._sleep(self.config.exit_settle_sec)
        try:
            await self._swap_exit_remainder(pool, position, close)
        except (DLMMError, httpx.HTTPError) as e:
            self.logger().error(f"Exit swap after closing {position_id} failed: {e}; tokens left in wallet")
        self._fsm.terminate(self._ctx, self._clock(), reason=decision.reason)

    async def _swap_exit_remainder(self, pool: PoolMetadata, position: PositionSnapshot, close) -> None:
        _, removed_other_raw = pool.split_reserve_other(
            (close.amount_x or position.amount_x) + (close.fee_x or position.fee_x),
            (close.amount_y or position.amount_y) + (close.fee_y or position.fee_y),
        )
        balance = await self._swaps.get_balance(pool.other_token)
        to_sell_raw = min(to_raw(balance, pool.other_decimals), int(removed_other_raw))
        if to_sell_raw <= self.config.exit_dust_raw:
            self.logger().info("Exit swap skipped: non-reserve balance is dust")
            return
        amount = from_raw(to_sell_raw, pool.other_decimals)
        signature = await self._swap(pool.other_token, pool.reserve_token, amount, label="exit-swap")
        if signature is None:
            self.logger().error(f"Exit swap of {amount} {pool.other_token} failed; tokens left in wallet")

    # ==================== Output ====================

    def _render(self, tick: TickSnapshot) -> None:
        if self._rows_rendered % HEADER_EVERY_ROWS == 0:
            for line in format_status_header():
                self._emit(line)
        trailing = self._ctx.trailing
        row = StatusRow(
            ts=tick.now,
            value_usd=tick.pnl.total_value_usd,
            pnl_usd=tick.pnl.session_pnl_usd,
            pnl_pct=tick.pnl.session_pnl_pct,
            fees_usd=tick.valuation.unclaimed_fees_usd,
            rebalance_count=self._session.rebalance_count,
            take_profit_pct=self.config.take_profit_pct if self.config.take_profit_enabled else None,
            stop_loss_pct=self.config.stop_loss_pct if self.config.stop_loss_enabled else None,
            trailing_stop_pct=trailing.stop_level if trailing.active else None,
            trailing_enabled=self.config.trailing_stop_enabled,
        )
        self._emit(format_status_row(row))
        self._rows_rendered += 1

    def summary(self) -> Dict[str, Any]:
        session = self._session
        pnl = session.last_pnl if session is not None else None
        now = self._clock()
        return {
            "state": self._ctx.state.value,
            "exit_reason": self._ctx.termination_reason,
            "position_id": self._ctx.position_id,
            "runtime_sec": (now - session.started_ts) if session is not None else 0,
            "rebalance_count": session.rebalance_count if session is not None else 0,
            "initial_deposit_usd": session.initial_deposit_usd if session is not None else None,
            "baseline_usd": session.baseline_usd if session is not None else None,
            "last_value_usd": pnl.total_value_usd if pnl is not None else None,
            "session_pnl_usd": pnl.session_pnl_usd if pnl is not None else None,
            "session_pnl_pct": pnl.session_pnl_pct if pnl is not None else None,
            "lifetime_pnl_usd": pnl.lifetime_pnl_usd if pnl is not None else None,
            "lifetime_pnl_pct": pnl.lifetime_pnl_pct if pnl is not None else None,
            "claimed_fees_usd": session.total_claimed_fees_usd if session is not None else None,
            "compounded_fees_usd": session.total_compounded_fees_usd if session is not None else None,
            "reserves": self._ledger.breakdown(),
            "fatal": self._fatal,
        }

    def to_format_status(self) -> List[str]:
        rows = [
            ("status", "state", self._ctx.state.value),
            ("status", "last_decision", self._ctx.last_decision_reason or "n/a"),
            ("status", "position_id", self._ctx.position_id),
        ]
        if self._ctx.position_range is not None:
            rng = self._ctx.position_range
            rows.append(("market", "range", f"[{rng.lower}, {rng.upper}]"))
        if self._ctx.last_active_bin is not None:
            rows.append(("market", "active_bin", str(self._ctx.last_active_bin)))
        if self._ctx.gate.active:
            rows.append(("market", "initial_gate", f"armed at {self._ctx.gate.creation_bin}"))
        if self._last_tick is not None:
            pnl = self._last_tick.pnl
            rows.append(("pnl", "session", f"{pnl.session_pnl_usd:+.2f} USD ({pnl.session_pnl_pct:+.2f}%)"))
            rows.append(("pnl", "lifetime", f"{pnl.lifetime_pnl_usd:+.2f} USD ({pnl.lifetime_pnl_pct:+.2f}%)"))
        return format_kv_table(rows)
