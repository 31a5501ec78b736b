from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .components import CompoundingMode, PnLView, PositionValuation

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


@dataclass(frozen=True)
class FeeSplit:
    compounded_usd: Decimal
    claimed_usd: Decimal
    compound_reserve: bool
    compound_other: bool

    @property
    def total_usd(self) -> Decimal:
        return self.compounded_usd + self.claimed_usd


def split_fees(
    *,
    auto_compound: bool,
    mode: CompoundingMode,
    reserve_fee_usd: Decimal,
    other_fee_usd: Decimal,
) -> FeeSplit:
    if not auto_compound or mode == CompoundingMode.NONE:
        compound_reserve, compound_other = False, False
    elif mode == CompoundingMode.BOTH:
        compound_reserve, compound_other = True, True
    elif mode == CompoundingMode.SOL_ONLY:
        compound_reserve, compound_other = True, False
    elif mode == CompoundingMode.TOKEN_ONLY:
        compound_reserve, compound_other = False, True
    else:
        raise ValueError(f"unsupported compounding mode: {mode!r}")

    compounded = _ZERO
    claimed = _ZERO
    if compound_reserve:
        compounded += reserve_fee_usd
    else:
        claimed += reserve_fee_usd
    if compound_other:
        compounded += other_fee_usd
    else:
        claimed += other_fee_usd
    return FeeSplit(
        compounded_usd=compounded,
        claimed_usd=claimed,
        compound_reserve=compound_reserve,
        compound_other=compound_other,
    )


def _pct(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator <= 0:
        return _ZERO
    return numerator / denominator * _HUNDRED


@dataclass
class SessionState:
    initial_deposit_native: Decimal
    initial_deposit_usd: Decimal
    baseline_usd: Decimal
    cumulative_deposits_usd: Decimal
    auto_compound: bool
    compounding_mode: CompoundingMode
    swapless_enabled: bool
    started_ts: float = 0.0
    total_claimed_fees_usd: Decimal = _ZERO
    total_compounded_fees_usd: Decimal = _ZERO
    rebalance_count: int = 0
    last_pnl: Optional[PnLView] = None

    @classmethod
    def start(
        cls,
        *,
        deposit_native: Decimal,
        deposit_usd: Decimal,
        auto_compound: bool,
        compounding_mode: CompoundingMode,
        swapless_enabled: bool,
        now: float = 0.0,
    ) -> "SessionState":
        if deposit_usd is None or deposit_usd <= 0:
            raise ValueError(f"initial deposit must be positive, got {deposit_usd!r}")
        return cls(
            initial_deposit_native=deposit_native,
            initial_deposit_usd=deposit_usd,
            baseline_usd=deposit_usd,
            cumulative_deposits_usd=deposit_usd,
            auto_compound=auto_compound,
            compounding_mode=CompoundingMode(compounding_mode),
            swapless_enabled=swapless_enabled,
            started_ts=now,
        )

    def update_pnl(self, valuation: PositionValuation) -> PnLView:
        total = valuation.total_usd
        session_pnl = total - self.baseline_usd
        lifetime_pnl = total + self.total_claimed_fees_usd - self.initial_deposit_usd
        view = PnLView(
            total_value_usd=total,
            session_pnl_usd=session_pnl,
            session_pnl_pct=_pct(session_pnl, self.baseline_usd),
            lifetime_pnl_usd=lifetime_pnl,
            lifetime_pnl_pct=_pct(lifetime_pnl, self.initial_deposit_usd),
        )
        self.last_pnl = view
        return view

    def fee_split(self, reserve_fee_usd: Decimal, other_fee_usd: Decimal) -> FeeSplit:
        return split_fees(
            auto_compound=self.auto_compound,
            mode=self.compounding_mode,
            reserve_fee_usd=reserve_fee_usd,
            other_fee_usd=other_fee_usd,
        )

    def apply_rebalance(
        self,
        *,
        redeployed_usd: Decimal,
        reserve_fee_usd: Decimal,
        other_fee_usd: Decimal,
    ) -> FeeSplit:
        """Start a fresh session baseline at the value deposited into the new position.

        ``redeployed_usd`` already contains any compounded fees and excludes
        whatever the open withheld (buffer, cap, haircut).
        """
        if redeployed_usd is None or redeployed_usd <= 0:
            raise ValueError(f"redeployed value must be positive, got {redeployed_usd!r}")
        split = self.fee_split(reserve_fee_usd, other_fee_usd)
        self.total_compounded_fees_usd += split.compounded_usd
        self.total_claimed_fees_usd += split.claimed_usd
        self.baseline_usd = redeployed_usd
        self.rebalance_count += 1
        return split

    def record_claim(self, claimed_usd: Decimal) -> None:
        """Book fees realized to the wallet outside a rebalance (final close)."""
        if claimed_usd > 0:
            self.total_claimed_fees_usd += claimed_usd

    def record_deposit(self, deposit_usd: Decimal) -> None:
        if deposit_usd > 0:
            self.cumulative_deposits_usd += deposit_usd
