from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class MonitorState(str, Enum):
    OPENING = "OPENING"
    MONITORING = "MONITORING"
    REBALANCING = "REBALANCING"
    CLOSING = "CLOSING"
    TERMINATED = "TERMINATED"


class RebalanceDirection(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


class CompoundingMode(str, Enum):
    BOTH = "both"
    SOL_ONLY = "sol_only"
    TOKEN_ONLY = "token_only"
    NONE = "none"


class FeeHandlingMode(str, Enum):
    CLAIM_TO_WALLET = "claim_to_wallet"
    CLAIM_TO_SOL = "claim_to_sol"


class ExitReason(str, Enum):
    TAKE_PROFIT = "take-profit"
    TRAILING_STOP = "trailing-stop"
    STOP_LOSS = "stop-loss"


class MonitorAction(str, Enum):
    NONE = "none"
    EXIT = "exit"
    REBALANCE = "rebalance"
    TERMINATE = "terminate"


@dataclass(frozen=True)
class PoolMetadata:
    pool_address: str
    token_x: str
    token_y: str
    decimals_x: int
    decimals_y: int
    bin_step: int
    reserve_mint: str

    @property
    def reserve_is_x(self) -> bool:
        return self.token_x == self.reserve_mint

    @property
    def reserve_token(self) -> str:
        return self.reserve_mint

    @property
    def other_token(self) -> str:
        return self.token_y if self.reserve_is_x else self.token_x

    @property
    def reserve_decimals(self) -> int:
        return self.decimals_x if self.reserve_is_x else self.decimals_y

    @property
    def other_decimals(self) -> int:
        return self.decimals_y if self.reserve_is_x else self.decimals_x

    def split_reserve_other(self, amount_x, amount_y) -> Tuple:
        return (amount_x, amount_y) if self.reserve_is_x else (amount_y, amount_x)

    def join_reserve_other(self, reserve_amount, other_amount) -> Tuple:
        """Inverse of split_reserve_other: returns (x, y)."""
        return (reserve_amount, other_amount) if self.reserve_is_x else (other_amount, reserve_amount)

    def below_ratio(self, reserve_ratio: Decimal) -> Decimal:
        # Bins below the active bin hold the Y asset.
        return Decimal("1") - reserve_ratio if self.reserve_is_x else reserve_ratio


@dataclass(frozen=True)
class BinAmount:
    bin_id: int
    amount_x: int
    amount_y: int


@dataclass(frozen=True)
class PositionSnapshot:
    position_id: str
    pool_address: str
    lower_bin: int
    upper_bin: int
    amount_x: int
    amount_y: int
    fee_x: int
    fee_y: int
    bins: Tuple[BinAmount, ...] = ()


@dataclass(frozen=True)
class BinRange:
    lower: int
    upper: int

    def __post_init__(self) -> None:
        if self.lower > self.upper:
            raise ValueError(f"lower bin {self.lower} above upper bin {self.upper}")

    @property
    def width(self) -> int:
        return self.upper - self.lower + 1

    def contains(self, bin_id: int) -> bool:
        return self.lower <= bin_id <= self.upper


@dataclass(frozen=True)
class PositionValuation:
    price_x: Decimal
    price_y: Decimal
    amount_x: Decimal
    amount_y: Decimal
    fee_x: Decimal
    fee_y: Decimal
    liquidity_usd: Decimal
    fee_x_usd: Decimal
    fee_y_usd: Decimal

    @property
    def unclaimed_fees_usd(self) -> Decimal:
        return self.fee_x_usd + self.fee_y_usd

    @property
    def total_usd(self) -> Decimal:
        return self.liquidity_usd + self.unclaimed_fees_usd


@dataclass(frozen=True)
class PnLView:
    total_value_usd: Decimal
    session_pnl_usd: Decimal
    session_pnl_pct: Decimal
    lifetime_pnl_usd: Decimal
    lifetime_pnl_pct: Decimal


@dataclass(frozen=True)
class RebalanceSignal:
    needs_rebalance: bool
    direction: Optional[RebalanceDirection] = None


@dataclass(frozen=True)
class RebalanceEvent:
    direction: RebalanceDirection
    old_position_id: str
    new_position_id: Optional[str]
    fees_realized_usd: Decimal
    new_baseline_usd: Optional[Decimal]
    success: bool
    reason: str = ""


@dataclass(frozen=True)
class ExitSignal:
    reason: ExitReason
    pnl_pct: Decimal
    threshold_pct: Decimal


@dataclass(frozen=True)
class OpenRequest:
    pool_address: str
    bin_range: BinRange
    amount_x: Optional[Decimal]
    amount_y: Optional[Decimal]
    strategy: str
    capital: Optional[Decimal] = None
    swapless: bool = False
    bypass_existing_check: bool = False


@dataclass(frozen=True)
class OpenResult:
    position_id: str
    deposit_usd: Decimal
    active_bin: Optional[int] = None


@dataclass(frozen=True)
class CloseResult:
    success: bool
    fee_x: int = 0
    fee_y: int = 0
    amount_x: int = 0
    amount_y: int = 0
    signature: Optional[str] = None


@dataclass
class TrailingStopState:
    active: bool = False
    peak_pct: Optional[Decimal] = None
    stop_level: Optional[Decimal] = None

    def reset(self) -> None:
        self.active = False
        self.peak_pct = None
        self.stop_level = None


@dataclass
class InitialGateState:
    creation_bin: Optional[int] = None
    bias: Optional[RebalanceDirection] = None
    active: bool = True
    armed_ts: float = 0.0


@dataclass(frozen=True)
class TickSnapshot:
    now: float
    active_bin: int
    position: PositionSnapshot
    valuation: PositionValuation
    pnl: PnLView


@dataclass
class MonitorContext:
    state: MonitorState = MonitorState.OPENING
    state_since_ts: float = 0.0
    position_id: Optional[str] = None
    position_range: Optional[BinRange] = None
    opened_ts: float = 0.0
    gate: InitialGateState = field(default_factory=InitialGateState)
    trailing: TrailingStopState = field(default_factory=TrailingStopState)
    last_rebalance_check_ts: float = 0.0
    last_rebalance_ts: float = 0.0
    missing_position_attempts: int = 0
    last_active_bin: Optional[int] = None
    last_decision_reason: str = ""
    termination_reason: Optional[str] = None
    exit_signal: Optional[ExitSignal] = None


@dataclass(frozen=True)
class Decision:
    action: MonitorAction = MonitorAction.NONE
    reason: str = ""
    direction: Optional[RebalanceDirection] = None
    exit_signal: Optional[ExitSignal] = None
