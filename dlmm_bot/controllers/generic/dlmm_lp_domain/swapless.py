from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .components import BinRange, PoolMetadata, RebalanceDirection


@dataclass(frozen=True)
class SwaplessPlan:
    direction: RebalanceDirection
    bin_range: BinRange
    working_mint: str
    amount_x: Decimal
    amount_y: Decimal


class SwaplessStrategy:
    """Reopen without swapping, anchored so the active bin is one edge of the range."""

    def __init__(self, *, bin_span: int) -> None:
        if int(bin_span) < 1:
            raise ValueError(f"swapless bin span must be >= 1, got {bin_span!r}")
        self._span = int(bin_span)

    @property
    def span(self) -> int:
        return self._span

    def bin_range(self, direction: RebalanceDirection, active_bin: int) -> BinRange:
        if direction == RebalanceDirection.UP:
            return BinRange(lower=active_bin, upper=active_bin + self._span - 1)
        if direction == RebalanceDirection.DOWN:
            return BinRange(lower=active_bin - self._span + 1, upper=active_bin)
        raise ValueError(f"unknown rebalance direction: {direction!r}")

    @staticmethod
    def working_mint(direction: RebalanceDirection, pool: PoolMetadata) -> str:
        if direction == RebalanceDirection.UP:
            return pool.other_token
        return pool.reserve_token

    def plan(
        self,
        *,
        direction: RebalanceDirection,
        active_bin: int,
        pool: PoolMetadata,
        amount_x: Decimal,
        amount_y: Decimal,
        compound_fee_x: Optional[Decimal] = None,
        compound_fee_y: Optional[Decimal] = None,
    ) -> SwaplessPlan:
        # Amounts are UI units recovered from the closed position.
        amount_x = max(Decimal("0"), amount_x) + max(Decimal("0"), compound_fee_x or Decimal("0"))
        amount_y = max(Decimal("0"), amount_y) + max(Decimal("0"), compound_fee_y or Decimal("0"))
        return SwaplessPlan(
            direction=direction,
            bin_range=self.bin_range(direction, active_bin),
            working_mint=self.working_mint(direction, pool),
            amount_x=amount_x,
            amount_y=amount_y,
        )
