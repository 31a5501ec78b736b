from decimal import ROUND_FLOOR, Decimal
from math import floor, log
from typing import Optional

from .components import BinRange

_ONE = Decimal("1")
_ZERO = Decimal("0")


def _floor_int(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


class BinRangeCalculator:
    @staticmethod
    def allocation_range(active_bin: int, total_span: int, ratio_below: Decimal) -> Optional[BinRange]:
        """Bin range for a normal (ratio-keeping) placement.

        ``ratio_below`` is the share of capital held by the asset that sits in
        bins below the active bin; the remainder sits above.
        """
        span = int(total_span)
        if span < 1:
            return None
        ratio = Decimal(str(ratio_below))
        if ratio < _ZERO or ratio > _ONE:
            return None
        if ratio == _ONE:
            return BinRange(lower=active_bin - span, upper=active_bin)
        if ratio == _ZERO:
            return BinRange(lower=active_bin, upper=active_bin + span)
        bins_below = _floor_int(Decimal(span) * ratio)
        bins_above = _floor_int(Decimal(span) * (_ONE - ratio))
        return BinRange(lower=active_bin - bins_below, upper=active_bin + bins_above)

    @staticmethod
    def bin_to_price(bin_id: int, *, bin_step: int, decimals_x: int, decimals_y: int) -> Decimal:
        """Price of X in units of Y for a bin id."""
        base = _ONE + Decimal(bin_step) / Decimal("10000")
        raw = base ** int(bin_id)
        return raw * (Decimal(10) ** (int(decimals_x) - int(decimals_y)))

    @staticmethod
    def price_to_bin(price: Decimal, *, bin_step: int, decimals_x: int, decimals_y: int) -> Optional[int]:
        if price is None or price <= 0 or bin_step <= 0:
            return None
        raw = Decimal(price) / (Decimal(10) ** (int(decimals_x) - int(decimals_y)))
        base = 1.0 + bin_step / 10000.0
        return int(floor(log(float(raw)) / log(base) + 1e-9))
