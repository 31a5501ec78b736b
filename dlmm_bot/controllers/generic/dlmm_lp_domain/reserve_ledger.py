import logging
from decimal import Decimal
from typing import Dict, Optional

RESERVE_KINDS = ("buffer", "cap", "haircut")
NATIVE_DECIMALS = 9


class ReserveLedger:
    """Native amounts withheld from the tradable position during an open.

    Display-only bookkeeping. One instance per monitored position; the
    monitor resets it every time a new position is opened.
    """

    def __init__(self, *, native_decimals: int = NATIVE_DECIMALS, logger: Optional[logging.Logger] = None) -> None:
        self._native_decimals = int(native_decimals)
        self._logger = logger or logging.getLogger(__name__)
        self._reserves: Dict[str, int] = {kind: 0 for kind in RESERVE_KINDS}
        self._trims: Dict[str, int] = {}

    def add_reserve(self, kind: str, amount_raw: int) -> None:
        if kind not in self._reserves:
            raise ValueError(f"unknown reserve kind {kind!r}; expected one of {RESERVE_KINDS}")
        amount = int(amount_raw)
        if amount <= 0:
            return
        self._reserves[kind] += amount
        self._logger.debug("reserve %s += %d (total=%d)", kind, amount, self.total_reserved_raw)

    def add_trim(self, mint: str, amount_raw: int) -> None:
        amount = int(amount_raw)
        if amount <= 0:
            return
        self._trims[mint] = self._trims.get(mint, 0) + amount
        self._logger.debug("trim %s += %d", mint, amount)

    def reset(self) -> None:
        for kind in self._reserves:
            self._reserves[kind] = 0
        self._trims.clear()

    def reserve_raw(self, kind: str) -> int:
        return self._reserves.get(kind, 0)

    def trim_raw(self, mint: str) -> int:
        return self._trims.get(mint, 0)

    @property
    def total_reserved_raw(self) -> int:
        return sum(self._reserves.values())

    @property
    def total_reserved(self) -> Decimal:
        return Decimal(self.total_reserved_raw) / (Decimal(10) ** self._native_decimals)

    def total_reserved_usd(self, native_price_usd: Optional[Decimal]) -> Decimal:
        if native_price_usd is None or native_price_usd <= 0:
            return Decimal("0")
        return self.total_reserved * native_price_usd

    def breakdown(self) -> Dict[str, int]:
        out = dict(self._reserves)
        for mint, amount in self._trims.items():
            out[f"trim:{mint}"] = amount
        return out

    def is_empty(self) -> bool:
        return self.total_reserved_raw == 0 and not any(self._trims.values())
