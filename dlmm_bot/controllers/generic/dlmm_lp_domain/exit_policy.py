from decimal import Decimal
from typing import Optional

from .components import ExitReason, ExitSignal, TrailingStopState

_ZERO = Decimal("0")


def _pct_setting(config, name: str) -> Decimal:
    value = getattr(config, name, None)
    if value is None:
        return _ZERO
    return Decimal(str(value))


class ExitPolicy:
    def __init__(self, *, config) -> None:
        self._config = config

    def _enabled(self, flag: str, pct_name: str) -> bool:
        if not getattr(self._config, flag, False):
            return False
        return _pct_setting(self._config, pct_name) > 0

    def should_take_profit(self, pnl_pct: Decimal) -> bool:
        if not self._enabled("take_profit_enabled", "take_profit_pct"):
            return False
        return pnl_pct >= _pct_setting(self._config, "take_profit_pct")

    def should_stoploss(self, pnl_pct: Decimal) -> bool:
        if not self._enabled("stop_loss_enabled", "stop_loss_pct"):
            return False
        return pnl_pct <= -_pct_setting(self._config, "stop_loss_pct")

    def update_trailing(self, pnl_pct: Decimal, state: TrailingStopState) -> TrailingStopState:
        if not self._enabled("trailing_stop_enabled", "trailing_trigger_pct"):
            return state
        distance = _pct_setting(self._config, "trailing_distance_pct")
        if not state.active:
            if pnl_pct < _pct_setting(self._config, "trailing_trigger_pct"):
                return state
            state.active = True
            state.peak_pct = pnl_pct
            state.stop_level = pnl_pct - distance
            return state
        if state.peak_pct is None or pnl_pct > state.peak_pct:
            state.peak_pct = pnl_pct
            candidate = pnl_pct - distance
            if state.stop_level is None or candidate > state.stop_level:
                state.stop_level = candidate
        return state

    @staticmethod
    def should_trailing_stop(pnl_pct: Decimal, state: TrailingStopState) -> bool:
        if not state.active or state.stop_level is None:
            return False
        return pnl_pct <= state.stop_level

    def evaluate(self, pnl_pct: Decimal, trailing: TrailingStopState) -> Optional[ExitSignal]:
        self.update_trailing(pnl_pct, trailing)
        if self.should_take_profit(pnl_pct):
            return ExitSignal(
                reason=ExitReason.TAKE_PROFIT,
                pnl_pct=pnl_pct,
                threshold_pct=_pct_setting(self._config, "take_profit_pct"),
            )
        if self.should_trailing_stop(pnl_pct, trailing):
            return ExitSignal(
                reason=ExitReason.TRAILING_STOP,
                pnl_pct=pnl_pct,
                threshold_pct=trailing.stop_level,
            )
        if self.should_stoploss(pnl_pct):
            return ExitSignal(
                reason=ExitReason.STOP_LOSS,
                pnl_pct=pnl_pct,
                threshold_pct=-_pct_setting(self._config, "stop_loss_pct"),
            )
        return None
