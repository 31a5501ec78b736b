from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def to_pct_points(pct: Optional[Any]) -> Decimal:
    """Parse a controller YAML *_pct value as percent points (5 == 5%).

    Policy:
    - Controller configs use percent points everywhere, matching the status table.
    - Missing or unparsable values become 0 (disabled).
    """
    if pct is None:
        return Decimal("0")
    try:
        value = Decimal(str(pct))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not value.is_finite():
        return Decimal("0")
    return value


def pct_to_ratio(pct: Optional[Any]) -> Decimal:
    """Convert percent points into a ratio (0-1 for 0-100%)."""
    value = to_pct_points(pct)
    if value <= 0:
        return Decimal("0")
    return value / Decimal("100")


def check_pct_range(name: str, pct: Optional[Any], low: Decimal, high: Decimal) -> Decimal:
    value = to_pct_points(pct)
    if value < low or value > high:
        raise ValueError(f"{name} must be within [{low}, {high}] percent points, got {pct!r}.")
    return value
