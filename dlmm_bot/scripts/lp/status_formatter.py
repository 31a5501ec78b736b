"""
Status output for the DLMM position monitor: one fixed-width row per tick
plus a tabulated final summary.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Tuple

import tabulate

STATUS_COLUMNS: Tuple[Tuple[str, int], ...] = (
    ("Time", 8),
    ("Value", 11),
    ("P&L", 11),
    ("P&L%", 8),
    ("Fees", 10),
    ("Rebal", 5),
    ("TP", 7),
    ("SL", 7),
    ("TS", 7),
)
COLUMN_SEPARATOR = " │ "


@dataclass(frozen=True)
class StatusRow:
    """
    One tick worth of display data.

    Attributes:
        ts: Unix timestamp of the tick.
        value_usd: Position value including unclaimed fees.
        pnl_usd: Session P&L in USD.
        pnl_pct: Session P&L in percent points.
        fees_usd: Unclaimed fees in USD.
        rebalance_count: Completed rebalances.
        take_profit_pct: TP target, None when disabled.
        stop_loss_pct: SL target, None when disabled.
        trailing_stop_pct: Current dynamic stop, None when inactive.
        trailing_enabled: Whether trailing is configured at all.
    """

    ts: float
    value_usd: Decimal
    pnl_usd: Decimal
    pnl_pct: Decimal
    fees_usd: Decimal
    rebalance_count: int
    take_profit_pct: Optional[Decimal]
    stop_loss_pct: Optional[Decimal]
    trailing_stop_pct: Optional[Decimal]
    trailing_enabled: bool = False


def to_decimal(value: Optional[object]) -> Optional[Decimal]:
    """
    Convert input to Decimal without raising.

    Args:
        value: Any value.

    Returns:
        Decimal, or None when conversion is impossible.
    """
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None


def format_usd(value: Decimal, signed: bool = False) -> str:
    if signed:
        sign = "+" if value >= 0 else "-"
        return f"{sign}${abs(value):,.2f}"
    return f"${value:,.2f}"


def format_target(pct: Optional[Decimal], negative: bool = False) -> str:
    """
    Render a TP/SL target column.

    Args:
        pct: Target in percent points; None or <= 0 means disabled.
        negative: Prefix with '-' instead of '+'.

    Returns:
        "+15.0%" style text, or "OFF".
    """
    if pct is None or pct <= 0:
        return "OFF"
    sign = "-" if negative else "+"
    return f"{sign}{pct:.1f}%"


def format_trailing(stop_pct: Optional[Decimal], enabled: bool) -> str:
    if not enabled:
        return "OFF"
    if stop_pct is None:
        return "WAIT"
    return f"{stop_pct:+.1f}%"


def _fit(text: str, width: int) -> str:
    if len(text) > width:
        return text[: width - 1] + "…"
    return text.rjust(width)


def format_status_header() -> List[str]:
    """
    Build the table header and the rule under it.

    Returns:
        Two text lines.
    """
    header = COLUMN_SEPARATOR.join(_fit(name, width) for name, width in STATUS_COLUMNS)
    rule = "─┼─".join("─" * width for _, width in STATUS_COLUMNS)
    return [header, rule]


def format_status_row(row: StatusRow) -> str:
    """
    Render one tick as a fixed-width line matching format_status_header.

    Args:
        row: Tick display data.

    Returns:
        Text line.
    """
    cells = [
        datetime.fromtimestamp(row.ts).strftime("%H:%M:%S"),
        format_usd(row.value_usd),
        format_usd(row.pnl_usd, signed=True),
        f"{row.pnl_pct:+.2f}%",
        format_usd(row.fees_usd),
        str(row.rebalance_count),
        format_target(row.take_profit_pct),
        format_target(row.stop_loss_pct, negative=True),
        format_trailing(row.trailing_stop_pct, row.trailing_enabled),
    ]
    return COLUMN_SEPARATOR.join(_fit(cell, width) for cell, (_, width) in zip(cells, STATUS_COLUMNS))


def format_kv_table(
    rows: Iterable[Tuple[str, str, Optional[str]]],
    indent: int = 2,
) -> List[str]:
    """
    Format grouped key/value records as one psql table.

    Args:
        rows: (section, field, value) records; rows whose value is None are skipped.
        indent: Left padding in spaces.

    Returns:
        Formatted text lines.
    """
    cleaned: List[Tuple[str, str, str]] = []
    for section, field, value in rows:
        if value is None or value == "":
            continue
        cleaned.append((str(section), str(field), str(value)))
    if not cleaned:
        return []
    pad = " " * max(0, int(indent))
    table = tabulate.tabulate(
        cleaned,
        headers=["section", "field", "value"],
        tablefmt="psql",
        colalign=("left", "left", "left"),
    )
    return [f"{pad}{line}" for line in table.splitlines()]


def format_summary_lines(summary: dict) -> List[str]:
    """
    Build the end-of-run summary table.

    Args:
        summary: Output of the monitor's ``summary()``.

    Returns:
        Formatted text lines.
    """
    rows: List[Tuple[str, str, Optional[str]]] = []

    def add_row(section: str, field: str, value: Optional[str]) -> None:
        rows.append((section, field, value))

    runtime = to_decimal(summary.get("runtime_sec"))
    if runtime is not None:
        minutes, seconds = divmod(int(runtime), 60)
        hours, minutes = divmod(minutes, 60)
        add_row("run", "runtime", f"{hours:d}h{minutes:02d}m{seconds:02d}s")
    add_row("run", "state", summary.get("state"))
    add_row("run", "exit_reason", summary.get("exit_reason"))
    add_row("run", "position_id", summary.get("position_id"))
    add_row("run", "rebalances", str(summary.get("rebalance_count", 0)))

    for key, label in (
        ("initial_deposit_usd", "initial_deposit"),
        ("baseline_usd", "baseline"),
        ("last_value_usd", "last_value"),
    ):
        value = to_decimal(summary.get(key))
        if value is not None:
            add_row("pnl", label, format_usd(value))
    for usd_key, pct_key, label in (
        ("session_pnl_usd", "session_pnl_pct", "session"),
        ("lifetime_pnl_usd", "lifetime_pnl_pct", "lifetime"),
    ):
        usd = to_decimal(summary.get(usd_key))
        pct = to_decimal(summary.get(pct_key))
        if usd is not None and pct is not None:
            add_row("pnl", label, f"{format_usd(usd, signed=True)} ({pct:+.2f}%)")

    claimed = to_decimal(summary.get("claimed_fees_usd"))
    compounded = to_decimal(summary.get("compounded_fees_usd"))
    if claimed is not None:
        add_row("fees", "claimed", format_usd(claimed))
    if compounded is not None:
        add_row("fees", "compounded", format_usd(compounded))

    reserves = summary.get("reserves") or {}
    for kind, amount in sorted(reserves.items()):
        if amount:
            add_row("reserve", kind, str(amount))
    return format_kv_table(rows)
