import os
import sys
from datetime import datetime
from decimal import Decimal

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "../../.."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from dlmm_bot.scripts.lp.status_formatter import (
    StatusRow,
    format_kv_table,
    format_status_header,
    format_status_row,
    format_summary_lines,
    format_target,
    format_trailing,
    format_usd,
    to_decimal,
)


def _row(**overrides):
    params = {
        "ts": 1_700_000_000.0,
        "value_usd": Decimal("1015"),
        "pnl_usd": Decimal("15"),
        "pnl_pct": Decimal("1.5"),
        "fees_usd": Decimal("2.5"),
        "rebalance_count": 3,
        "take_profit_pct": Decimal("15"),
        "stop_loss_pct": Decimal("10"),
        "trailing_stop_pct": None,
        "trailing_enabled": True,
    }
    params.update(overrides)
    return StatusRow(**params)


def test_header_and_row_share_column_layout():
    header, rule = format_status_header()
    line = format_status_row(_row())

    assert "Value" in header and "P&L%" in header and "TS" in header
    assert len(header) == len(line)
    assert set(rule) <= {"─", "┼"}


def test_row_renders_money_pct_and_targets():
    line = format_status_row(_row())
    cells = [cell.strip() for cell in line.split("│")]

    assert cells[0] == datetime.fromtimestamp(1_700_000_000.0).strftime("%H:%M:%S")
    assert cells[1:6] == ["$1,015.00", "+$15.00", "+1.50%", "$2.50", "3"]
    assert cells[6:] == ["+15.0%", "-10.0%", "WAIT"]


def test_row_shows_losses_and_active_trailing_stop():
    line = format_status_row(
        _row(pnl_usd=Decimal("-7.5"), pnl_pct=Decimal("-0.75"), trailing_stop_pct=Decimal("4"))
    )
    cells = [cell.strip() for cell in line.split("│")]

    assert cells[2] == "-$7.50"
    assert cells[3] == "-0.75%"
    assert cells[8] == "+4.0%"


def test_disabled_targets_render_off():
    assert format_target(None) == "OFF"
    assert format_target(Decimal("0")) == "OFF"
    assert format_trailing(Decimal("3"), enabled=False) == "OFF"
    assert format_trailing(None, enabled=True) == "WAIT"


def test_oversized_cells_are_truncated():
    line = format_status_row(_row(value_usd=Decimal("123456789")))
    value_cell = line.split("│")[1].strip()

    assert len(value_cell) == 11
    assert value_cell.endswith("…")


def test_to_decimal_is_lenient():
    assert to_decimal("1.25") == Decimal("1.25")
    assert to_decimal(None) is None
    assert to_decimal("not a number") is None


def test_format_usd_signed():
    assert format_usd(Decimal("1234.5")) == "$1,234.50"
    assert format_usd(Decimal("0"), signed=True) == "+$0.00"
    assert format_usd(Decimal("-3"), signed=True) == "-$3.00"


def test_kv_table_skips_empty_values():
    lines = format_kv_table([("run", "state", "TERMINATED"), ("run", "exit_reason", None), ("run", "note", "")])
    text = "\n".join(lines)

    assert "TERMINATED" in text
    assert "exit_reason" not in text
    assert "note" not in text
    assert all(line.startswith("  ") for line in lines)
    assert format_kv_table([("run", "state", None)]) == []


def test_summary_lines_cover_run_pnl_fees_and_reserves():
    summary = {
        "runtime_sec": 3725,
        "state": "TERMINATED",
        "exit_reason": "take-profit",
        "position_id": "pos2",
        "rebalance_count": 2,
        "initial_deposit_usd": Decimal("1000"),
        "baseline_usd": Decimal("1015"),
        "last_value_usd": Decimal("1180"),
        "session_pnl_usd": Decimal("165"),
        "session_pnl_pct": Decimal("16.26"),
        "lifetime_pnl_usd": Decimal("185"),
        "lifetime_pnl_pct": Decimal("18.5"),
        "claimed_fees_usd": Decimal("5"),
        "compounded_fees_usd": Decimal("15"),
        "reserves": {"buffer": 70_000_000, "cap": 0},
    }

    text = "\n".join(format_summary_lines(summary))

    assert "1h02m05s" in text
    assert "take-profit" in text
    assert "+$165.00 (+16.26%)" in text
    assert "+$185.00 (+18.50%)" in text
    assert "$1,015.00" in text
    assert "70000000" in text
    assert "cap" not in text


def test_summary_lines_tolerate_missing_fields():
    lines = format_summary_lines({"state": "TERMINATED"})
    text = "\n".join(lines)

    assert "TERMINATED" in text
    assert "session" not in text
