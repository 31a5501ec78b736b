import os
import sys
from decimal import Decimal

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "../../../../.."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from dlmm_bot.controllers.generic.dlmm_lp_domain.reserve_ledger import ReserveLedger


def test_reserves_accumulate_per_kind():
    ledger = ReserveLedger()
    ledger.add_reserve("buffer", 70_000_000)
    ledger.add_reserve("haircut", 500_000)
    ledger.add_reserve("haircut", 250_000)
    ledger.add_reserve("cap", 1_000_000_000)

    assert ledger.reserve_raw("buffer") == 70_000_000
    assert ledger.reserve_raw("haircut") == 750_000
    assert ledger.total_reserved_raw == 1_070_750_000
    assert ledger.total_reserved == Decimal("1.07075")


def test_non_positive_amounts_are_ignored():
    ledger = ReserveLedger()
    ledger.add_reserve("buffer", 0)
    ledger.add_reserve("buffer", -5)
    ledger.add_trim("MINT", 0)

    assert ledger.is_empty()


def test_unknown_kind_is_rejected():
    ledger = ReserveLedger()
    with pytest.raises(ValueError):
        ledger.add_reserve("tip", 10)


def test_trims_are_tracked_per_mint_and_not_in_native_total():
    ledger = ReserveLedger()
    ledger.add_trim("TOKEN", 1_234)
    ledger.add_trim("TOKEN", 6)

    assert ledger.trim_raw("TOKEN") == 1_240
    assert ledger.total_reserved_raw == 0
    assert not ledger.is_empty()
    assert ledger.breakdown()["trim:TOKEN"] == 1_240


def test_reset_clears_everything():
    ledger = ReserveLedger()
    ledger.add_reserve("buffer", 10)
    ledger.add_trim("TOKEN", 10)

    ledger.reset()

    assert ledger.is_empty()
    assert ledger.breakdown() == {"buffer": 0, "cap": 0, "haircut": 0}


def test_usd_value_uses_native_price():
    ledger = ReserveLedger()
    ledger.add_reserve("buffer", 500_000_000)

    assert ledger.total_reserved_usd(Decimal("200")) == Decimal("100")
    assert ledger.total_reserved_usd(None) == Decimal("0")
