from __future__ import annotations

from datetime import date

import pytest

from register_core.cash_drawer import CashDrawerLedger
from register_core.cash_validation import CashValidationError
from register_core.clock import ManualClock
from register_core.exceptions import DrawerAlreadyOpenError, DrawerNotOpenError
from register_core.storage import MemoryStore


def _ledger(store: MemoryStore, clock: ManualClock) -> CashDrawerLedger:
    return CashDrawerLedger(store, clock)


def test_bank_drop_scenario_closes_without_discrepancy(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(50_000, "cashier-1")
    ledger.record_sale(12_000, "cashier-1", "S-1")
    ledger.record_cash_out(5_000, "bank drop", "cashier-1")

    closed = ledger.close("cashier-1", 57_000)

    assert closed.current_balance == 57_000
    assert closed.overage == 0
    assert closed.shortage == 0
    assert closed.is_open is False
    assert [txn.kind for txn in ledger.transactions()] == ["OPENING", "SALE", "CASH_OUT", "CLOSING"]


def test_balance_equals_opening_plus_movements(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(10_000, "cashier-1")
    ledger.record_sale(2_500, "cashier-1", "S-1")
    ledger.record_refund(700, "cashier-1", "S-1")
    ledger.record_cash_in(1_000, "float top-up", "cashier-1")
    ledger.record_cash_out(3_300, "supplier", "cashier-1")
    ledger.record_sale(150, "cashier-1", "S-2")

    state = ledger.state()
    assert state.current_balance == state.opening_balance + ledger.movement_sum()
    assert state.current_balance == 10_000 + 2_500 - 700 + 1_000 - 3_300 + 150
    assert state.expected_balance == state.current_balance
    assert ledger.sales_total() == 2_650
    assert ledger.refunds_total() == 700
    assert ledger.cash_movements_total("IN") == 1_000
    assert ledger.cash_movements_total("OUT") == 3_300


def test_close_reports_overage_and_shortage_separately(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(1_000, "cashier-1")
    over = ledger.close("cashier-1", 1_250)
    assert (over.overage, over.shortage) == (250, 0)
    assert over.actual_balance == 1_250

    ledger.open(1_000, "cashier-1")
    short = ledger.close("cashier-1", 900)
    assert (short.overage, short.shortage) == (0, 100)


def test_close_without_count_uses_current_balance(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(1_000, "cashier-1")
    ledger.record_sale(500, "cashier-1", "S-1")

    closed = ledger.close("cashier-1")

    assert closed.actual_balance == 1_500
    assert closed.last_closed_at == clock.now()
    assert closed.current_shift is not None
    assert closed.current_shift.end_time == clock.now()


def test_zero_count_is_respected(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(1_000, "cashier-1")
    closed = ledger.close("cashier-1", 0)
    assert closed.current_balance == 0
    assert closed.shortage == 1_000


def test_state_preconditions(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    with pytest.raises(DrawerNotOpenError) as excinfo:
        ledger.record_sale(100, "cashier-1", "S-1")
    assert excinfo.value.code == "NOT_OPEN"
    with pytest.raises(DrawerNotOpenError):
        ledger.close("cashier-1")

    ledger.open(0, "cashier-1")
    with pytest.raises(DrawerAlreadyOpenError) as excinfo:
        ledger.open(100, "cashier-1")
    assert excinfo.value.code == "ALREADY_OPEN"


@pytest.mark.parametrize("amount", [0, -5, 10.5, True])
def test_invalid_amounts_are_rejected(store: MemoryStore, clock: ManualClock, amount) -> None:
    ledger = _ledger(store, clock)
    ledger.open(1_000, "cashier-1")
    with pytest.raises(CashValidationError):
        ledger.record_sale(amount, "cashier-1", "S-1")
    assert ledger.state().current_balance == 1_000


def test_cash_out_requires_description(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(1_000, "cashier-1")
    with pytest.raises(CashValidationError) as excinfo:
        ledger.record_cash_out(100, "  ", "cashier-1")
    assert excinfo.value.issues[0].field == "description"


def test_new_session_keeps_prior_log(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(1_000, "cashier-1")
    ledger.record_sale(200, "cashier-1", "S-1")
    ledger.close("cashier-1")

    ledger.open(2_000, "cashier-2")

    assert [txn.kind for txn in ledger.transactions()] == ["OPENING"]
    assert len(ledger.state().transactions) == 4
    assert ledger.sales_total() == 0


def test_state_survives_restart(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(1_000, "cashier-1", shift_id="SHIFT-1")
    ledger.record_sale(300, "cashier-1", "S-1")

    restored = _ledger(store, clock)

    assert restored.is_open is True
    assert restored.state().current_balance == 1_300
    assert all(txn.shift_id == "SHIFT-1" for txn in restored.transactions())


def test_corrupt_state_degrades_to_closed_drawer(clock: ManualClock) -> None:
    store = MemoryStore(data={"cash_drawer": '{"is_open": "maybe", "transactions": 3}'})
    ledger = _ledger(store, clock)
    assert ledger.is_open is False
    assert ledger.state().transactions == []


def test_daily_report_and_checks(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(5_000, "cashier-1")
    ledger.record_sale(1_200, "cashier-1", "S-1")
    ledger.record_sale(800, "cashier-1", "S-2")
    ledger.record_refund(200, "cashier-1", "S-2")
    ledger.record_cash_in(500, "change", "cashier-1")

    balance = ledger.quick_balance_check()
    assert (balance.sales_count, balance.refunds_count) == (2, 1)

    count = ledger.validate_cash_count(7_000)
    assert count.expected == 7_300
    assert count.difference == -300
    assert count.is_short and not count.is_over

    report = ledger.daily_report()
    assert report.day == date(2024, 1, 1)
    assert report.total_sales == 2_000
    assert report.net_sales == 1_800
    assert report.net_cash == 2_300

    clock.advance(days=1)
    assert ledger.daily_report().transactions == []


def test_reset_discards_everything(store: MemoryStore, clock: ManualClock) -> None:
    ledger = _ledger(store, clock)
    ledger.open(5_000, "cashier-1")
    state = ledger.reset()
    assert state.is_open is False
    assert store.load("cash_drawer")["transactions"] == []
