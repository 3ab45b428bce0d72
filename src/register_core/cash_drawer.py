from __future__ import annotations

import logging
from datetime import date, timezone, tzinfo
from typing import Literal

from pydantic import ValidationError as PydanticValidationError

from .cash_validation import (
    ensure_valid,
    validate_cash_movement,
    validate_counted_cash,
    validate_opening_balance,
    validate_sale_amount,
)
from .clock import Clock, SystemClock
from .exceptions import DrawerAlreadyOpenError, DrawerNotOpenError
from .idempotency import new_local_id
from .models_cash import (
    MOVEMENT_KINDS,
    BalanceCheck,
    CashCountCheck,
    CashDrawerState,
    CashTransaction,
    CashTransactionKind,
    DailyCashReport,
    DrawerShift,
)
from .storage import StateStore

logger = logging.getLogger(__name__)

NAMESPACE = "cash_drawer"


def _sum(transactions: list[CashTransaction], *kinds: str) -> int:
    return sum(abs(txn.amount) for txn in transactions if txn.kind in kinds)


class CashDrawerLedger:
    """Append-only cash ledger for one register.

    Every mutation is persisted before it returns, so a restart resumes from
    either the state before or the state after the last operation.
    """

    def __init__(self, store: StateStore, clock: Clock | None = None, tz: tzinfo | None = None) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.tz = tz or timezone.utc
        self._state = self._load()

    def _load(self) -> CashDrawerState:
        raw = self.store.load(NAMESPACE)
        if not raw:
            return CashDrawerState()
        try:
            return CashDrawerState.model_validate(raw)
        except PydanticValidationError:
            logger.exception("cash drawer state is unreadable, starting from an empty drawer")
            return CashDrawerState()

    def _commit(self, state: CashDrawerState) -> CashDrawerState:
        if not self.store.save(NAMESPACE, state.model_dump(mode="json")):
            logger.error("cash drawer state could not be persisted; keeping it in memory")
        self._state = state
        return self.state()

    def _require_open(self, action: str) -> None:
        if not self._state.is_open:
            raise DrawerNotOpenError(f"Cash drawer must be open to {action}")

    def _transaction(
        self,
        kind: CashTransactionKind,
        amount: int,
        description: str,
        cashier_id: str,
        *,
        shift_id: str | None = None,
        reference: str | None = None,
    ) -> CashTransaction:
        now = self.clock.now()
        return CashTransaction(
            id=new_local_id("TXN", now, suffix_length=9),
            kind=kind,
            amount=amount,
            description=description,
            timestamp=now,
            cashier_id=cashier_id,
            shift_id=shift_id,
            reference=reference,
        )

    def _append_movement(self, txn: CashTransaction) -> CashDrawerState:
        state = self._state
        return self._commit(
            state.model_copy(
                update={
                    "current_balance": state.current_balance + txn.amount,
                    "expected_balance": state.expected_balance + txn.amount,
                    "transactions": [*state.transactions, txn],
                }
            )
        )

    def _current_shift_id(self) -> str | None:
        return self._state.current_shift.id if self._state.current_shift else None

    def open(self, opening_balance: int, cashier_id: str, shift_id: str | None = None) -> CashDrawerState:
        if self._state.is_open:
            raise DrawerAlreadyOpenError("Cash drawer is already open")
        ensure_valid(validate_opening_balance(opening_balance, cashier_id))

        now = self.clock.now()
        drawer_shift_id = shift_id or new_local_id("SHIFT", now)
        opening = self._transaction(
            "OPENING", opening_balance, "Opening balance", cashier_id, shift_id=drawer_shift_id
        )
        state = self._state.model_copy(
            update={
                "is_open": True,
                "opening_balance": opening_balance,
                "current_balance": opening_balance,
                "expected_balance": opening_balance,
                "actual_balance": opening_balance,
                "overage": 0,
                "shortage": 0,
                "session_start": len(self._state.transactions),
                "transactions": [*self._state.transactions, opening],
                "current_shift": DrawerShift(
                    id=drawer_shift_id,
                    cashier_id=cashier_id,
                    start_time=now,
                    opening_balance=opening_balance,
                ),
            }
        )
        logger.info("cash drawer opened by %s with %s", cashier_id, opening_balance)
        return self._commit(state)

    def close(self, cashier_id: str, counted_amount: int | None = None) -> CashDrawerState:
        self._require_open("close it")
        ensure_valid(validate_counted_cash(counted_amount))

        state = self._state
        counted = state.current_balance if counted_amount is None else counted_amount
        expected = state.expected_balance
        closing = self._transaction(
            "CLOSING", counted, "Closing balance", cashier_id, shift_id=self._current_shift_id()
        )
        now = closing.timestamp
        current_shift = (
            state.current_shift.model_copy(update={"end_time": now}) if state.current_shift else None
        )
        closed = state.model_copy(
            update={
                "is_open": False,
                "current_balance": counted,
                "actual_balance": counted,
                "overage": max(counted - expected, 0),
                "shortage": max(expected - counted, 0),
                "transactions": [*state.transactions, closing],
                "last_closed_at": now,
                "current_shift": current_shift,
            }
        )
        if counted != expected:
            logger.warning(
                "cash drawer closed with discrepancy: expected=%s counted=%s", expected, counted
            )
        return self._commit(closed)

    def record_sale(self, amount: int, cashier_id: str, sale_ref: str) -> CashDrawerState:
        self._require_open("record sales")
        ensure_valid(validate_sale_amount(amount, sale_ref))
        txn = self._transaction(
            "SALE", amount, f"Sale {sale_ref}", cashier_id, shift_id=self._current_shift_id(), reference=sale_ref
        )
        return self._append_movement(txn)

    def record_refund(self, amount: int, cashier_id: str, sale_ref: str) -> CashDrawerState:
        self._require_open("record refunds")
        ensure_valid(validate_sale_amount(amount, sale_ref))
        txn = self._transaction(
            "REFUND", -amount, f"Refund {sale_ref}", cashier_id, shift_id=self._current_shift_id(), reference=sale_ref
        )
        return self._append_movement(txn)

    def record_cash_in(self, amount: int, description: str, cashier_id: str) -> CashDrawerState:
        self._require_open("record cash in")
        ensure_valid(validate_cash_movement(amount, description))
        txn = self._transaction("CASH_IN", amount, description, cashier_id, shift_id=self._current_shift_id())
        return self._append_movement(txn)

    def record_cash_out(self, amount: int, description: str, cashier_id: str) -> CashDrawerState:
        self._require_open("record cash out")
        ensure_valid(validate_cash_movement(amount, description))
        txn = self._transaction("CASH_OUT", -amount, description, cashier_id, shift_id=self._current_shift_id())
        return self._append_movement(txn)

    def state(self) -> CashDrawerState:
        return self._state.model_copy(deep=True)

    @property
    def is_open(self) -> bool:
        return self._state.is_open

    def transactions(self, kind: CashTransactionKind | None = None) -> list[CashTransaction]:
        session = self._state.session_transactions()
        if kind:
            return [txn for txn in session if txn.kind == kind]
        return list(session)

    def sales_total(self) -> int:
        return _sum(self._state.session_transactions(), "SALE")

    def refunds_total(self) -> int:
        return _sum(self._state.session_transactions(), "REFUND")

    def cash_movements_total(self, direction: Literal["IN", "OUT"]) -> int:
        return _sum(self._state.session_transactions(), "CASH_IN" if direction == "IN" else "CASH_OUT")

    def movement_sum(self) -> int:
        return sum(txn.amount for txn in self._state.session_transactions() if txn.kind in MOVEMENT_KINDS)

    def daily_report(self, day: date | None = None) -> DailyCashReport:
        target = day or self.clock.now().astimezone(self.tz).date()
        day_txns = [
            txn for txn in self._state.transactions if txn.timestamp.astimezone(self.tz).date() == target
        ]
        total_sales = _sum(day_txns, "SALE")
        total_refunds = _sum(day_txns, "REFUND")
        cash_in = _sum(day_txns, "CASH_IN")
        cash_out = _sum(day_txns, "CASH_OUT")
        return DailyCashReport(
            day=target,
            transactions=day_txns,
            total_sales=total_sales,
            total_refunds=total_refunds,
            net_sales=total_sales - total_refunds,
            cash_in=cash_in,
            cash_out=cash_out,
            net_cash=total_sales + cash_in - total_refunds - cash_out,
        )

    def quick_balance_check(self) -> BalanceCheck:
        self._require_open("check its balance")
        session = self._state.session_transactions()
        return BalanceCheck(
            current_balance=self._state.current_balance,
            expected_balance=self._state.expected_balance,
            sales_count=sum(1 for txn in session if txn.kind == "SALE"),
            refunds_count=sum(1 for txn in session if txn.kind == "REFUND"),
        )

    def validate_cash_count(self, counted: int) -> CashCountCheck:
        self._require_open("validate a cash count")
        ensure_valid(validate_counted_cash(counted))
        expected = self._state.expected_balance
        difference = counted - expected
        return CashCountCheck(
            expected=expected,
            counted=counted,
            difference=difference,
            is_over=difference > 0,
            is_short=difference < 0,
        )

    def reset(self) -> CashDrawerState:
        logger.warning("cash drawer reset: all ledger state discarded")
        return self._commit(CashDrawerState())
