from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CashTransactionKind = Literal["OPENING", "SALE", "REFUND", "CASH_IN", "CASH_OUT", "CLOSING"]
MOVEMENT_KINDS: frozenset[str] = frozenset({"SALE", "REFUND", "CASH_IN", "CASH_OUT"})


class CashTransaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: CashTransactionKind
    amount: int
    description: str
    timestamp: datetime
    cashier_id: str
    shift_id: str | None = None
    reference: str | None = None


class DrawerShift(BaseModel):
    id: str
    cashier_id: str
    start_time: datetime
    end_time: datetime | None = None
    opening_balance: int


class CashDrawerState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    is_open: bool = False
    opening_balance: int = 0
    current_balance: int = 0
    expected_balance: int = 0
    actual_balance: int = 0
    overage: int = 0
    shortage: int = 0
    transactions: list[CashTransaction] = Field(default_factory=list)
    session_start: int = 0
    last_closed_at: datetime | None = None
    current_shift: DrawerShift | None = None

    def session_transactions(self) -> list[CashTransaction]:
        return self.transactions[self.session_start:]


class CashCountCheck(BaseModel):
    expected: int
    counted: int
    difference: int
    is_over: bool
    is_short: bool


class BalanceCheck(BaseModel):
    current_balance: int
    expected_balance: int
    sales_count: int
    refunds_count: int


class DailyCashReport(BaseModel):
    day: date
    transactions: list[CashTransaction]
    total_sales: int
    total_refunds: int
    net_sales: int
    cash_in: int
    cash_out: int
    net_cash: int
