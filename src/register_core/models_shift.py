from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .models_cash import CashTransaction

ShiftStatus = Literal["OPEN", "CLOSED", "FORCED_CLOSED"]
PAYMENT_BUCKETS = ("CASH", "CARD", "MOBILE_MONEY", "OTHER")


def _empty_buckets() -> dict[str, int]:
    return {bucket: 0 for bucket in PAYMENT_BUCKETS}


class ProductSales(BaseModel):
    name: str
    quantity: int
    revenue: int


class Shift(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    cashier_id: str
    branch: str
    label: str
    start_time: datetime
    scheduled_end: datetime
    end_time: datetime | None = None
    opening_balance: int
    closing_balance: int | None = None
    expected_balance: int | None = None
    actual_balance: int | None = None
    status: ShiftStatus = "OPEN"

    total_sales: int = 0
    total_refunds: int = 0
    net_sales: int = 0
    total_transactions: int = 0
    sales_by_payment_method: dict[str, int] = Field(default_factory=_empty_buckets)
    cash_in_amount: int = 0
    cash_out_amount: int = 0
    average_order_value: int = 0
    items_sold: int = 0
    top_selling_products: list[ProductSales] = Field(default_factory=list)

    notes: str | None = None
    issues: str | None = None
    cashier_notes: str | None = None

    @property
    def cash_difference(self) -> int:
        if self.actual_balance is None:
            return 0
        return self.actual_balance - (self.opening_balance + self.net_sales)


class SaleLine(BaseModel):
    name: str
    quantity: int
    unit_price: int


class SaleMetrics(BaseModel):
    total_amount: int
    payment_method: str
    item_count: int
    items: list[SaleLine] = Field(default_factory=list)


class ShiftSummary(BaseModel):
    shift: Shift
    total_revenue: int
    total_transactions: int
    average_order_value: int
    cash_overage: int
    cash_shortage: int


class ShiftReport(BaseModel):
    summary: ShiftSummary
    cash_drawer_transactions: list[CashTransaction] = Field(default_factory=list)


class CashierPerformance(BaseModel):
    cashier_id: str
    revenue: int
    transactions: int


class DailyShiftSummary(BaseModel):
    day: date
    shifts: list[Shift]
    total_revenue: int
    total_transactions: int
    total_refunds: int
    cash_overage: int
    cash_shortage: int
    top_performers: list[CashierPerformance]


class WeeklyShiftSummary(BaseModel):
    week_start: date
    shifts: list[Shift]
    total_revenue: int
    total_transactions: int
    cash_overage: int
    cash_shortage: int
