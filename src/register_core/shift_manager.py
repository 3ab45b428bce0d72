from __future__ import annotations

import json
import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Literal

from pydantic import ValidationError as PydanticValidationError

from .cash_validation import ensure_valid, validate_opening_balance
from .clock import Clock, SystemClock
from .exceptions import ImportDataError, NoActiveShiftError, ShiftAlreadyOpenError
from .idempotency import new_local_id
from .models_cash import CashTransaction
from .models_shift import (
    PAYMENT_BUCKETS,
    CashierPerformance,
    DailyShiftSummary,
    ProductSales,
    SaleMetrics,
    Shift,
    ShiftReport,
    ShiftSummary,
    WeeklyShiftSummary,
)
from .money import divide_minor_units
from .storage import StateStore

logger = logging.getLogger(__name__)

NAMESPACE = "shifts"
AUTO_CLOSE_REASON = "Auto-closed due to time limit"
TOP_PRODUCTS_LIMIT = 10
TOP_PERFORMERS_LIMIT = 5

# (label, first hour, hour the window ends)
_SHIFT_WINDOWS = (
    ("Morning", 6, 14),
    ("Evening", 14, 22),
)


def shift_window(start: datetime, tz: tzinfo) -> tuple[str, datetime]:
    """Display label and scheduled end for a shift starting at ``start``."""
    local = start.astimezone(tz)
    for label, first_hour, end_hour in _SHIFT_WINDOWS:
        if first_hour <= local.hour < end_hour:
            end = datetime.combine(local.date(), time(end_hour), tzinfo=tz)
            return label, end
    end_day = local.date() + timedelta(days=1) if local.hour >= 22 else local.date()
    return "Night", datetime.combine(end_day, time(6), tzinfo=tz)


def _split_difference(difference: int) -> tuple[int, int]:
    return max(difference, 0), max(-difference, 0)


class ShiftManager:
    def __init__(
        self,
        store: StateStore,
        clock: Clock | None = None,
        *,
        tz: tzinfo | None = None,
        grace_minutes: int = 30,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.tz = tz or timezone.utc
        self.grace = timedelta(minutes=grace_minutes)
        self._current: Shift | None = None
        self._history: list[Shift] = []
        self._load()

    def _load(self) -> None:
        raw = self.store.load(NAMESPACE)
        if not raw:
            return
        try:
            current = raw.get("current")
            self._current = Shift.model_validate(current) if current else None
            self._history = [Shift.model_validate(item) for item in raw.get("history") or []]
        except (AttributeError, PydanticValidationError):
            logger.exception("shift state is unreadable, starting without shifts")
            self._current = None
            self._history = []

    def _save(self) -> None:
        payload = {
            "current": self._current.model_dump(mode="json") if self._current else None,
            "history": [shift.model_dump(mode="json") for shift in self._history],
        }
        if not self.store.save(NAMESPACE, payload):
            logger.error("shift state could not be persisted; keeping it in memory")

    def _local_day(self, value: datetime) -> date:
        return value.astimezone(self.tz).date()

    def check_watchdog(self) -> Shift | None:
        """Force-close the open shift once it is past its window plus grace."""
        shift = self._current
        if shift is None or shift.status != "OPEN":
            return None
        if self.clock.now() > shift.scheduled_end + self.grace:
            logger.warning("shift %s exceeded its window, force closing", shift.id)
            return self.force_close(AUTO_CLOSE_REASON)
        return None

    def current_label(self) -> str:
        label, _ = shift_window(self.clock.now(), self.tz)
        return label

    def open(
        self,
        cashier_id: str,
        branch: str,
        opening_balance: int,
        *,
        notes: str | None = None,
        start_time: datetime | None = None,
    ) -> Shift:
        self.check_watchdog()
        if self._current is not None and self._current.status == "OPEN":
            raise ShiftAlreadyOpenError("A shift is already open", ref=self._current.id)
        ensure_valid(validate_opening_balance(opening_balance, cashier_id))

        now = self.clock.now()
        started = start_time or now
        label, scheduled_end = shift_window(started, self.tz)
        shift = Shift(
            id=new_local_id("SHIFT", now),
            cashier_id=cashier_id,
            branch=branch,
            label=label,
            start_time=started,
            scheduled_end=scheduled_end,
            opening_balance=opening_balance,
            notes=notes or f"{label} shift started",
        )
        self._current = shift
        self._save()
        logger.info("shift %s opened for %s at %s", shift.id, cashier_id, branch)
        return shift.model_copy(deep=True)

    def close(
        self,
        closing_balance: int | None = None,
        *,
        notes: str | None = None,
        issues: str | None = None,
        cashier_notes: str | None = None,
        forced: bool = False,
    ) -> Shift:
        shift = self._current
        if shift is None or shift.status != "OPEN":
            raise NoActiveShiftError("No active shift to close")

        expected = shift.opening_balance + shift.net_sales
        actual = expected if closing_balance is None else closing_balance
        closed = shift.model_copy(
            update={
                "end_time": self.clock.now(),
                "closing_balance": actual,
                "expected_balance": expected,
                "actual_balance": actual,
                "status": "FORCED_CLOSED" if forced else "CLOSED",
                "notes": notes or shift.notes,
                "issues": issues,
                "cashier_notes": cashier_notes,
            },
            deep=True,
        )
        self._history.append(closed)
        self._current = None
        self._save()
        logger.info("shift %s closed with status %s", closed.id, closed.status)
        return closed.model_copy(deep=True)

    def force_close(self, reason: str) -> Shift:
        return self.close(None, notes=f"Force closed: {reason}", issues=reason, forced=True)

    def current(self) -> Shift | None:
        self.check_watchdog()
        return self._current.model_copy(deep=True) if self._current else None

    def _open_shift(self) -> Shift | None:
        if self._current is None or self._current.status != "OPEN":
            return None
        return self._current

    def update_metrics(self, sale: SaleMetrics) -> None:
        shift = self._open_shift()
        if shift is None:
            return

        shift.total_transactions += 1
        shift.total_sales += sale.total_amount
        shift.net_sales = shift.total_sales - shift.total_refunds
        shift.items_sold += sale.item_count

        method = sale.payment_method.upper()
        bucket = method if method in PAYMENT_BUCKETS else "OTHER"
        shift.sales_by_payment_method[bucket] = shift.sales_by_payment_method.get(bucket, 0) + sale.total_amount

        shift.average_order_value = divide_minor_units(shift.total_sales, shift.total_transactions)

        products = {product.name: product for product in shift.top_selling_products}
        for line in sale.items:
            revenue = line.unit_price * line.quantity
            existing = products.get(line.name)
            if existing:
                existing.quantity += line.quantity
                existing.revenue += revenue
            else:
                entry = ProductSales(name=line.name, quantity=line.quantity, revenue=revenue)
                products[line.name] = entry
                shift.top_selling_products.append(entry)
        # sorted() is stable: equal revenue keeps first-seen order
        shift.top_selling_products = sorted(
            shift.top_selling_products, key=lambda product: product.revenue, reverse=True
        )[:TOP_PRODUCTS_LIMIT]
        self._save()

    def record_refund(self, amount: int) -> None:
        shift = self._open_shift()
        if shift is None:
            return
        shift.total_refunds += amount
        shift.net_sales = shift.total_sales - shift.total_refunds
        # Divides net sales by the sale count; refunds are not counted as transactions.
        shift.average_order_value = divide_minor_units(shift.net_sales, shift.total_transactions)
        self._save()

    def record_cash_movement(self, amount: int, direction: Literal["IN", "OUT"]) -> None:
        shift = self._open_shift()
        if shift is None:
            return
        if direction == "IN":
            shift.cash_in_amount += amount
        else:
            shift.cash_out_amount += amount
        self._save()

    def history(self, day: date | None = None) -> list[Shift]:
        shifts = [shift.model_copy(deep=True) for shift in self._history]
        if day:
            shifts = [shift for shift in shifts if self._local_day(shift.start_time) == day]
        return sorted(shifts, key=lambda shift: shift.start_time, reverse=True)

    def get(self, shift_id: str) -> Shift | None:
        if self._current and self._current.id == shift_id:
            return self._current.model_copy(deep=True)
        for shift in self._history:
            if shift.id == shift_id:
                return shift.model_copy(deep=True)
        return None

    def active_shifts(self) -> list[Shift]:
        self.check_watchdog()
        shift = self._open_shift()
        return [shift.model_copy(deep=True)] if shift else []

    def summary(self, shift: Shift | None = None) -> ShiftSummary | None:
        target = shift or self.current()
        if target is None:
            return None
        overage, shortage = _split_difference(target.cash_difference)
        return ShiftSummary(
            shift=target,
            total_revenue=target.net_sales,
            total_transactions=target.total_transactions,
            average_order_value=target.average_order_value,
            cash_overage=overage,
            cash_shortage=shortage,
        )

    def report(self, shift: Shift, drawer_transactions: list[CashTransaction] | None = None) -> ShiftReport:
        summary = self.summary(shift)
        if summary is None:
            raise NoActiveShiftError("No shift to report on")
        transactions = [txn for txn in drawer_transactions or [] if txn.shift_id in (None, shift.id)]
        return ShiftReport(summary=summary, cash_drawer_transactions=transactions)

    def daily_summary(self, day: date) -> DailyShiftSummary:
        self.check_watchdog()
        shifts = [shift for shift in self._history if self._local_day(shift.start_time) == day]
        current = self._open_shift()
        if current and self._local_day(current.start_time) == day:
            shifts.append(current)
        shifts = [shift.model_copy(deep=True) for shift in shifts]

        performers: dict[str, CashierPerformance] = {}
        for shift in shifts:
            entry = performers.setdefault(
                shift.cashier_id, CashierPerformance(cashier_id=shift.cashier_id, revenue=0, transactions=0)
            )
            entry.revenue += shift.net_sales
            entry.transactions += shift.total_transactions
        ranked = sorted(performers.values(), key=lambda entry: entry.revenue, reverse=True)

        overage, shortage = _split_difference(sum(shift.cash_difference for shift in shifts))
        return DailyShiftSummary(
            day=day,
            shifts=shifts,
            total_revenue=sum(shift.net_sales for shift in shifts),
            total_transactions=sum(shift.total_transactions for shift in shifts),
            total_refunds=sum(shift.total_refunds for shift in shifts),
            cash_overage=overage,
            cash_shortage=shortage,
            top_performers=ranked[:TOP_PERFORMERS_LIMIT],
        )

    def weekly_summary(self, week_start: date) -> WeeklyShiftSummary:
        week_end = week_start + timedelta(days=7)
        shifts = [
            shift.model_copy(deep=True)
            for shift in self._history
            if week_start <= self._local_day(shift.start_time) < week_end
        ]
        overage, shortage = _split_difference(sum(shift.cash_difference for shift in shifts))
        return WeeklyShiftSummary(
            week_start=week_start,
            shifts=shifts,
            total_revenue=sum(shift.net_sales for shift in shifts),
            total_transactions=sum(shift.total_transactions for shift in shifts),
            cash_overage=overage,
            cash_shortage=shortage,
        )

    def export_shifts(self) -> str:
        payload = {
            "current_shift": self._current.model_dump(mode="json") if self._current else None,
            "shift_history": [shift.model_dump(mode="json") for shift in self._history],
        }
        return json.dumps(payload, indent=2)

    def import_shifts(self, payload: str) -> int:
        """Merge exported shifts, skipping ids already known. Returns the number imported."""
        try:
            data: Any = json.loads(payload)
            incoming_current = data.get("current_shift")
            incoming_history = [Shift.model_validate(item) for item in data.get("shift_history") or []]
            current = Shift.model_validate(incoming_current) if incoming_current else None
        except (json.JSONDecodeError, AttributeError, PydanticValidationError) as exc:
            raise ImportDataError("Invalid shift data") from exc

        known = {shift.id for shift in self._history}
        if self._current:
            known.add(self._current.id)

        imported = 0
        for shift in incoming_history:
            if shift.id in known:
                continue
            self._history.append(shift)
            known.add(shift.id)
            imported += 1

        if current and current.id not in known:
            if current.status == "OPEN" and self._open_shift() is None:
                self._current = current
            elif current.status != "OPEN":
                self._history.append(current)
            else:
                logger.warning("skipping imported open shift %s: a shift is already active", current.id)
                current = None
            if current is not None:
                imported += 1

        self._save()
        return imported
