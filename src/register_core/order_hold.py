from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Iterable, Mapping

from pydantic import ValidationError as PydanticValidationError

from .cash_validation import CashValidationError, CashValidationIssue
from .clock import Clock, SystemClock
from .exceptions import (
    CannotCancelResumedError,
    HeldOrderAlreadyResumedError,
    HeldOrderExpiredError,
    HeldOrderNotFoundError,
    HeldOrderNotHeldError,
    HoldLimitReachedError,
    ImportDataError,
)
from .idempotency import new_local_id
from .models_hold import CustomerInfo, HeldOrder, HeldOrderItem, HoldStatistics, HoldStatus
from .storage import StateStore

logger = logging.getLogger(__name__)

NAMESPACE = "held_orders"
DEFAULT_HOLD_DURATION_HOURS = 24
DEFAULT_MAX_HELD_ORDERS = 50


def _coerce_items(items: Iterable[HeldOrderItem | Mapping[str, Any]]) -> list[HeldOrderItem]:
    return [item if isinstance(item, HeldOrderItem) else HeldOrderItem.model_validate(item) for item in items]


def _totals(items: list[HeldOrderItem]) -> tuple[int, int, int, int]:
    subtotal = sum(item.total_price or 0 for item in items)
    # discount and tax stay at zero: tax is disabled and discounts are not applied to holds
    discount_amount = 0
    tax_amount = 0
    return subtotal, discount_amount, tax_amount, subtotal - discount_amount + tax_amount


class OrderHoldStore:
    """Bounded staging area for paused carts.

    Expiry is passive: every read path reclassifies HELD orders whose
    ``expires_at`` has passed as EXPIRED before answering.
    """

    def __init__(
        self,
        store: StateStore,
        clock: Clock | None = None,
        *,
        max_held_orders: int = DEFAULT_MAX_HELD_ORDERS,
        default_hold_hours: int = DEFAULT_HOLD_DURATION_HOURS,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.max_held_orders = max_held_orders
        self.default_hold_hours = default_hold_hours
        self._orders: list[HeldOrder] = self._load()
        self.sweep_expired()

    def _load(self) -> list[HeldOrder]:
        raw = self.store.load(NAMESPACE)
        if not raw:
            return []
        try:
            return [HeldOrder.model_validate(item) for item in raw]
        except (TypeError, PydanticValidationError):
            logger.exception("held orders are unreadable, starting with an empty hold store")
            return []

    def _save(self) -> None:
        if not self.store.save(NAMESPACE, [order.model_dump(mode="json") for order in self._orders]):
            logger.error("held orders could not be persisted; keeping them in memory")

    def _find(self, order_id: str) -> HeldOrder:
        for order in self._orders:
            if order.id == order_id:
                return order
        raise HeldOrderNotFoundError("Order not found", ref=order_id)

    def sweep_expired(self) -> int:
        now = self.clock.now()
        expired = 0
        for order in self._orders:
            if order.status == "HELD" and order.expires_at < now:
                order.status = "EXPIRED"
                expired += 1
        if expired:
            logger.info("expired %s held order(s)", expired)
            self._save()
        return expired

    def _active_count(self) -> int:
        return sum(1 for order in self._orders if order.status == "HELD")

    def can_hold(self) -> bool:
        self.sweep_expired()
        return self._active_count() < self.max_held_orders

    def hold(
        self,
        items: Iterable[HeldOrderItem | Mapping[str, Any]],
        customer: CustomerInfo | None = None,
        *,
        payment_method: str | None = None,
        notes: str | None = None,
        hold_duration_hours: int | None = None,
        created_by: str | None = None,
        branch: str | None = None,
    ) -> HeldOrder:
        if not self.can_hold():
            raise HoldLimitReachedError(f"Maximum {self.max_held_orders} orders can be held at once")
        lines = _coerce_items(items)
        if not lines:
            raise CashValidationError([CashValidationIssue(field="items", reason="is required")])

        duration = self.default_hold_hours if hold_duration_hours is None else hold_duration_hours
        if duration <= 0:
            raise CashValidationError([CashValidationIssue(field="hold_duration_hours", reason="must be greater than 0")])
        subtotal, discount_amount, tax_amount, total_amount = _totals(lines)
        now = self.clock.now()
        order = HeldOrder(
            id=new_local_id("HOLD", now),
            customer=customer,
            items=lines,
            subtotal=subtotal,
            discount_amount=discount_amount,
            tax_amount=tax_amount,
            total_amount=total_amount,
            payment_method=payment_method,
            notes=notes,
            created_at=now,
            expires_at=now + timedelta(hours=duration),
            created_by=created_by or "Unknown",
            branch=branch or "Main Store",
            hold_duration_hours=duration,
        )
        self._orders.append(order)
        self._save()
        return order.model_copy(deep=True)

    def resume(self, order_id: str, resumed_by: str) -> HeldOrder:
        self.sweep_expired()
        order = self._find(order_id)
        if order.status == "EXPIRED":
            raise HeldOrderExpiredError("Order has expired", ref=order_id)
        if order.status == "RESUMED":
            raise HeldOrderAlreadyResumedError("Order has already been resumed", ref=order_id)

        order.status = "RESUMED"
        order.resumed_at = self.clock.now()
        order.resumed_by = resumed_by
        self._orders.remove(order)
        self._orders.append(order)
        self._save()
        return order.model_copy(deep=True)

    def cancel(self, order_id: str, reason: str | None = None) -> HeldOrder:
        order = self._find(order_id)
        if order.status == "RESUMED":
            raise CannotCancelResumedError("Cannot cancel a resumed order", ref=order_id)

        order.status = "EXPIRED"
        if reason:
            order.notes = f"{order.notes}\nCancelled: {reason}" if order.notes else f"Cancelled: {reason}"
        self._save()
        return order.model_copy(deep=True)

    def _require_held(self, order_id: str, action: str) -> HeldOrder:
        self.sweep_expired()
        order = self._find(order_id)
        if order.status != "HELD":
            raise HeldOrderNotHeldError(f"Can only {action} held orders", ref=order_id)
        return order

    def extend(self, order_id: str, hours: int) -> HeldOrder:
        if hours <= 0:
            raise CashValidationError([CashValidationIssue(field="hours", reason="must be greater than 0")])
        order = self._require_held(order_id, "extend")
        order.expires_at = order.expires_at + timedelta(hours=hours)
        order.hold_duration_hours += hours
        self._save()
        return order.model_copy(deep=True)

    def update(
        self,
        order_id: str,
        *,
        items: Iterable[HeldOrderItem | Mapping[str, Any]] | None = None,
        customer: CustomerInfo | None = None,
        notes: str | None = None,
        payment_method: str | None = None,
        hold_duration_hours: int | None = None,
    ) -> HeldOrder:
        order = self._require_held(order_id, "update")
        if customer is not None:
            order.customer = customer
        if notes is not None:
            order.notes = notes
        if payment_method is not None:
            order.payment_method = payment_method
        if items is not None:
            lines = _coerce_items(items)
            if not lines:
                raise CashValidationError([CashValidationIssue(field="items", reason="is required")])
            order.items = lines
            order.subtotal, order.discount_amount, order.tax_amount, order.total_amount = _totals(lines)
        if hold_duration_hours:
            order.hold_duration_hours = hold_duration_hours
            order.expires_at = self.clock.now() + timedelta(hours=hold_duration_hours)
        self._save()
        return order.model_copy(deep=True)

    def list(self, status: HoldStatus | None = None) -> list[HeldOrder]:
        self.sweep_expired()
        orders = [order for order in self._orders if status is None or order.status == status]
        orders.sort(key=lambda order: order.created_at, reverse=True)
        return [order.model_copy(deep=True) for order in orders]

    def get(self, order_id: str) -> HeldOrder | None:
        self.sweep_expired()
        for order in self._orders:
            if order.id == order_id:
                return order.model_copy(deep=True)
        return None

    def search(self, query: str) -> list[HeldOrder]:
        self.sweep_expired()
        needle = query.lower()

        def matches(order: HeldOrder) -> bool:
            customer = order.customer or CustomerInfo()
            fields = [order.id, customer.name, customer.phone, customer.email, order.notes]
            if any(value and needle in value.lower() for value in fields):
                return True
            return any(needle in item.product_name.lower() for item in order.items)

        return [order.model_copy(deep=True) for order in self._orders if matches(order)]

    def by_customer(
        self,
        *,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
    ) -> list[HeldOrder]:
        self.sweep_expired()
        results = []
        for order in self._orders:
            customer = order.customer or CustomerInfo()
            if name and customer.name != name:
                continue
            if phone and customer.phone != phone:
                continue
            if email and customer.email != email:
                continue
            results.append(order.model_copy(deep=True))
        return results

    def expiring_soon(self, within_hours: int = 2) -> list[HeldOrder]:
        self.sweep_expired()
        horizon = self.clock.now() + timedelta(hours=within_hours)
        return [
            order.model_copy(deep=True)
            for order in self._orders
            if order.status == "HELD" and order.expires_at <= horizon
        ]

    def statistics(self) -> HoldStatistics:
        self.sweep_expired()
        resumed = [order for order in self._orders if order.status == "RESUMED" and order.resumed_at]
        if resumed:
            waited = sum((order.resumed_at - order.created_at).total_seconds() for order in resumed)
            average_hold_minutes = waited / len(resumed) / 60
        else:
            average_hold_minutes = 0.0
        return HoldStatistics(
            total=len(self._orders),
            held=sum(1 for order in self._orders if order.status == "HELD"),
            resumed=sum(1 for order in self._orders if order.status == "RESUMED"),
            expired=sum(1 for order in self._orders if order.status == "EXPIRED"),
            total_value=sum(order.total_amount for order in self._orders if order.status != "EXPIRED"),
            average_hold_minutes=average_hold_minutes,
        )

    def cleanup(self, days: int = 7) -> int:
        cutoff = self.clock.now() - timedelta(days=days)
        before = len(self._orders)
        self._orders = [order for order in self._orders if order.created_at > cutoff]
        removed = before - len(self._orders)
        self._save()
        return removed

    def export_orders(self) -> str:
        return json.dumps([order.model_dump(mode="json") for order in self._orders], indent=2)

    def import_orders(self, payload: str) -> int:
        try:
            incoming = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ImportDataError("Invalid order data") from exc
        if not isinstance(incoming, list):
            raise ImportDataError("Invalid order data")

        known = {order.id for order in self._orders}
        imported = 0
        for raw in incoming:
            try:
                order = HeldOrder.model_validate(raw)
            except PydanticValidationError:
                logger.warning("skipping malformed held order during import")
                continue
            if order.id in known:
                continue
            self._orders.append(order)
            known.add(order.id)
            imported += 1
        self._save()
        return imported
