from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta

from .cash_drawer import CashDrawerLedger
from .cash_validation import ensure_valid, validate_sale_amount
from .clients.gateway import HttpSyncGateway
from .clock import Clock, SystemClock
from .config import RegisterConfig
from .connectivity import ConnectivityMonitor
from .exceptions import DrawerAlreadyOpenError, DrawerNotOpenError, TransportError
from .idempotency import new_offline_id
from .models_cash import CashDrawerState
from .models_shift import SaleLine, SaleMetrics, Shift, ShiftReport
from .models_sync import (
    CheckoutResult,
    CheckoutSale,
    InventoryDelta,
    InventoryDeltaEnvelope,
    NewInventoryDelta,
    NewOfflineSale,
    OfflineSale,
    SaleEnvelope,
    envelope_payload,
)
from .order_hold import OrderHoldStore
from .shift_manager import ShiftManager
from .storage import JsonFileStore, StateStore
from .sync_engine import OfflineSyncEngine, SyncGateway
from .telemetry import TelemetryLogger, build_event

logger = logging.getLogger(__name__)

CASH = "CASH"


@dataclass
class RegisterSession:
    """Everything one register needs, owned explicitly instead of shared globally.

    Construct with :meth:`create`; one session per register.
    """

    config: RegisterConfig
    store: StateStore
    clock: Clock
    drawer: CashDrawerLedger
    shifts: ShiftManager
    holds: OrderHoldStore
    sync: OfflineSyncEngine
    monitor: ConnectivityMonitor
    telemetry: TelemetryLogger | None = None

    @classmethod
    def create(
        cls,
        config: RegisterConfig,
        store: StateStore | None = None,
        gateway: SyncGateway | None = None,
        clock: Clock | None = None,
        telemetry: TelemetryLogger | None = None,
    ) -> "RegisterSession":
        store = store or JsonFileStore(register_id=config.register_id, base_dir=config.data_dir)
        gateway = gateway or HttpSyncGateway.from_config(config)
        clock = clock or SystemClock()
        if telemetry is None and config.telemetry_enabled:
            telemetry = TelemetryLogger(app_name="register-core", enabled=True)
        tz = config.tz

        drawer = CashDrawerLedger(store, clock, tz=tz)
        shifts = ShiftManager(store, clock, tz=tz, grace_minutes=config.shift_grace_minutes)
        holds = OrderHoldStore(
            store,
            clock,
            max_held_orders=config.max_held_orders,
            default_hold_hours=config.hold_duration_hours,
        )
        sync = OfflineSyncEngine(
            store,
            gateway,
            clock,
            max_sync_attempts=config.max_sync_attempts,
            sale_delay_seconds=config.sale_sync_delay_seconds,
            inventory_delay_seconds=config.inventory_sync_delay_seconds,
            catalog_ttl=timedelta(hours=config.catalog_ttl_hours),
            storage_quota_bytes=config.storage_quota_bytes,
            telemetry=telemetry,
            register_id=config.register_id,
        )
        session = cls(
            config=config,
            store=store,
            clock=clock,
            drawer=drawer,
            shifts=shifts,
            holds=holds,
            sync=sync,
            monitor=ConnectivityMonitor(
                sync,
                probe_interval_seconds=config.probe_interval_seconds,
                sync_interval_seconds=config.sync_interval_seconds,
                housekeeping_interval_seconds=config.housekeeping_interval_seconds,
            ),
            telemetry=telemetry,
        )
        session.monitor.housekeeping = session.housekeeping
        return session

    # -- shift & drawer --------------------------------------------------

    def start_shift(self, cashier_id: str, branch: str, opening_balance: int) -> Shift:
        if self.drawer.is_open:
            raise DrawerAlreadyOpenError("Cash drawer is still open from a previous shift; end it first")
        shift = self.shifts.open(cashier_id, branch, opening_balance)
        self.drawer.open(opening_balance, cashier_id, shift_id=shift.id)
        return shift

    def end_shift(self, cashier_id: str, counted_amount: int | None = None) -> ShiftReport:
        if self.shifts.current() is None and self.drawer.is_open and self.shifts.history():
            # the watchdog force-closed the shift and left its drawer session running
            closed = self.shifts.history()[0]
        else:
            closed = self.shifts.close(counted_amount)
        if self.drawer.is_open:
            self.drawer.close(cashier_id, counted_amount)
        report = self.shifts.report(closed, self.drawer.transactions())
        self._emit("shift_closed", success=True, context={"status": closed.status})
        return report

    def cash_in(self, amount: int, description: str, cashier_id: str) -> CashDrawerState:
        state = self.drawer.record_cash_in(amount, description, cashier_id)
        self.shifts.record_cash_movement(amount, "IN")
        return state

    def cash_out(self, amount: int, description: str, cashier_id: str) -> CashDrawerState:
        state = self.drawer.record_cash_out(amount, description, cashier_id)
        self.shifts.record_cash_movement(amount, "OUT")
        return state

    def refund(self, amount: int, sale_number: str, payment_method: str, cashier_id: str) -> None:
        is_cash = payment_method.upper() == CASH
        if is_cash:
            self._require_cash_drawer()
            ensure_valid(validate_sale_amount(amount, sale_number))
        self.shifts.record_refund(amount)
        if is_cash:
            self.drawer.record_refund(amount, cashier_id, sale_number)

    def housekeeping(self) -> None:
        self.shifts.check_watchdog()
        self.holds.sweep_expired()

    def _require_cash_drawer(self) -> None:
        if not self.drawer.is_open:
            raise DrawerNotOpenError("Cash drawer must be open for cash payments")

    # -- checkout --------------------------------------------------------

    async def checkout(self, sale: CheckoutSale) -> CheckoutResult:
        """Record a completed sale locally, then hand it to the server or the offline queue."""
        is_cash = sale.payment_method.upper() == CASH
        if is_cash:
            self._require_cash_drawer()
            ensure_valid(validate_sale_amount(sale.total_amount, sale.sale_number))

        self.shifts.update_metrics(
            SaleMetrics(
                total_amount=sale.total_amount,
                payment_method=sale.payment_method.upper(),
                item_count=sum(item.quantity for item in sale.items),
                items=[
                    SaleLine(name=item.product_name, quantity=item.quantity, unit_price=item.unit_price)
                    for item in sale.items
                ],
            )
        )
        if is_cash:
            self.drawer.record_sale(sale.total_amount, sale.cashier_id, sale.sale_number)

        pending = NewOfflineSale.model_validate(sale.model_dump(exclude={"cashier_id"}))
        now = self.clock.now()
        offline_id = new_offline_id("offline", now)
        error: str | None = None
        if self.sync.is_online:
            envelope = envelope_payload(
                SaleEnvelope.from_sale(
                    OfflineSale(**pending.model_dump(), id=offline_id, created_at=now, updated_at=now)
                )
            )
            try:
                response = await asyncio.to_thread(self.sync.gateway.submit_sale, envelope)
            except Exception as exc:
                error = getattr(exc, "message", None) or str(exc) or type(exc).__name__
                self._note_failure(exc)
                logger.warning("sale %s could not be submitted, queueing offline: %s", sale.sale_number, exc)
            else:
                return CheckoutResult(
                    sale_number=sale.sale_number,
                    status="SYNCED",
                    offline_id=offline_id,
                    server_response=response,
                )

        queued = self.sync.queue_sale(pending, offline_id=offline_id)
        return CheckoutResult(sale_number=sale.sale_number, status="QUEUED", offline_id=queued.id, error=error)

    async def adjust_inventory(self, delta: NewInventoryDelta) -> InventoryDelta | None:
        """Submit a stock change; returns the queued delta when it had to be deferred."""
        offline_id = new_offline_id("inv", self.clock.now())
        if self.sync.is_online:
            record = InventoryDelta(**delta.model_dump(), id=offline_id, created_at=self.clock.now())
            try:
                await asyncio.to_thread(
                    self.sync.gateway.submit_inventory_delta,
                    envelope_payload(InventoryDeltaEnvelope.from_delta(record)),
                )
            except Exception as exc:
                self._note_failure(exc)
                logger.warning("inventory adjustment for %s deferred: %s", delta.product_ref, exc)
            else:
                return None
        return self.sync.queue_inventory_delta(delta, offline_id=offline_id)

    def _note_failure(self, exc: Exception) -> None:
        # no response at all means the server is unreachable
        if isinstance(exc, TransportError):
            self.sync.set_online(False)

    # -- lifecycle -------------------------------------------------------

    async def start(self) -> None:
        await self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()

    def _emit(self, name: str, *, success: bool, context: dict | None = None) -> None:
        if self.telemetry is None:
            return
        event = build_event(
            category="cash",
            name=name,
            module="session",
            action=name,
            register_id=self.config.register_id,
            success=success,
            context=context,
            now=self.clock.now(),
        )
        try:
            self.telemetry.emit(event)
        except OSError:
            logger.warning("telemetry sink unavailable, dropping %s event", name)
