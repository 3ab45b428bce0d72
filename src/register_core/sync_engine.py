from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import Any, Callable, Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .clock import Clock, SystemClock
from .exceptions import ApiError
from .idempotency import new_offline_id
from .logging import log_json
from .models_sync import (
    CatalogProduct,
    InventoryDelta,
    InventoryDeltaEnvelope,
    NewInventoryDelta,
    NewOfflineSale,
    OfflineSale,
    SaleEnvelope,
    StorageUsage,
    SyncPassResult,
    SyncStatus,
    envelope_payload,
)
from .storage import StateStore
from .telemetry import TelemetryLogger, build_event

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0.0"
MAX_SYNC_ATTEMPTS = 5

CATALOG_NS = "catalog"
CATALOG_VERSION_NS = "catalog_version"
SALES_NS = "pending_sales"
INVENTORY_NS = "pending_inventory"
STATUS_NS = "sync_status"
ALL_NAMESPACES = (CATALOG_NS, CATALOG_VERSION_NS, SALES_NS, INVENTORY_NS, STATUS_NS)

QueuedItem = TypeVar("QueuedItem", OfflineSale, InventoryDelta)


class SyncGateway(Protocol):
    """Server collaborator. Every method may raise at any time, usually ``ApiError``."""

    def submit_sale(self, envelope: dict[str, Any]) -> dict[str, Any]: ...

    def submit_inventory_delta(self, envelope: dict[str, Any]) -> dict[str, Any]: ...

    def fetch_catalog(self, branch_id: str) -> list[dict[str, Any]]: ...

    def health_probe(self) -> bool: ...


class OfflineSyncEngine:
    """Local queue of offline-originated sales and inventory deltas.

    Queueing never touches the network. ``trigger_sync`` drains the queues
    against the gateway: all sales first, then inventory deltas, each in
    enqueue order. Items that keep failing stay queued and visible once they
    reach ``max_sync_attempts``; nothing is dropped.
    """

    def __init__(
        self,
        store: StateStore,
        gateway: SyncGateway,
        clock: Clock | None = None,
        *,
        max_sync_attempts: int = MAX_SYNC_ATTEMPTS,
        sale_delay_seconds: float = 0.5,
        inventory_delay_seconds: float = 0.2,
        catalog_ttl: timedelta = timedelta(hours=24),
        storage_quota_bytes: int = 5 * 1024 * 1024,
        telemetry: TelemetryLogger | None = None,
        register_id: str | None = None,
        online: bool = True,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.max_sync_attempts = max_sync_attempts
        self.sale_delay_seconds = sale_delay_seconds
        self.inventory_delay_seconds = inventory_delay_seconds
        self.catalog_ttl = catalog_ttl
        self.storage_quota_bytes = storage_quota_bytes
        self.telemetry = telemetry
        self.register_id = register_id
        self._sync_in_progress = False
        self._status: dict[str, Any] = self._load_status()
        self._online = online

    # -- persistence -----------------------------------------------------

    def _load_status(self) -> dict[str, Any]:
        raw = self.store.load(STATUS_NS)
        return raw if isinstance(raw, dict) else {}

    def _update_status(self, **updates: Any) -> None:
        self._status.update(updates)
        self._status["is_online"] = self._online
        if not self.store.save(STATUS_NS, self._status):
            logger.error("sync status could not be persisted")

    def _load_items(self, namespace: str, model: type[QueuedItem]) -> list[QueuedItem]:
        raw = self.store.load(namespace)
        if not raw:
            return []
        items: list[QueuedItem] = []
        for entry in raw if isinstance(raw, list) else []:
            try:
                items.append(model.model_validate(entry))
            except PydanticValidationError:
                logger.error("dropping unreadable entry from %s: %r", namespace, entry)
        return items

    def _save_items(self, namespace: str, items: list[BaseModel]) -> bool:
        return self.store.save(namespace, [item.model_dump(mode="json") for item in items])

    def _replace_item(self, namespace: str, model: type[QueuedItem], updated: QueuedItem) -> None:
        items = self._load_items(namespace, model)
        for index, item in enumerate(items):
            if item.id == updated.id:
                items[index] = updated
                break
        if not self._save_items(namespace, items):
            logger.error("could not persist sync progress for %s", updated.id)

    # -- connectivity ----------------------------------------------------

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    def is_offline_mode(self) -> bool:
        return not self._online

    def set_online(self, online: bool) -> bool:
        """Record a connectivity change. Returns True on an offline -> online edge."""
        was_online = self._online
        self._online = online
        if was_online and not online:
            self._update_status(last_online_time=self.clock.now().isoformat())
            self._emit("connectivity", "went_offline", success=False)
        elif not was_online and online:
            self._update_status()
            self._emit("connectivity", "went_online", success=True)
        return online and not was_online

    async def check_connection(self) -> bool:
        """Run one liveness probe. Returns True when the probe flipped us back online."""
        try:
            healthy = bool(await asyncio.to_thread(self.gateway.health_probe))
        except ApiError as exc:
            logger.info("liveness probe failed: %s", exc)
            healthy = False
        return self.set_online(healthy)

    # -- catalog cache ---------------------------------------------------

    async def cache_catalog(self, branch_id: str) -> int:
        if not self._online:
            return 0
        try:
            records = await asyncio.to_thread(self.gateway.fetch_catalog, branch_id)
        except (ApiError, ValueError) as exc:
            logger.error("caching catalog for branch %s failed: %s", branch_id, exc)
            return 0

        now = self.clock.now()
        products: list[dict[str, Any]] = []
        for record in records:
            try:
                product = CatalogProduct.model_validate(record)
            except PydanticValidationError:
                logger.warning("skipping malformed catalog record %r", record.get("id") if isinstance(record, dict) else record)
                continue
            product = product.model_copy(update={"cached_at": now, "is_dirty": False})
            products.append(product.model_dump(mode="json"))

        if not self.store.save(CATALOG_NS, products):
            logger.error("catalog cache could not be persisted")
            return 0
        self.store.save(CATALOG_VERSION_NS, CACHE_VERSION)
        logger.info("cached %s products for offline use", len(products))
        return len(products)

    async def refresh_cache(self, branch_id: str) -> int:
        return await self.cache_catalog(branch_id)

    def cached_products(self) -> list[CatalogProduct]:
        if self.store.load(CATALOG_VERSION_NS) != CACHE_VERSION:
            return []
        raw = self.store.load(CATALOG_NS)
        if not isinstance(raw, list):
            return []
        now = self.clock.now()
        live: list[CatalogProduct] = []
        for entry in raw:
            try:
                product = CatalogProduct.model_validate(entry)
            except PydanticValidationError:
                continue
            if product.cached_at is not None and now - product.cached_at < self.catalog_ttl:
                live.append(product)
        return live

    def search_cached(self, query: str, branch_id: str | None = None) -> list[CatalogProduct]:
        needle = query.lower()
        results = []
        for product in self.cached_products():
            if branch_id and product.branch_id != branch_id:
                continue
            fields = (product.name, product.sku, product.barcode, product.category)
            if any(value and needle in value.lower() for value in fields):
                results.append(product)
        return results

    # -- queues ----------------------------------------------------------

    def queue_sale(self, sale: NewOfflineSale, *, offline_id: str | None = None) -> OfflineSale:
        now = self.clock.now()
        queued = OfflineSale(
            **sale.model_dump(),
            id=offline_id or new_offline_id("offline", now),
            created_at=now,
            updated_at=now,
        )
        sales = self.sales()
        sales.append(queued)
        if not self._save_items(SALES_NS, sales):
            logger.error("offline sale %s could not be persisted", queued.sale_number)
        logger.info("queued offline sale %s", queued.sale_number)
        return queued

    def queue_inventory_delta(self, delta: NewInventoryDelta, *, offline_id: str | None = None) -> InventoryDelta:
        now = self.clock.now()
        queued = InventoryDelta(**delta.model_dump(), id=offline_id or new_offline_id("inv", now), created_at=now)
        deltas = self.inventory_deltas()
        deltas.append(queued)
        if not self._save_items(INVENTORY_NS, deltas):
            logger.error("inventory delta %s could not be persisted", queued.id)
        return queued

    def sales(self) -> list[OfflineSale]:
        return self._load_items(SALES_NS, OfflineSale)

    def pending_sales(self) -> list[OfflineSale]:
        return [sale for sale in self.sales() if not sale.synced]

    def inventory_deltas(self) -> list[InventoryDelta]:
        return self._load_items(INVENTORY_NS, InventoryDelta)

    def pending_inventory_deltas(self) -> list[InventoryDelta]:
        return [delta for delta in self.inventory_deltas() if not delta.synced]

    # -- sync ------------------------------------------------------------

    async def trigger_sync(self) -> SyncPassResult:
        if not self._online:
            return SyncPassResult(skipped=True, reason="offline")
        if self._sync_in_progress:
            return SyncPassResult(skipped=True, reason="in_progress")

        self._sync_in_progress = True
        self._update_status(sync_in_progress=True)
        result = SyncPassResult()
        started = time.monotonic()
        try:
            await self._drain(
                SALES_NS,
                OfflineSale,
                lambda sale: envelope_payload(SaleEnvelope.from_sale(sale)),
                self.gateway.submit_sale,
                self.sale_delay_seconds,
                result,
                is_sale=True,
            )
            await self._drain(
                INVENTORY_NS,
                InventoryDelta,
                lambda delta: envelope_payload(InventoryDeltaEnvelope.from_delta(delta)),
                self.gateway.submit_inventory_delta,
                self.inventory_delay_seconds,
                result,
                is_sale=False,
            )
            self._update_status(last_sync_time=self.clock.now().isoformat(), sync_error=None)
        except Exception as exc:
            logger.exception("sync pass aborted")
            self._update_status(sync_error=str(exc) or type(exc).__name__)
            self._emit("error", "sync_pass_aborted", success=False, error_code=type(exc).__name__)
        finally:
            self._sync_in_progress = False
            self._update_status(sync_in_progress=False)

        log_json(logger, {"event": "sync_pass", **result.model_dump(), "failed": result.failed})
        self._emit(
            "sync",
            "sync_pass",
            success=result.failed == 0,
            duration_ms=int((time.monotonic() - started) * 1000),
            context={"synced": result.sales_synced + result.deltas_synced, "failed": result.failed},
        )
        return result

    async def _drain(
        self,
        namespace: str,
        model: type[QueuedItem],
        to_envelope: Callable[[QueuedItem], dict[str, Any]],
        submit: Callable[[dict[str, Any]], Any],
        delay_seconds: float,
        result: SyncPassResult,
        *,
        is_sale: bool,
    ) -> None:
        pending = [item for item in self._load_items(namespace, model) if not item.synced]
        for item in pending:
            if item.sync_attempts >= self.max_sync_attempts:
                logger.warning("skipping %s: max sync attempts reached", item.id)
                result.exhausted += 1
                continue

            item.sync_attempts += 1
            item.last_sync_attempt = self.clock.now()
            if is_sale:
                result.sales_attempted += 1
            else:
                result.deltas_attempted += 1
            try:
                await asyncio.to_thread(submit, to_envelope(item))
            except Exception as exc:
                item.sync_error = getattr(exc, "message", None) or str(exc) or type(exc).__name__
                logger.error("failed to sync %s (attempt %s): %s", item.id, item.sync_attempts, exc)
            else:
                item.synced = True
                item.sync_error = None
                if is_sale:
                    result.sales_synced += 1
                else:
                    result.deltas_synced += 1
                logger.info("synced %s", item.id)
            if isinstance(item, OfflineSale):
                item.updated_at = self.clock.now()
            self._replace_item(namespace, model, item)

            if delay_seconds:
                await asyncio.sleep(delay_seconds)

    # -- status & housekeeping ------------------------------------------

    def sync_status(self) -> SyncStatus:
        sales = self.pending_sales()
        deltas = self.pending_inventory_deltas()
        last_online = self._status.get("last_online_time")
        return SyncStatus(
            is_online=self._online,
            last_online_time=last_online or (self.clock.now() if self._online else None),
            pending_sales_count=len(sales),
            pending_inventory_delta_count=len(deltas),
            exhausted_sales_count=sum(1 for sale in sales if sale.sync_attempts >= self.max_sync_attempts),
            exhausted_inventory_delta_count=sum(
                1 for delta in deltas if delta.sync_attempts >= self.max_sync_attempts
            ),
            last_sync_time=self._status.get("last_sync_time"),
            sync_in_progress=self._sync_in_progress,
            sync_error=self._status.get("sync_error"),
        )

    def cleanup_old_data(self, days: int = 7) -> int:
        cutoff = self.clock.now() - timedelta(days=days)

        def keep(item: OfflineSale | InventoryDelta) -> bool:
            return not item.synced or item.created_at > cutoff

        sales = self.sales()
        deltas = self.inventory_deltas()
        kept_sales = [sale for sale in sales if keep(sale)]
        kept_deltas = [delta for delta in deltas if keep(delta)]
        self._save_items(SALES_NS, kept_sales)
        self._save_items(INVENTORY_NS, kept_deltas)
        removed = (len(sales) - len(kept_sales)) + (len(deltas) - len(kept_deltas))
        logger.info("cleaned up %s synced offline record(s)", removed)
        return removed

    def clear_offline_data(self) -> None:
        for namespace in ALL_NAMESPACES:
            self.store.delete(namespace)
        self._status = {}
        logger.warning("cleared all offline data")

    def storage_usage(self) -> StorageUsage:
        used = sum(self.store.size(namespace) for namespace in ALL_NAMESPACES)
        available = self.storage_quota_bytes
        return StorageUsage(used=used, available=available, percentage=used / available * 100 if available else 0.0)

    def _emit(
        self,
        category: str,
        name: str,
        *,
        success: bool | None = None,
        duration_ms: int | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        if self.telemetry is None:
            return
        event = build_event(
            category=category,
            name=name,
            module="sync_engine",
            action=name,
            register_id=self.register_id,
            success=success,
            duration_ms=duration_ms,
            error_code=error_code,
            context=context,
            now=self.clock.now(),
        )
        try:
            self.telemetry.emit(event)
        except OSError:
            logger.warning("telemetry sink unavailable, dropping %s event", name)

