from __future__ import annotations

import asyncio

from conftest import FakeGateway

from register_core.clock import ManualClock
from register_core.models_sync import NewInventoryDelta, NewOfflineSale, OfflineSaleItem
from register_core.storage import MemoryStore
from register_core.sync_engine import CACHE_VERSION, OfflineSyncEngine


def _sale(number: str, total: int = 1_500) -> NewOfflineSale:
    return NewOfflineSale(
        sale_number=number,
        items=[
            OfflineSaleItem(
                product_ref="p-1",
                product_name="Bread",
                quantity=1,
                unit_price=total,
                total_price=total,
            )
        ],
        subtotal=total,
        total_amount=total,
        payment_method="CASH",
        branch_id="branch-1",
        cashier_name="Amina",
    )


def _delta(product: str, change: int = -1) -> NewInventoryDelta:
    return NewInventoryDelta(product_ref=product, branch_id="branch-1", quantity_change=change, reason="SALE")


def test_queueing_never_touches_the_network(engine: OfflineSyncEngine, gateway: FakeGateway) -> None:
    engine.set_online(False)
    sale = engine.queue_sale(_sale("S-1"))
    delta = engine.queue_inventory_delta(_delta("p-1"))

    assert sale.id.startswith("offline_")
    assert delta.id.startswith("inv_")
    assert sale.synced is False and sale.sync_attempts == 0
    assert gateway.calls == []
    status = engine.sync_status()
    assert status.is_online is False
    assert status.pending_sales_count == 1
    assert status.pending_inventory_delta_count == 1


def test_offline_pass_is_skipped(engine: OfflineSyncEngine, gateway: FakeGateway) -> None:
    engine.set_online(False)
    engine.queue_sale(_sale("S-1"))

    result = asyncio.run(engine.trigger_sync())

    assert result.skipped is True
    assert result.reason == "offline"
    assert gateway.calls == []


def test_three_sales_third_fails(engine: OfflineSyncEngine, gateway: FakeGateway) -> None:
    engine.set_online(False)
    for number in ("S-1", "S-2", "S-3"):
        engine.queue_sale(_sale(number))
    gateway.failing_sales.add("S-3")
    engine.set_online(True)

    result = asyncio.run(engine.trigger_sync())

    assert (result.sales_attempted, result.sales_synced, result.failed) == (3, 2, 1)
    status = engine.sync_status()
    assert status.pending_sales_count == 1
    pending = engine.pending_sales()
    assert [sale.sale_number for sale in pending] == ["S-3"]
    assert pending[0].sync_attempts == 1
    assert pending[0].sync_error == "boom"
    assert status.last_sync_time is not None
    assert status.sync_error is None


def test_sales_drain_before_deltas_in_queue_order(engine: OfflineSyncEngine, gateway: FakeGateway) -> None:
    engine.queue_inventory_delta(_delta("p-9"))
    engine.queue_sale(_sale("S-1"))
    engine.queue_inventory_delta(_delta("p-8"))
    engine.queue_sale(_sale("S-2"))

    asyncio.run(engine.trigger_sync())

    assert gateway.calls == [("sale", "S-1"), ("sale", "S-2"), ("delta", "p-9"), ("delta", "p-8")]
    assert engine.pending_sales() == []
    assert engine.pending_inventory_deltas() == []


def test_envelopes_carry_offline_id_and_created_at(engine: OfflineSyncEngine, gateway: FakeGateway, clock: ManualClock) -> None:
    queued = engine.queue_sale(_sale("S-1"))
    delta = engine.queue_inventory_delta(_delta("p-1", -2))
    clock.advance(hours=1)

    asyncio.run(engine.trigger_sync())

    sale_envelope, delta_envelope = gateway.envelopes
    assert sale_envelope["offlineId"] == queued.id
    assert sale_envelope["createdAt"].startswith("2024-01-01T09:00:00")
    assert sale_envelope["items"][0]["productId"] == "p-1"
    assert "customerId" not in sale_envelope
    assert delta_envelope["offlineId"] == delta.id
    assert delta_envelope["quantityChange"] == -2


def test_retry_cap_leaves_item_pending_and_skipped(engine: OfflineSyncEngine, gateway: FakeGateway) -> None:
    engine.queue_sale(_sale("S-1"))
    gateway.fail_everything = True

    for _ in range(5):
        asyncio.run(engine.trigger_sync())
    assert engine.pending_sales()[0].sync_attempts == 5
    gateway.calls.clear()

    result = asyncio.run(engine.trigger_sync())

    assert gateway.calls == []
    assert result.exhausted == 1
    sale = engine.pending_sales()[0]
    assert sale.synced is False
    assert sale.sync_attempts == 5
    assert engine.sync_status().exhausted_sales_count == 1


def test_single_flight(engine: OfflineSyncEngine, gateway: FakeGateway) -> None:
    engine.queue_sale(_sale("S-1"))

    async def run_two():
        return await asyncio.gather(engine.trigger_sync(), engine.trigger_sync())

    first, second = asyncio.run(run_two())

    assert first.sales_synced == 1
    assert second.skipped is True
    assert second.reason == "in_progress"
    assert gateway.calls == [("sale", "S-1")]
    assert engine.sync_in_progress is False


def test_connectivity_edges(engine: OfflineSyncEngine, gateway: FakeGateway, clock: ManualClock) -> None:
    assert engine.set_online(True) is False
    assert engine.set_online(False) is False
    assert engine.sync_status().last_online_time == clock.now()
    assert engine.set_online(False) is False
    assert engine.set_online(True) is True

    gateway.healthy = False
    assert asyncio.run(engine.check_connection()) is False
    assert engine.is_online is False
    gateway.healthy = True
    assert asyncio.run(engine.check_connection()) is True


def test_catalog_cache_ttl_and_search(engine: OfflineSyncEngine, gateway: FakeGateway, clock: ManualClock) -> None:
    gateway.catalog = [
        {
            "id": "p-1",
            "name": "White Bread",
            "sku": "BRD-1",
            "barcode": "6001",
            "category": "Bakery",
            "price": 120,
            "stock": {"branchId": "branch-1", "quantity": 4},
        },
        {
            "id": "p-2",
            "name": "Milk 500ml",
            "sku": "MLK-5",
            "category": "Dairy",
            "price": 65,
            "stock": {"branchId": "branch-2", "quantity": 9},
        },
        {"name": "no id"},
    ]

    assert asyncio.run(engine.cache_catalog("branch-1")) == 2
    assert [product.id for product in engine.search_cached("bread")] == ["p-1"]
    assert [product.id for product in engine.search_cached("6001")] == ["p-1"]
    assert engine.search_cached("dairy", branch_id="branch-1") == []
    assert engine.cached_products()[0].cached_at == clock.now()

    clock.advance(hours=24)
    assert engine.cached_products() == []


def test_catalog_version_mismatch_empties_cache(engine: OfflineSyncEngine, gateway: FakeGateway, store: MemoryStore) -> None:
    gateway.catalog = [{"id": "p-1", "name": "Tea"}]
    asyncio.run(engine.cache_catalog("branch-1"))
    assert store.load("catalog_version") == CACHE_VERSION

    store.save("catalog_version", "0.9.0")

    assert engine.cached_products() == []


def test_catalog_failure_and_offline_return_zero(engine: OfflineSyncEngine, gateway: FakeGateway) -> None:
    gateway.fail_everything = True
    assert asyncio.run(engine.refresh_cache("branch-1")) == 0
    engine.set_online(False)
    gateway.calls.clear()
    assert asyncio.run(engine.cache_catalog("branch-1")) == 0
    assert gateway.calls == []


def test_cleanup_keeps_unsynced_and_recent(engine: OfflineSyncEngine, gateway: FakeGateway, clock: ManualClock) -> None:
    engine.queue_sale(_sale("S-old"))
    engine.queue_sale(_sale("S-stuck"))
    gateway.failing_sales.add("S-stuck")
    asyncio.run(engine.trigger_sync())
    clock.advance(days=8)
    engine.queue_sale(_sale("S-new"))
    asyncio.run(engine.trigger_sync())

    assert engine.cleanup_old_data(7) == 1
    assert [sale.sale_number for sale in engine.sales()] == ["S-stuck", "S-new"]


def test_storage_usage_and_clear(engine: OfflineSyncEngine) -> None:
    assert engine.storage_usage().used == 0
    engine.queue_sale(_sale("S-1"))

    usage = engine.storage_usage()
    assert usage.used > 0
    assert usage.available == 5 * 1024 * 1024
    assert 0 < usage.percentage < 1

    engine.clear_offline_data()
    assert engine.sales() == []
    assert engine.storage_usage().used == 0


def test_queue_survives_restart(store: MemoryStore, gateway: FakeGateway, clock: ManualClock) -> None:
    first = OfflineSyncEngine(store, gateway, clock, sale_delay_seconds=0)
    first.queue_sale(_sale("S-1"))
    gateway.fail_everything = True
    asyncio.run(first.trigger_sync())

    second = OfflineSyncEngine(store, gateway, clock, sale_delay_seconds=0)
    pending = second.pending_sales()
    assert [sale.sale_number for sale in pending] == ["S-1"]
    assert pending[0].sync_attempts == 1
    assert pending[0].last_sync_attempt == clock.now()


def test_unreadable_queue_entries_are_dropped(gateway: FakeGateway, clock: ManualClock) -> None:
    store = MemoryStore(data={"pending_sales": '[{"sale_number": "broken"}]'})
    engine = OfflineSyncEngine(store, gateway, clock)
    assert engine.sales() == []


def test_status_exposes_attempt_counts(engine: OfflineSyncEngine, gateway: FakeGateway, clock: ManualClock) -> None:
    engine.queue_inventory_delta(_delta("p-1"))
    gateway.failing_deltas.add("p-1")
    asyncio.run(engine.trigger_sync())
    clock.advance(minutes=2)
    asyncio.run(engine.trigger_sync())

    delta = engine.pending_inventory_deltas()[0]
    assert delta.sync_attempts == 2
    assert delta.last_sync_attempt == clock.now()
    assert engine.sync_status().pending_inventory_delta_count == 1


def test_unexpected_submit_error_stays_with_its_item(engine: OfflineSyncEngine, gateway: FakeGateway) -> None:
    engine.queue_sale(_sale("S-1"))
    engine.queue_sale(_sale("S-2"))
    engine.queue_inventory_delta(_delta("p-1"))
    accept = gateway.submit_sale

    def malformed_reply(envelope):
        if envelope["saleNumber"] == "S-1":
            gateway.calls.append(("sale", "S-1"))
            raise ValueError("Expected sale response to be a JSON object")
        return accept(envelope)

    gateway.submit_sale = malformed_reply

    result = asyncio.run(engine.trigger_sync())

    assert gateway.calls == [("sale", "S-1"), ("sale", "S-2"), ("delta", "p-1")]
    assert (result.sales_attempted, result.sales_synced, result.deltas_synced) == (2, 1, 1)
    stuck = engine.pending_sales()
    assert [sale.sale_number for sale in stuck] == ["S-1"]
    assert stuck[0].sync_attempts == 1
    assert stuck[0].sync_error == "Expected sale response to be a JSON object"
    assert engine.sync_status().sync_error is None

    for _ in range(5):
        asyncio.run(engine.trigger_sync())

    assert engine.pending_sales()[0].sync_attempts == 5
    assert gateway.calls.count(("sale", "S-1")) == 5


def test_queued_delta_can_reuse_offline_id(engine: OfflineSyncEngine) -> None:
    queued = engine.queue_inventory_delta(_delta("p-1"), offline_id="inv_1_fixed")
    assert queued.id == "inv_1_fixed"
    assert engine.pending_inventory_deltas()[0].id == "inv_1_fixed"
