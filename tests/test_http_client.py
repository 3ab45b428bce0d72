from __future__ import annotations

import asyncio
import json

import pytest
import requests
import responses

from register_core.clients.gateway import HttpSyncGateway
from register_core.clock import ManualClock
from register_core.config import RegisterConfig
from register_core.error_mapper import map_error
from register_core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TransportError,
    UnauthorizedError,
    ValidationError,
)
from register_core.http_client import TRACE_HEADER, HttpClient
from register_core.models_sync import NewOfflineSale, OfflineSaleItem
from register_core.storage import MemoryStore
from register_core.sync_engine import OfflineSyncEngine

BASE_URL = "https://pos.example.com"


def _config(**overrides) -> RegisterConfig:
    values = {"env_name": "test", "api_base_url": BASE_URL, "retries": 2, "retry_backoff_seconds": 0}
    values.update(overrides)
    return RegisterConfig(**values)


def _gateway(**overrides) -> HttpSyncGateway:
    return HttpSyncGateway(HttpClient(_config(**overrides)), register_id="till-1")


def _sale(number: str) -> NewOfflineSale:
    return NewOfflineSale(
        sale_number=number,
        items=[OfflineSaleItem(product_ref="p-1", product_name="Tea", quantity=1, unit_price=150, total_price=150)],
        subtotal=150,
        total_amount=150,
        payment_method="CASH",
        branch_id="branch-1",
        cashier_name="Amina",
    )


def test_error_mapper_classes() -> None:
    assert isinstance(map_error(401, {"code": "INVALID_TOKEN", "message": "bad"}, "t"), UnauthorizedError)
    assert isinstance(map_error(403, {"message": "no"}, "t"), ForbiddenError)
    assert isinstance(map_error(404, {}, "t"), NotFoundError)
    assert isinstance(map_error(422, {"message": "bad"}, "t"), ValidationError)
    assert isinstance(map_error(409, {"message": "duplicate"}, "t"), ConflictError)
    assert isinstance(map_error(429, {}, "t"), RateLimitError)
    server = map_error(503, {"error": "maintenance"}, "trace-503")
    assert isinstance(server, ServerError)
    assert server.message == "maintenance"
    assert "trace_id=trace-503" in str(server)


def test_error_mapper_prefers_payload_trace_id() -> None:
    err = map_error(400, {"code": "VALIDATION_ERROR", "trace_id": "from-body"}, "from-header")
    assert err.trace_id == "from-body"
    assert err.code == "VALIDATION_ERROR"


@responses.activate
def test_submit_sale_sends_idempotency_and_register_headers() -> None:
    responses.add(responses.POST, f"{BASE_URL}/api/sales", json={"id": "srv-1"}, status=201)
    gateway = _gateway()

    result = gateway.submit_sale({"offlineId": "offline_1_abc", "saleNumber": "S-1", "totalAmount": 500})

    assert result == {"id": "srv-1"}
    request = responses.calls[0].request
    assert request.headers["Idempotency-Key"] == "offline_1_abc"
    assert request.headers["X-Register-ID"] == "till-1"
    assert request.headers[TRACE_HEADER]
    assert json.loads(request.body)["saleNumber"] == "S-1"


@responses.activate
def test_plain_text_success_body_counts_as_accepted() -> None:
    responses.add(responses.POST, f"{BASE_URL}/api/sales", body="OK", status=200, content_type="text/plain")
    engine = OfflineSyncEngine(MemoryStore(), _gateway(), ManualClock(), sale_delay_seconds=0)
    engine.queue_sale(_sale("S-1"))
    engine.queue_sale(_sale("S-2"))

    result = asyncio.run(engine.trigger_sync())

    assert result.sales_synced == 2
    assert [json.loads(call.request.body)["saleNumber"] for call in responses.calls] == ["S-1", "S-2"]
    assert engine.pending_sales() == []
    assert engine.sync_status().sync_error is None


@responses.activate
def test_mutations_are_not_retried_on_server_error() -> None:
    responses.add(responses.POST, f"{BASE_URL}/api/inventory/adjust", json={"message": "down"}, status=500)
    gateway = _gateway()

    with pytest.raises(ServerError):
        gateway.submit_inventory_delta({"offlineId": "inv_1_abc", "productId": "p-1", "quantityChange": -1})

    assert len(responses.calls) == 1


@responses.activate
def test_reads_retry_on_server_error() -> None:
    responses.add(responses.GET, f"{BASE_URL}/api/products", json={"message": "down"}, status=502)
    responses.add(responses.GET, f"{BASE_URL}/api/products", json=[{"id": "p-1", "name": "Tea"}], status=200)
    gateway = _gateway()

    products = gateway.fetch_catalog("branch-1")

    assert products == [{"id": "p-1", "name": "Tea"}]
    assert len(responses.calls) == 2
    assert "branchId=branch-1" in responses.calls[1].request.url


@responses.activate
def test_fetch_catalog_accepts_wrapped_products() -> None:
    responses.add(
        responses.GET,
        f"{BASE_URL}/api/products",
        json={"products": [{"id": "p-1", "name": "Tea"}, "junk"]},
        status=200,
    )
    assert _gateway().fetch_catalog("branch-1") == [{"id": "p-1", "name": "Tea"}]


@responses.activate
def test_error_body_is_mapped_with_trace_header() -> None:
    responses.add(
        responses.POST,
        f"{BASE_URL}/api/sales",
        json={"code": "DUPLICATE_SALE", "message": "already recorded"},
        status=409,
        headers={TRACE_HEADER: "trace-409"},
    )
    with pytest.raises(ConflictError) as excinfo:
        _gateway().submit_sale({"offlineId": "offline_1_abc", "saleNumber": "S-1"})
    assert excinfo.value.code == "DUPLICATE_SALE"
    assert excinfo.value.trace_id == "trace-409"


@responses.activate
def test_connection_failure_raises_transport_error() -> None:
    responses.add(responses.POST, f"{BASE_URL}/api/sales", body=requests.ConnectionError("refused"))
    http = HttpClient(_config())

    with pytest.raises(TransportError) as excinfo:
        http.request("POST", "/api/sales", json_body={}, module="sales", operation="submit_sale")

    assert excinfo.value.status_code == 0
    assert http.last_operation is not None
    assert http.last_operation.result == "transport_error"


@responses.activate
def test_health_probe_true_on_success_false_on_failure() -> None:
    responses.add(responses.HEAD, f"{BASE_URL}/api/health", status=200)
    responses.add(responses.HEAD, f"{BASE_URL}/api/health", status=503)
    gateway = _gateway()

    assert gateway.health_probe() is True
    assert gateway.health_probe() is False
    assert len(responses.calls) == 2


@responses.activate
def test_health_probe_false_when_unreachable() -> None:
    responses.add(responses.HEAD, f"{BASE_URL}/api/health", body=requests.ConnectionError("down"))
    assert _gateway().health_probe() is False


@responses.activate
def test_before_and_after_hooks_run() -> None:
    responses.add(responses.GET, f"{BASE_URL}/api/products", json=[], status=200)
    seen: list[str] = []
    http = HttpClient(
        _config(),
        before_request=lambda method, url, context: seen.append(f"{method} {url}"),
        after_response=lambda response: seen.append(str(response.status_code)),
    )

    assert http.request("GET", "/api/products", params={"branchId": "b"}) == []
    assert seen == [f"GET {BASE_URL}/api/products", "200"]
