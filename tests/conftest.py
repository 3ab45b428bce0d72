from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from register_core.clock import ManualClock
from register_core.exceptions import ServerError, TransportError
from register_core.storage import MemoryStore
from register_core.sync_engine import OfflineSyncEngine


def server_error(message: str = "boom") -> ServerError:
    return ServerError(
        code="SERVER_ERROR",
        message=message,
        details=None,
        trace_id="trace-500",
        status_code=500,
    )


def transport_error() -> TransportError:
    return TransportError(
        code="TRANSPORT_ERROR",
        message="connection refused",
        details=None,
        trace_id=None,
        status_code=0,
    )


@dataclass
class FakeGateway:
    """In-memory server collaborator that records every call in order."""

    catalog: list[dict[str, Any]] = field(default_factory=list)
    healthy: bool = True
    failing_sales: set[str] = field(default_factory=set)
    failing_deltas: set[str] = field(default_factory=set)
    fail_everything: bool = False
    calls: list[tuple[str, str]] = field(default_factory=list)
    envelopes: list[dict[str, Any]] = field(default_factory=list)

    def submit_sale(self, envelope: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("sale", envelope["saleNumber"]))
        self.envelopes.append(envelope)
        if self.fail_everything or envelope["saleNumber"] in self.failing_sales:
            raise server_error()
        return {"id": f"srv-{envelope['saleNumber']}"}

    def submit_inventory_delta(self, envelope: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("delta", envelope["productId"]))
        self.envelopes.append(envelope)
        if self.fail_everything or envelope["productId"] in self.failing_deltas:
            raise server_error()
        return {"ok": True}

    def fetch_catalog(self, branch_id: str) -> list[dict[str, Any]]:
        self.calls.append(("catalog", branch_id))
        if self.fail_everything:
            raise transport_error()
        return self.catalog

    def health_probe(self) -> bool:
        self.calls.append(("probe", ""))
        return self.healthy


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def engine(store: MemoryStore, gateway: FakeGateway, clock: ManualClock) -> OfflineSyncEngine:
    return OfflineSyncEngine(store, gateway, clock, sale_delay_seconds=0, inventory_delay_seconds=0)


@pytest.fixture
def register_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("REGISTER_API_BASE_URL", "https://pos.example.com")
    monkeypatch.setenv("REGISTER_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("REGISTER_RETRIES", "0")
    monkeypatch.setenv("REGISTER_SALE_SYNC_DELAY_SECONDS", "0")
    monkeypatch.setenv("REGISTER_INVENTORY_SYNC_DELAY_SECONDS", "0")
