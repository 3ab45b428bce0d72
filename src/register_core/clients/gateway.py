from __future__ import annotations

from typing import Any

from ..config import RegisterConfig
from ..http_client import HttpClient
from .catalog_client import CatalogClient
from .health import HealthClient
from .inventory_client import InventoryClient
from .sales_client import SalesClient


class HttpSyncGateway:
    """Server collaborator for the sync engine, backed by one pooled HttpClient."""

    def __init__(self, http: HttpClient, *, register_id: str | None = None) -> None:
        self.http = http
        self.sales = SalesClient(http=http, register_id=register_id)
        self.inventory = InventoryClient(http=http, register_id=register_id)
        self.catalog = CatalogClient(http=http, register_id=register_id)
        self.health = HealthClient(http=http, register_id=register_id)

    @classmethod
    def from_config(cls, config: RegisterConfig) -> "HttpSyncGateway":
        return cls(HttpClient(config=config), register_id=config.register_id)

    def submit_sale(self, envelope: dict[str, Any]) -> dict[str, Any]:
        return self.sales.submit_sale(envelope)

    def submit_inventory_delta(self, envelope: dict[str, Any]) -> dict[str, Any]:
        return self.inventory.adjust(envelope)

    def fetch_catalog(self, branch_id: str) -> list[dict[str, Any]]:
        return self.catalog.list_products(branch_id)

    def health_probe(self) -> bool:
        return self.health.probe()
