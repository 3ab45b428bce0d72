from __future__ import annotations

from typing import Any

from ..idempotency import idempotency_headers
from .base import BaseClient


class InventoryClient(BaseClient):
    def adjust(self, envelope: dict[str, Any]) -> dict[str, Any]:
        offline_id = envelope.get("offlineId")
        headers = idempotency_headers(offline_id) if offline_id else {}
        data = self._request(
            "POST",
            "/api/inventory/adjust",
            json_body=envelope,
            headers=headers,
            module="inventory",
            operation="adjust",
        )
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError("Expected inventory adjustment response to be a JSON object")
        return data
