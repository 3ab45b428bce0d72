from __future__ import annotations

from typing import Any

from ..idempotency import idempotency_headers
from .base import BaseClient


class SalesClient(BaseClient):
    def submit_sale(self, envelope: dict[str, Any]) -> dict[str, Any]:
        offline_id = envelope.get("offlineId")
        headers = idempotency_headers(offline_id) if offline_id else {}
        data = self._request(
            "POST",
            "/api/sales",
            json_body=envelope,
            headers=headers,
            module="sales",
            operation="submit_sale",
        )
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError("Expected sale response to be a JSON object")
        return data
