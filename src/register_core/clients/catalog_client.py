from __future__ import annotations

from typing import Any

from .base import BaseClient


class CatalogClient(BaseClient):
    def list_products(self, branch_id: str) -> list[dict[str, Any]]:
        data = self._request(
            "GET",
            "/api/products",
            params={"branchId": branch_id},
            module="catalog",
            operation="list_products",
        )
        if data is None:
            return []
        # the products route answers with either a bare list or {"products": [...]}
        if isinstance(data, dict):
            data = data.get("products", [])
        if not isinstance(data, list):
            raise ValueError("Expected product list response")
        return [item for item in data if isinstance(item, dict)]
