from __future__ import annotations

from dataclasses import dataclass

from ..http_client import HttpClient


@dataclass
class BaseClient:
    http: HttpClient
    register_id: str | None = None
    branch_id: str | None = None

    def _register_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.register_id:
            headers["X-Register-ID"] = self.register_id
        if self.branch_id:
            headers["X-Branch-ID"] = self.branch_id
        return headers

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        merged = {**self._register_headers(), **headers}
        return self.http.request(method, path, headers=merged, **kwargs)
