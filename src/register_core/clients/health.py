from __future__ import annotations

import logging

from ..exceptions import ApiError
from .base import BaseClient

logger = logging.getLogger(__name__)


class HealthClient(BaseClient):
    def probe(self) -> bool:
        """HEAD the health route with no retries; any failure means offline."""
        try:
            self._request("HEAD", "/api/health", retries=0, module="health", operation="probe")
        except ApiError as exc:
            logger.debug("health probe failed: %s", exc.code)
            return False
        return True
