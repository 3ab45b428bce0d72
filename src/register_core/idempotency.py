from __future__ import annotations

import secrets
import string
from datetime import datetime

_ALPHABET = string.ascii_uppercase + string.digits

IDEMPOTENCY_HEADER = "Idempotency-Key"


def _epoch_ms(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def new_local_id(prefix: str, now: datetime, *, suffix_length: int = 6) -> str:
    """Register-local identifier such as ``TXN-1718000000000-4K2Q9Z``."""
    return f"{prefix}-{_epoch_ms(now)}-{_random_suffix(suffix_length)}"


def new_offline_id(prefix: str, now: datetime) -> str:
    return f"{prefix}_{_epoch_ms(now)}_{_random_suffix(9).lower()}"


def idempotency_headers(offline_id: str) -> dict[str, str]:
    return {IDEMPOTENCY_HEADER: offline_id}
