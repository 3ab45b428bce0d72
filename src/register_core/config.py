from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class RegisterConfig:
    env_name: str
    api_base_url: str
    register_id: str = "register-1"
    data_dir: str | None = None
    timezone: str = "UTC"
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 3
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    max_sync_attempts: int = 5
    sale_sync_delay_seconds: float = 0.5
    inventory_sync_delay_seconds: float = 0.2
    sync_interval_seconds: float = 120.0
    probe_interval_seconds: float = 30.0
    housekeeping_interval_seconds: float = 5.0
    catalog_ttl_hours: int = 24
    retention_days: int = 7
    max_held_orders: int = 50
    hold_duration_hours: int = 24
    shift_grace_minutes: int = 30
    storage_quota_bytes: int = 5 * 1024 * 1024
    telemetry_enabled: bool = False

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def _positive_float(name: str, default: str) -> float:
    value = _read_float(name, default)
    _validate(value > 0, f"Invalid {name}: expected > 0, got {value}")
    return value


def _non_negative_float(name: str, default: str) -> float:
    value = _read_float(name, default)
    _validate(value >= 0, f"Invalid {name}: expected >= 0, got {value}")
    return value


def _int_at_least(name: str, default: str, minimum: int) -> int:
    value = _read_int(name, default)
    _validate(value >= minimum, f"Invalid {name}: expected >= {minimum}, got {value}")
    return value


def load_config(env_file: str | None = None) -> RegisterConfig:
    """Load register config from the environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("REGISTER_ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = (
        (os.getenv(f"REGISTER_API_BASE_URL_{env_key}") or "").strip()
        or (os.getenv("REGISTER_API_BASE_URL") or "").strip()
    )

    timeout_seconds = _positive_float("REGISTER_TIMEOUT_SECONDS", "10")
    connect_timeout_seconds = _positive_float(
        "REGISTER_CONNECT_TIMEOUT_SECONDS", str(min(timeout_seconds, 5.0))
    )
    read_timeout_seconds = _positive_float(
        "REGISTER_READ_TIMEOUT_SECONDS",
        str(max(timeout_seconds, connect_timeout_seconds)),
    )

    retries = _int_at_least("REGISTER_RETRIES", "3", 0)
    retry_backoff_seconds = _non_negative_float("REGISTER_RETRY_BACKOFF_SECONDS", "0.3")
    max_connections = _int_at_least("REGISTER_MAX_CONNECTIONS", "20", 1)
    verify_ssl = _coerce_bool(os.getenv("REGISTER_VERIFY_SSL"), True)

    max_sync_attempts = _int_at_least("REGISTER_MAX_SYNC_ATTEMPTS", "5", 1)
    sale_sync_delay_seconds = _non_negative_float("REGISTER_SALE_SYNC_DELAY_SECONDS", "0.5")
    inventory_sync_delay_seconds = _non_negative_float("REGISTER_INVENTORY_SYNC_DELAY_SECONDS", "0.2")
    sync_interval_seconds = _positive_float("REGISTER_SYNC_INTERVAL_SECONDS", "120")
    probe_interval_seconds = _positive_float("REGISTER_PROBE_INTERVAL_SECONDS", "30")
    housekeeping_interval_seconds = _positive_float("REGISTER_HOUSEKEEPING_INTERVAL_SECONDS", "5")
    catalog_ttl_hours = _int_at_least("REGISTER_CATALOG_TTL_HOURS", "24", 1)
    retention_days = _int_at_least("REGISTER_RETENTION_DAYS", "7", 1)
    max_held_orders = _int_at_least("REGISTER_MAX_HELD_ORDERS", "50", 1)
    hold_duration_hours = _int_at_least("REGISTER_HOLD_DURATION_HOURS", "24", 1)
    shift_grace_minutes = _int_at_least("REGISTER_SHIFT_GRACE_MINUTES", "30", 0)
    storage_quota_bytes = _int_at_least("REGISTER_STORAGE_QUOTA_BYTES", str(5 * 1024 * 1024), 1)
    telemetry_enabled = _coerce_bool(os.getenv("REGISTER_TELEMETRY_ENABLED"), False)

    register_id = (os.getenv("REGISTER_ID") or "register-1").strip()
    data_dir = (os.getenv("REGISTER_DATA_DIR") or "").strip() or None
    timezone_name = (os.getenv("REGISTER_TIMEZONE") or "UTC").strip()
    try:
        ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Invalid REGISTER_TIMEZONE: unknown zone {timezone_name!r}") from exc

    values = {"REGISTER_API_BASE_URL": api_base_url, "REGISTER_ID": register_id}
    _require(values, ["REGISTER_API_BASE_URL", "REGISTER_ID"])

    return RegisterConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        register_id=register_id,
        data_dir=data_dir,
        timezone=timezone_name,
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        max_connections=max_connections,
        verify_ssl=verify_ssl,
        max_sync_attempts=max_sync_attempts,
        sale_sync_delay_seconds=sale_sync_delay_seconds,
        inventory_sync_delay_seconds=inventory_sync_delay_seconds,
        sync_interval_seconds=sync_interval_seconds,
        probe_interval_seconds=probe_interval_seconds,
        housekeeping_interval_seconds=housekeeping_interval_seconds,
        catalog_ttl_hours=catalog_ttl_hours,
        retention_days=retention_days,
        max_held_orders=max_held_orders,
        hold_duration_hours=hold_duration_hours,
        shift_grace_minutes=shift_grace_minutes,
        storage_quota_bytes=storage_quota_bytes,
        telemetry_enabled=telemetry_enabled,
    )
