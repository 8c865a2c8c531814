from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_TABLE_NAME_ENV = "TELEMETRY_TABLE_NAME"
_TABLE_PATH_ENV = "TELEMETRY_PERSISTENCE_PATH"
_REDIS_URL_ENV = "REDIS_URL"
_CACHE_TTL_ENV = "LATEST_CACHE_TTL_SECONDS"
_DEDUP_WINDOW_ENV = "ALERT_DEDUP_WINDOW_SECONDS"
_WEBHOOK_URL_ENV = "ALERT_WEBHOOK_URL"
_WEBHOOK_TIMEOUT_ENV = "ALERT_WEBHOOK_TIMEOUT_SECONDS"
_DISPATCH_WORKERS_ENV = "ALERT_DISPATCH_WORKERS"
_INGEST_TOKEN_ENV = "INGEST_TOKEN"
_MAX_PAYLOAD_ENV = "MAX_PAYLOAD_BYTES"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    table_name: str
    table_persistence_path: Optional[str]
    redis_url: Optional[str]
    cache_ttl_seconds: int
    dedup_window_seconds: int
    webhook_url: Optional[str]
    webhook_timeout_seconds: float
    dispatch_workers: int
    ingest_token: Optional[str]
    max_payload_bytes: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        table_name=_read_str_env(_TABLE_NAME_ENV, "telemetry"),
        table_persistence_path=_read_optional_env(_TABLE_PATH_ENV, "./tmp/telemetry.jsonl"),
        redis_url=_read_optional_env(_REDIS_URL_ENV, None),
        cache_ttl_seconds=_read_positive_int(_CACHE_TTL_ENV, 86400),
        dedup_window_seconds=_read_positive_int(_DEDUP_WINDOW_ENV, 60),
        webhook_url=_read_optional_env(_WEBHOOK_URL_ENV, None),
        webhook_timeout_seconds=_read_positive_float(_WEBHOOK_TIMEOUT_ENV, 5.0),
        dispatch_workers=_read_positive_int(_DISPATCH_WORKERS_ENV, 2),
        ingest_token=_read_optional_env(_INGEST_TOKEN_ENV, None),
        max_payload_bytes=_read_positive_int(_MAX_PAYLOAD_ENV, 1024 * 1024),
        log_level=_read_log_level("INFO"),
    )
