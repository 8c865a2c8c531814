"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    return ensure_utc(parsed)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render ``value`` as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    rendered = ensure_utc(value).isoformat(timespec="milliseconds")
    return rendered.replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class Metrics:
    temperature: float
    humidity: float


@dataclass(frozen=True, slots=True)
class Reading:
    """A single sensor sample for a device. Never mutated once persisted."""

    device_id: str
    site_id: str
    ts: datetime
    metrics: Metrics

    def to_payload(self) -> Dict[str, Any]:
        """Canonical wire shape shared by the cache, the API and the store."""
        return {
            "deviceId": self.device_id,
            "siteId": self.site_id,
            "ts": format_timestamp(self.ts),
            "metrics": {
                "temperature": self.metrics.temperature,
                "humidity": self.metrics.humidity,
            },
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Reading":
        metrics = payload["metrics"]
        return cls(
            device_id=payload["deviceId"],
            site_id=payload["siteId"],
            ts=parse_timestamp(payload["ts"]),
            metrics=Metrics(
                temperature=float(metrics["temperature"]),
                humidity=float(metrics["humidity"]),
            ),
        )


class AlertReason(str, Enum):
    HIGH_TEMPERATURE = "HIGH_TEMPERATURE"
    HIGH_HUMIDITY = "HIGH_HUMIDITY"


@dataclass(frozen=True, slots=True)
class Alert:
    """A threshold breach for one reading. Built, maybe dispatched, then dropped."""

    device_id: str
    site_id: str
    ts: datetime
    reason: AlertReason
    value: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "siteId": self.site_id,
            "ts": format_timestamp(self.ts),
            "reason": self.reason.value,
            "value": self.value,
        }


@dataclass
class SiteSummary:
    """Windowed statistics for one site. The defaults are the empty-window summary."""

    count: int = 0
    avg_temperature: float = 0
    max_temperature: float = 0
    avg_humidity: float = 0
    max_humidity: float = 0
    unique_devices: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "avgTemperature": self.avg_temperature,
            "maxTemperature": self.max_temperature,
            "avgHumidity": self.avg_humidity,
            "maxHumidity": self.max_humidity,
            "uniqueDevices": self.unique_devices,
        }
