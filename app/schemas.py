"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.records import (
    Metrics,
    Reading,
    SiteSummary,
    ensure_utc,
    format_timestamp,
    parse_timestamp,
)


class MetricsIn(BaseModel):
    temperature: float = Field(..., ge=-100, le=200)
    humidity: float = Field(..., ge=0, le=100)


class MetricsOut(BaseModel):
    temperature: float
    humidity: float


class TelemetryIn(BaseModel):
    """One inbound sensor reading."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    device_id: str = Field(..., alias="deviceId", min_length=1)
    site_id: str = Field(..., alias="siteId", min_length=1)
    ts: datetime = Field(..., description="ISO-8601 timestamp of the sample.")
    metrics: MetricsIn

    @field_validator("ts", mode="before")
    @classmethod
    def _require_iso_datetime(cls, value: Any) -> datetime:
        # Only full date-time strings; epoch numbers and bare dates are refused.
        if not isinstance(value, str):
            raise ValueError("ts must be an ISO-8601 date-time string")
        candidate = value.strip()
        if candidate.isdigit() or not any(sep in candidate for sep in ("T", "t", " ")):
            raise ValueError("ts must include a time of day")
        return parse_timestamp(candidate)

    def to_reading(self) -> Reading:
        return Reading(
            device_id=self.device_id,
            site_id=self.site_id,
            ts=ensure_utc(self.ts),
            metrics=Metrics(
                temperature=self.metrics.temperature,
                humidity=self.metrics.humidity,
            ),
        )


class IngestResponse(BaseModel):
    message: str
    count: int = Field(..., ge=0)


class ReadingOut(BaseModel):
    """Canonical reading shape returned by the latest-reading endpoint."""

    deviceId: str
    siteId: str
    ts: str
    metrics: MetricsOut

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingOut":
        return cls(
            deviceId=reading.device_id,
            siteId=reading.site_id,
            ts=format_timestamp(reading.ts),
            metrics=MetricsOut(
                temperature=reading.metrics.temperature,
                humidity=reading.metrics.humidity,
            ),
        )


class SiteSummaryOut(BaseModel):
    count: int = Field(..., ge=0)
    avgTemperature: float
    maxTemperature: float
    avgHumidity: float
    maxHumidity: float
    uniqueDevices: int = Field(..., ge=0)

    @classmethod
    def from_summary(cls, summary: SiteSummary) -> "SiteSummaryOut":
        return cls(**summary.to_payload())


class HealthResponse(BaseModel):
    status: str
    services: Dict[str, str] = Field(default_factory=dict)
    detail: Optional[str] = None
