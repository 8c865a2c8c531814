"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, status

from app.schemas import (
    HealthResponse,
    IngestResponse,
    ReadingOut,
    SiteSummaryOut,
    TelemetryIn,
)
from services.telemetry import IngestionAborted, TelemetryService, build_default_service
from settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


def get_service() -> TelemetryService:
    return build_default_service()


def require_ingest_token(authorization: Optional[str] = Header(None)) -> None:
    """Bearer-token check, active only when ``INGEST_TOKEN`` is configured."""
    expected = get_settings().ingest_token
    if not expected:
        return

    if not authorization:
        logger.warning("Missing Authorization header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
        )

    token = authorization.removeprefix("Bearer ").strip()
    if token != expected:
        logger.warning("Invalid token attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization token",
        )


@router.post(
    "/telemetry",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    summary="Ingest one telemetry reading or an ordered batch.",
    dependencies=[Depends(require_ingest_token)],
)
def ingest_telemetry(
    payload: Union[List[TelemetryIn], TelemetryIn] = Body(...),
    service: TelemetryService = Depends(get_service),
) -> IngestResponse:
    items = payload if isinstance(payload, list) else [payload]
    if not items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one telemetry reading is required",
        )
    logger.info("Received %d telemetry reading(s)", len(items), extra={"count": len(items)})

    try:
        count = service.ingest([item.to_reading() for item in items])
    except IngestionAborted as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": str(exc), "count": exc.accepted},
        ) from exc

    return IngestResponse(message="Telemetry ingested successfully", count=count)


@router.get(
    "/devices/{device_id}/latest",
    response_model=ReadingOut,
    summary="Latest reading ingested for a device.",
)
def get_latest(
    device_id: str,
    service: TelemetryService = Depends(get_service),
) -> ReadingOut:
    logger.info("Fetching latest data for device %s", device_id, extra={"device_id": device_id})
    reading = service.get_latest(device_id)
    if reading is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No data found for device {device_id}",
        )
    return ReadingOut.from_reading(reading)


@router.get(
    "/sites/{site_id}/summary",
    response_model=SiteSummaryOut,
    summary="Aggregate statistics for a site over an inclusive time window.",
)
def get_site_summary(
    site_id: str,
    start: datetime = Query(..., alias="from", description="ISO-8601 window start."),
    end: datetime = Query(..., alias="to", description="ISO-8601 window end."),
    service: TelemetryService = Depends(get_service),
) -> SiteSummaryOut:
    summary = service.get_site_summary(site_id, start, end)
    return SiteSummaryOut.from_summary(summary)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
def healthcheck(service: TelemetryService = Depends(get_service)) -> HealthResponse:
    services = {
        "datastore": "up" if service.table.ping() else "down",
        "cache": "up" if service.cache.ping() else "down",
        "coordination": "up" if service.alerts.claims.ping() else "down",
    }
    overall = "ok" if all(state == "up" for state in services.values()) else "degraded"
    return HealthResponse(status=overall, services=services)
