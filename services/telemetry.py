"""Ingestion, latest-reading and site-summary orchestration."""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional, Sequence

from datastore.telemetry_table import MockTelemetryTable, PersistenceError, build_default_table
from models.records import Reading, SiteSummary
from services.aggregator import Aggregator
from services.alerts import AlertService
from services.dispatcher import build_default_dispatcher
from settings import get_settings
from storage.cache import CacheUnavailable, LatestCache, build_default_cache
from storage.claims import build_default_claims

logger = logging.getLogger(__name__)


class IngestionAborted(PersistenceError):
    """A batch stopped at its first persistence failure.

    ``accepted`` readings before the failure stay persisted.
    """

    def __init__(self, accepted: int, device_id: str, cause: PersistenceError) -> None:
        super().__init__(f"Failed to persist telemetry for device {device_id}: {cause}")
        self.accepted = accepted
        self.device_id = device_id


class TelemetryService:
    """Coordinates the durable table, the latest-value cache and alerting."""

    def __init__(
        self,
        table: MockTelemetryTable,
        cache: LatestCache,
        alerts: AlertService,
        aggregator: Aggregator,
    ) -> None:
        self.table = table
        self.cache = cache
        self.alerts = alerts
        self.aggregator = aggregator

    def ingest(self, readings: Sequence[Reading]) -> int:
        """Persist, cache and evaluate each reading in order.

        Stops at the first persistence failure by raising ``IngestionAborted``;
        earlier readings are not rolled back. Cache and alert failures are
        logged and never stop the batch.
        """
        logger.info("Ingesting %d telemetry reading(s)", len(readings), extra={"count": len(readings)})

        for accepted, reading in enumerate(readings):
            try:
                self.table.insert(reading)
            except PersistenceError as exc:
                logger.error(
                    "Failed to process telemetry for device %s",
                    reading.device_id,
                    extra={"device_id": reading.device_id, "accepted": accepted, "error": str(exc)},
                )
                raise IngestionAborted(accepted, reading.device_id, exc) from exc

            self._refresh_cache(reading)
            self._evaluate_alerts(reading)
            logger.debug(
                "Processed telemetry for device %s",
                reading.device_id,
                extra={"device_id": reading.device_id, "site_id": reading.site_id},
            )

        return len(readings)

    def get_latest(self, device_id: str) -> Optional[Reading]:
        """Cache-aside lookup of the device's latest reading."""
        try:
            cached = self.cache.get(device_id)
        except CacheUnavailable as exc:
            logger.warning(
                "Cache read failed, falling back to the table",
                extra={"device_id": device_id, "error": str(exc)},
            )
            cached = None

        if cached is not None:
            return cached

        reading = self.table.find_latest(device_id)
        if reading is None:
            return None

        self._refresh_cache(reading)
        return reading

    def get_site_summary(self, site_id: str, start: datetime, end: datetime) -> SiteSummary:
        logger.info(
            "Aggregating data for site %s from %s to %s",
            site_id,
            start.isoformat(),
            end.isoformat(),
            extra={"site_id": site_id},
        )
        return self.aggregator.summarize(self.table.query_site(site_id, start, end))

    def _refresh_cache(self, reading: Reading) -> None:
        try:
            self.cache.set(reading)
        except CacheUnavailable as exc:
            logger.warning(
                "Cache write failed",
                extra={"device_id": reading.device_id, "error": str(exc)},
            )

    def _evaluate_alerts(self, reading: Reading) -> None:
        try:
            self.alerts.check_and_dispatch(reading)
        except Exception as exc:  # noqa: BLE001 - alerting never fails ingestion
            logger.exception(
                "Alert evaluation failed",
                extra={"device_id": reading.device_id, "error": str(exc)},
            )


@lru_cache
def build_default_service() -> TelemetryService:
    """Factory that wires the service with the configured collaborators."""
    settings = get_settings()
    alerts = AlertService(
        claims=build_default_claims(),
        dispatcher=build_default_dispatcher(),
        window_seconds=settings.dedup_window_seconds,
    )
    return TelemetryService(
        table=build_default_table(),
        cache=build_default_cache(),
        alerts=alerts,
        aggregator=Aggregator(),
    )
