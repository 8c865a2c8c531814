"""Threshold evaluation and the dedup gate in front of the dispatcher."""

from __future__ import annotations

import logging
from typing import List

from models.records import Alert, AlertReason, Reading
from services.dispatcher import WebhookDispatcher
from storage.claims import ClaimStore, CoordinationUnavailable

logger = logging.getLogger(__name__)

TEMPERATURE_THRESHOLD = 50.0
HUMIDITY_THRESHOLD = 90.0


def evaluate_thresholds(reading: Reading) -> List[Alert]:
    """Return one candidate alert per breached threshold (strictly greater than)."""
    candidates: List[Alert] = []
    metrics = reading.metrics

    if metrics.temperature > TEMPERATURE_THRESHOLD:
        candidates.append(_alert(reading, AlertReason.HIGH_TEMPERATURE, metrics.temperature))

    if metrics.humidity > HUMIDITY_THRESHOLD:
        candidates.append(_alert(reading, AlertReason.HIGH_HUMIDITY, metrics.humidity))

    return candidates


def _alert(reading: Reading, reason: AlertReason, value: float) -> Alert:
    return Alert(
        device_id=reading.device_id,
        site_id=reading.site_id,
        ts=reading.ts,
        reason=reason,
        value=value,
    )


class AlertService:
    """Claims a suppression window per (device, reason) before dispatching."""

    def __init__(
        self,
        claims: ClaimStore,
        dispatcher: WebhookDispatcher,
        window_seconds: int = 60,
    ) -> None:
        self.claims = claims
        self.dispatcher = dispatcher
        self.window_seconds = window_seconds

    def check_and_dispatch(self, reading: Reading) -> List[Alert]:
        """Evaluate ``reading`` and hand every claimed alert to the dispatcher.

        Returns the alerts that won their claim.
        """
        claimed: List[Alert] = []
        for alert in evaluate_thresholds(reading):
            if self._claim(alert):
                self.dispatcher.submit(alert)
                claimed.append(alert)
        return claimed

    def _claim(self, alert: Alert) -> bool:
        context = {"device_id": alert.device_id, "reason": alert.reason.value}
        try:
            won = self.claims.claim_once(
                alert.device_id, alert.reason.value, self.window_seconds
            )
        except CoordinationUnavailable as exc:
            # Fail safe: an unreachable claim store suppresses the alert.
            logger.error(
                "Alert suppressed, claim store unavailable",
                extra={**context, "error": str(exc)},
            )
            return False

        if not won:
            logger.debug("Alert deduplicated: %s - %s", alert.device_id, alert.reason.value, extra=context)
        return won
