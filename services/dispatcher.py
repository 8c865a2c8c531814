"""Webhook delivery for claimed alerts."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import lru_cache
from threading import Lock
from typing import Optional, Set

import httpx

from models.records import Alert
from settings import get_settings

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """A single webhook attempt failed."""


class WebhookDispatcher:
    """Posts each claimed alert once. Failures are logged, never raised.

    ``submit`` hands the attempt to a small thread pool so a slow webhook
    cannot hold up ingestion; ``deliver`` is the synchronous attempt itself.
    """

    def __init__(
        self,
        url: Optional[str],
        timeout: float = 5.0,
        workers: int = 2,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="alert-webhook")
        self._pending: Set[Future[bool]] = set()
        self._pending_lock = Lock()

    def submit(self, alert: Alert) -> Future[bool]:
        future = self.executor.submit(self.deliver, alert)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def deliver(self, alert: Alert) -> bool:
        """Make one delivery attempt. Returns ``True`` on a 2xx response."""
        context = {"device_id": alert.device_id, "reason": alert.reason.value}
        if not self.url:
            logger.warning("No webhook configured; alert not sent", extra=context)
            return False

        try:
            self._post(alert)
        except DeliveryError as exc:
            logger.error(
                "Failed to send alert for %s",
                alert.device_id,
                extra={**context, "error": str(exc)},
            )
            return False
        except Exception as exc:  # noqa: BLE001 - delivery never propagates
            logger.exception(
                "Failed to send alert for %s",
                alert.device_id,
                extra={**context, "error": str(exc) or type(exc).__name__},
            )
            return False

        logger.info("Alert sent: %s - %s", alert.device_id, alert.reason.value, extra=context)
        return True

    def wait_for_pending(self, timeout: Optional[float] = None) -> None:
        with self._pending_lock:
            pending = set(self._pending)
        wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        # Queued alerts are dropped; in-flight ones finish before the client closes.
        self.executor.shutdown(wait=True, cancel_futures=True)
        self._client.close()

    def _post(self, alert: Alert) -> None:
        assert self.url is not None
        try:
            response = self._client.post(
                self.url,
                json=alert.to_payload(),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise DeliveryError(f"timed out after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(f"webhook answered {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(str(exc) or type(exc).__name__) from exc

    def _forget(self, future: Future[bool]) -> None:
        with self._pending_lock:
            self._pending.discard(future)


@lru_cache
def build_default_dispatcher() -> WebhookDispatcher:
    settings = get_settings()
    return WebhookDispatcher(
        url=settings.webhook_url,
        timeout=settings.webhook_timeout_seconds,
        workers=settings.dispatch_workers,
    )
