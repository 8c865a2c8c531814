import json
from typing import Any, Iterator, List

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.telemetry_table import MockTelemetryTable, PersistenceError, build_default_table
from services.aggregator import Aggregator
from services.alerts import AlertService
from services.dispatcher import WebhookDispatcher, build_default_dispatcher
from services.telemetry import TelemetryService, build_default_service
from settings import get_settings
from storage.cache import MemoryLatestCache, build_default_cache
from storage.claims import MemoryClaimStore, build_default_claims

WEBHOOK_URL = "https://hooks.example.test/alerts"


def _clear_factories() -> None:
    for factory in (
        build_default_service,
        build_default_dispatcher,
        build_default_table,
        build_default_cache,
        build_default_claims,
        get_settings,
    ):
        factory.cache_clear()


@pytest.fixture
def webhook_calls() -> List[dict]:
    return []


@pytest.fixture
def service(tmp_path, webhook_calls) -> Iterator[TelemetryService]:
    def handler(request: httpx.Request) -> httpx.Response:
        webhook_calls.append(json.loads(request.content))
        return httpx.Response(200)

    dispatcher = WebhookDispatcher(
        url=WEBHOOK_URL,
        workers=1,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    built = TelemetryService(
        table=MockTelemetryTable(name="test", persistence_path=tmp_path / "telemetry.jsonl"),
        cache=MemoryLatestCache(),
        alerts=AlertService(MemoryClaimStore(), dispatcher),
        aggregator=Aggregator(),
    )
    yield built
    dispatcher.shutdown()


@pytest.fixture
def api_client(service, monkeypatch) -> Iterator[TestClient]:
    monkeypatch.delenv("INGEST_TOKEN", raising=False)
    get_settings.cache_clear()

    def build_test_service() -> TelemetryService:
        return service

    build_test_service.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)

    app = create_app()
    with TestClient(app) as client:
        yield client

    get_settings.cache_clear()


def _reading(device_id: str, ts: Any, temperature: float = 25.0, humidity: float = 60.0) -> dict:
    return {
        "deviceId": device_id,
        "siteId": "site-A",
        "ts": ts,
        "metrics": {"temperature": temperature, "humidity": humidity},
    }


def test_lifespan_shuts_down_dispatcher_and_clears_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TELEMETRY_PERSISTENCE_PATH", str(tmp_path / "telemetry.jsonl"))
    monkeypatch.delenv("REDIS_URL", raising=False)
    _clear_factories()

    try:
        with TestClient(create_app()):
            service_during = build_default_service()
            assert service_during.alerts.dispatcher.executor._shutdown is False

        assert service_during.alerts.dispatcher.executor._shutdown is True
        service_after = build_default_service()
        assert service_after is not service_during
        assert service_after.alerts.dispatcher.executor._shutdown is False
        service_after.alerts.dispatcher.shutdown()
    finally:
        _clear_factories()


def test_ingest_single_reading(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/v1/telemetry", json=_reading("dev-001", "2025-09-01T10:00:00.000Z")
    )

    assert response.status_code == 201
    assert response.json() == {"message": "Telemetry ingested successfully", "count": 1}


def test_ingest_batch_and_query_each_device(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/v1/telemetry",
        json=[
            _reading("dev-001", "2025-09-01T10:00:00.000Z", 25, 60),
            _reading("dev-002", "2025-09-01T10:01:00.000Z", 30, 65),
        ],
    )

    assert response.status_code == 201
    assert response.json() == {"message": "Telemetry ingested successfully", "count": 2}

    latest = api_client.get("/api/v1/devices/dev-002/latest")
    assert latest.status_code == 200
    assert latest.json() == {
        "deviceId": "dev-002",
        "siteId": "site-A",
        "ts": "2025-09-01T10:01:00.000Z",
        "metrics": {"temperature": 30.0, "humidity": 65.0},
    }
    assert api_client.get("/api/v1/devices/dev-001/latest").json()["metrics"]["temperature"] == 25.0

    summary = api_client.get(
        "/api/v1/sites/site-A/summary",
        params={"from": "2025-09-01T00:00:00.000Z", "to": "2025-09-02T00:00:00.000Z"},
    )
    assert summary.status_code == 200
    assert summary.json() == {
        "count": 2,
        "avgTemperature": 27.5,
        "maxTemperature": 30.0,
        "avgHumidity": 62.5,
        "maxHumidity": 65.0,
        "uniqueDevices": 2,
    }


def test_latest_for_unknown_device_is_not_found(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/devices/non-existent-device/latest")

    assert response.status_code == 404
    assert response.json()["detail"] == "No data found for device non-existent-device"


def test_summary_for_empty_or_inverted_window_is_zero(api_client: TestClient) -> None:
    api_client.post("/api/v1/telemetry", json=_reading("dev-001", "2025-09-01T10:00:00Z"))

    response = api_client.get(
        "/api/v1/sites/site-A/summary",
        params={"from": "2025-09-02T00:00:00Z", "to": "2025-09-01T00:00:00Z"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "count": 0,
        "avgTemperature": 0,
        "maxTemperature": 0,
        "avgHumidity": 0,
        "maxHumidity": 0,
        "uniqueDevices": 0,
    }


def test_summary_rejects_invalid_dates(api_client: TestClient) -> None:
    response = api_client.get(
        "/api/v1/sites/site-A/summary",
        params={"from": "invalid-date", "to": "2025-09-02T00:00:00.000Z"},
    )

    assert response.status_code == 400


@pytest.mark.parametrize(
    "payload",
    [
        _reading("dev-003", "invalid-date"),
        _reading("dev-007", 1725184920),
        _reading("dev-008", "1725184920"),
        _reading("dev-009", "2025-09-01"),
        _reading("dev-004", "2025-09-01T10:02:00.000Z", temperature=250),
        _reading("dev-005", "2025-09-01T10:02:00.000Z", humidity=-1),
        _reading("", "2025-09-01T10:02:00.000Z"),
        {"deviceId": "dev-006", "siteId": "site-A", "ts": "2025-09-01T10:02:00.000Z"},
        [],
    ],
)
def test_invalid_telemetry_is_rejected(api_client: TestClient, service, payload) -> None:
    response = api_client.post("/api/v1/telemetry", json=payload)

    assert response.status_code == 400
    assert service.table.scan() == []


def test_boundary_metrics_are_accepted(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/v1/telemetry",
        json=[
            _reading("dev-min", "2025-09-01T10:00:00Z", temperature=-100, humidity=0),
            _reading("dev-max", "2025-09-01T10:00:00Z", temperature=200, humidity=100),
        ],
    )

    assert response.status_code == 201
    assert response.json()["count"] == 2


def test_high_temperature_alert_is_sent_once_per_window(
    api_client: TestClient, service, webhook_calls
) -> None:
    for minute in range(3):
        response = api_client.post(
            "/api/v1/telemetry",
            json=_reading("dev-hot", f"2025-09-01T10:0{minute}:00.000Z", temperature=55 + minute),
        )
        assert response.status_code == 201

    service.alerts.dispatcher.wait_for_pending(timeout=5.0)

    assert webhook_calls == [
        {
            "deviceId": "dev-hot",
            "siteId": "site-A",
            "ts": "2025-09-01T10:00:00.000Z",
            "reason": "HIGH_TEMPERATURE",
            "value": 55.0,
        }
    ]


def test_persistence_failure_reports_partial_count(api_client: TestClient, service) -> None:
    class FailingSecondInsert(MockTelemetryTable):
        def __init__(self) -> None:
            super().__init__(name="failing")
            self.attempts = 0

        def insert(self, reading) -> None:
            self.attempts += 1
            if self.attempts == 2:
                raise PersistenceError("disk full")
            super().insert(reading)

    table = FailingSecondInsert()
    service.table = table

    response = api_client.post(
        "/api/v1/telemetry",
        json=[
            _reading("dev-001", "2025-09-01T10:00:00Z"),
            _reading("dev-002", "2025-09-01T10:01:00Z"),
            _reading("dev-003", "2025-09-01T10:02:00Z"),
        ],
    )

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["count"] == 1
    assert "dev-002" in detail["message"]
    assert table.attempts == 2
    assert api_client.get("/api/v1/devices/dev-001/latest").status_code == 200
    assert api_client.get("/api/v1/devices/dev-003/latest").status_code == 404


def test_token_is_required_when_configured(api_client: TestClient, monkeypatch) -> None:
    monkeypatch.setenv("INGEST_TOKEN", "secret123")
    get_settings.cache_clear()
    body = _reading("dev-001", "2025-09-01T10:00:00Z")

    missing = api_client.post("/api/v1/telemetry", json=body)
    wrong = api_client.post(
        "/api/v1/telemetry", json=body, headers={"Authorization": "Bearer nope"}
    )
    accepted = api_client.post(
        "/api/v1/telemetry", json=body, headers={"Authorization": "Bearer secret123"}
    )

    assert missing.status_code == 401
    assert missing.json()["detail"] == "Missing authorization token"
    assert wrong.status_code == 401
    assert accepted.status_code == 201
    assert api_client.get("/api/v1/devices/dev-001/latest").status_code == 200


def test_oversized_payload_is_rejected(api_client: TestClient, monkeypatch) -> None:
    monkeypatch.setenv("MAX_PAYLOAD_BYTES", "64")
    get_settings.cache_clear()

    response = api_client.post(
        "/api/v1/telemetry", json=_reading("dev-001", "2025-09-01T10:00:00Z")
    )

    assert response.status_code == 413
    assert response.json() == {"detail": "Payload too large"}


def test_health_reports_collaborators(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["services"] == {"datastore": "up", "cache": "up", "coordination": "up"}
