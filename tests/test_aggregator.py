"""Unit tests for the aggregation logic."""

from __future__ import annotations

from datetime import datetime, timezone

from models.records import Metrics, Reading
from services.aggregator import Aggregator


def _reading(device_id: str, temperature: float, humidity: float) -> Reading:
    """Helper to build deterministic sensor readings."""

    return Reading(
        device_id=device_id,
        site_id="site-A",
        ts=datetime(2025, 9, 1, 10, tzinfo=timezone.utc),
        metrics=Metrics(temperature=temperature, humidity=humidity),
    )


def test_summarize_empty_iterable_returns_zero_summary() -> None:
    aggregator = Aggregator()

    summary = aggregator.summarize([])

    assert summary.to_payload() == {
        "count": 0,
        "avgTemperature": 0,
        "maxTemperature": 0,
        "avgHumidity": 0,
        "maxHumidity": 0,
        "uniqueDevices": 0,
    }


def test_summarize_computes_statistics() -> None:
    aggregator = Aggregator()
    readings = [
        _reading("dev-001", 25.0, 60.0),
        _reading("dev-002", 30.0, 65.0),
    ]

    summary = aggregator.summarize(readings)

    assert summary.count == 2
    assert summary.avg_temperature == 27.5
    assert summary.max_temperature == 30.0
    assert summary.avg_humidity == 62.5
    assert summary.max_humidity == 65.0
    assert summary.unique_devices == 2


def test_summarize_rounds_averages_and_counts_distinct_devices() -> None:
    aggregator = Aggregator()
    readings = [
        _reading("dev-001", 20.0, 50.0),
        _reading("dev-002", 30.0, 70.0),
        _reading("dev-001", 21.0, 61.0),
    ]

    summary = aggregator.summarize(readings)

    assert summary.count == 3
    assert summary.avg_temperature == 23.67
    assert summary.avg_humidity == 60.33
    assert summary.unique_devices == 2


def test_summarize_handles_negative_temperatures() -> None:
    aggregator = Aggregator()

    summary = aggregator.summarize([_reading("dev-cold", -100.0, 0.0), _reading("dev-cold", -40.0, 0.0)])

    assert summary.max_temperature == -40.0
    assert summary.avg_temperature == -70.0
    assert summary.max_humidity == 0.0
