"""Aggregation logic for sensor readings."""

from __future__ import annotations

from typing import Iterable, Set

from models.records import Reading, SiteSummary


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def summarize(self, readings: Iterable[Reading]) -> SiteSummary:
        summary = SiteSummary()
        temperature_total = 0.0
        humidity_total = 0.0
        max_temperature: float | None = None
        max_humidity: float | None = None
        devices: Set[str] = set()

        for reading in readings:
            summary.count += 1
            temperature = reading.metrics.temperature
            humidity = reading.metrics.humidity
            temperature_total += temperature
            humidity_total += humidity

            if max_temperature is None or temperature > max_temperature:
                max_temperature = temperature
            if max_humidity is None or humidity > max_humidity:
                max_humidity = humidity

            devices.add(reading.device_id)

        if summary.count:
            summary.avg_temperature = round(temperature_total / summary.count, 2)
            summary.avg_humidity = round(humidity_total / summary.count, 2)
            summary.max_temperature = max_temperature
            summary.max_humidity = max_humidity
            summary.unique_devices = len(devices)

        return summary
