from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_ingest(payload: Dict[str, Any]) -> None:
    typer.secho(
        f"{payload.get('message')} (count={payload.get('count')})",
        fg=typer.colors.GREEN,
    )


def render_reading(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    echo_key_values(
        [
            ("deviceId", payload.get("deviceId")),
            ("siteId", payload.get("siteId")),
            ("ts", payload.get("ts")),
        ]
    )
    metrics = payload.get("metrics") or {}
    typer.echo()
    echo_heading("Metrics")
    echo_key_values(
        [
            ("temperature", metrics.get("temperature")),
            ("humidity", metrics.get("humidity")),
        ]
    )


def render_summary(site_id: str, payload: Dict[str, Any]) -> None:
    echo_heading(f"Site Summary: {site_id}")
    if not payload.get("count"):
        typer.echo("No readings in the requested window.")
        return
    echo_key_values(
        [
            ("count", payload.get("count")),
            ("avgTemperature", payload.get("avgTemperature")),
            ("maxTemperature", payload.get("maxTemperature")),
            ("avgHumidity", payload.get("avgHumidity")),
            ("maxHumidity", payload.get("maxHumidity")),
            ("uniqueDevices", payload.get("uniqueDevices")),
        ]
    )
