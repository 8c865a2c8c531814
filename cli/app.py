from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_ingest, render_reading, render_summary


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the telemetry ingestor service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        "-t",
        help="Bearer token for ingestion (defaults to INGEST_TOKEN env).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, token=token, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file with one reading or a list."
    ),
) -> None:
    """Send the readings in a JSON file, in file order."""
    state = _get_state(ctx)
    typer.echo(f"Sending {file} to {state.config.base_url} ...")
    payload = state.client.ingest_file(file)
    render_ingest(payload)


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
) -> None:
    """Show the latest reading ingested for a device."""
    state = _get_state(ctx)
    render_reading(state.client.get_latest(device_id))


@app.command("summary")
def summary_command(
    ctx: typer.Context,
    site_id: str = typer.Argument(..., help="Site identifier."),
    start: str = typer.Option(..., "--from", help="ISO-8601 window start (inclusive)."),
    end: str = typer.Option(..., "--to", help="ISO-8601 window end (inclusive)."),
) -> None:
    """Show aggregate statistics for a site over a time window."""
    state = _get_state(ctx)
    render_summary(site_id, state.client.get_summary(site_id, start, end))
