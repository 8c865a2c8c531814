from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Union

import httpx
import typer

from cli.config import CLIConfig

Payload = Union[Dict[str, Any], List[Dict[str, Any]]]


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(
        self, config: CLIConfig, transport: Optional[httpx.BaseTransport] = None
    ) -> None:
        self._config = config
        headers = {"Authorization": f"Bearer {config.token}"} if config.token else {}
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            headers=headers,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def ingest_file(self, path: Path) -> Dict[str, Any]:
        try:
            payload: Payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"File {path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, (dict, list)):
            raise typer.BadParameter("Telemetry file must hold an object or a list of objects.")
        return self.ingest(payload)

    def ingest(self, payload: Payload) -> Dict[str, Any]:
        try:
            response = self._client.post("/api/v1/telemetry", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def get_latest(self, device_id: str) -> Dict[str, Any]:
        try:
            response = self._client.get(f"/api/v1/devices/{device_id}/latest")
            if response.status_code == 404:
                raise typer.BadParameter(f"No data found for device {device_id}.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def get_summary(self, site_id: str, start: str, end: str) -> Dict[str, Any]:
        try:
            response = self._client.get(
                f"/api/v1/sites/{site_id}/summary",
                params={"from": start, "to": end},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        if isinstance(detail, dict):
            detail = f"{detail.get('message')} (accepted: {detail.get('count')})"
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
