from __future__ import annotations
import json
import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import List, Optional

from models.records import Reading, ensure_utc
from settings import get_settings

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when the durable store cannot write or read readings."""


class MockTelemetryTable:
    """Append-only reading table, optionally mirrored to a JSON-lines file."""

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: List[Reading] = []
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert(self, reading: Reading) -> None:
        with self._lock:
            self._append_to_disk(reading)
            self._items.append(reading)

    def find_latest(self, device_id: str) -> Optional[Reading]:
        """Return the device's reading with the greatest ``ts``, or ``None``."""
        latest: Optional[Reading] = None
        with self._lock:
            for reading in self._items:
                if reading.device_id != device_id:
                    continue
                # ``>=`` so that equal timestamps resolve to the last insert.
                if latest is None or reading.ts >= latest.ts:
                    latest = reading
        return latest

    def query_site(self, site_id: str, start: datetime, end: datetime) -> List[Reading]:
        """Return readings for ``site_id`` with ``start <= ts <= end``."""
        lower = ensure_utc(start)
        upper = ensure_utc(end)
        with self._lock:
            return [
                reading
                for reading in self._items
                if reading.site_id == site_id and lower <= reading.ts <= upper
            ]

    def ping(self) -> bool:
        if not self.persistence_path:
            return True
        return self.persistence_path.parent.is_dir()

    def scan(self) -> list[Reading]:
        with self._lock:
            return list(self._items)

    def _append_to_disk(self, reading: Reading) -> None:
        if not self.persistence_path:
            return
        line = json.dumps(reading.to_payload(), sort_keys=True)
        try:
            with self.persistence_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            raise PersistenceError(
                f"Could not persist reading for device {reading.device_id!r}: {exc}"
            ) from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            lines = self.persistence_path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise PersistenceError(
                f"Could not read table file {str(self.persistence_path)!r}: {exc}"
            ) from exc

        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                self._items.append(Reading.from_payload(json.loads(line)))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                logger.warning(
                    "Skipping unreadable line %d in %s", line_number, self.persistence_path
                )


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockTelemetryTable:
    settings = get_settings()
    table_name = settings.table_name if name is None else name
    table_path = settings.table_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return MockTelemetryTable(name=table_name, persistence_path=persistence)
