"""Latest-value cache: one entry per device, blindly overwritten, expiring."""

from __future__ import annotations

import json
import time
from functools import lru_cache
from threading import Lock
from typing import Callable, Dict, Optional, Tuple, Union

from redis import Redis
from redis.exceptions import RedisError

from models.records import Reading
from settings import get_settings
from storage.redis_client import build_redis_client

KEY_PREFIX = "latest"


class CacheUnavailable(Exception):
    """Raised when the cache backend cannot be reached."""


def cache_key(device_id: str) -> str:
    return f"{KEY_PREFIX}:{device_id}"


class MemoryLatestCache:

    def __init__(
        self,
        ttl_seconds: int = 86400,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Reading]] = {}
        self._lock = Lock()

    def set(self, reading: Reading) -> None:
        now = self._clock()
        with self._lock:
            self._prune(now)
            self._entries[cache_key(reading.device_id)] = (now + self.ttl_seconds, reading)

    def get(self, device_id: str) -> Optional[Reading]:
        key = cache_key(device_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, reading = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return reading

    def _prune(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def ping(self) -> bool:
        return True


class RedisLatestCache:

    def __init__(self, client: Redis, ttl_seconds: int = 86400) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    def set(self, reading: Reading) -> None:
        serialized = json.dumps(reading.to_payload())
        try:
            self.client.setex(cache_key(reading.device_id), self.ttl_seconds, serialized)
        except RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc

    def get(self, device_id: str) -> Optional[Reading]:
        try:
            raw = self.client.get(cache_key(device_id))
        except RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc
        if raw is None:
            return None
        try:
            return Reading.from_payload(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise CacheUnavailable(f"Unreadable cache entry for {device_id!r}") from exc

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False


LatestCache = Union[MemoryLatestCache, RedisLatestCache]


@lru_cache
def build_default_cache() -> LatestCache:
    settings = get_settings()
    if settings.redis_url:
        return RedisLatestCache(
            build_redis_client(settings.redis_url),
            ttl_seconds=settings.cache_ttl_seconds,
        )
    return MemoryLatestCache(ttl_seconds=settings.cache_ttl_seconds)
