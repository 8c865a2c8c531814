"""Alert coordination store offering a single atomic claim-once primitive."""

from __future__ import annotations

import time
from functools import lru_cache
from threading import Lock
from typing import Callable, Dict, Union

from redis import Redis
from redis.exceptions import RedisError

from settings import get_settings
from storage.redis_client import build_redis_client

KEY_PREFIX = "alert"


class CoordinationUnavailable(Exception):
    """Raised when a claim cannot be evaluated."""


def claim_key(device_id: str, reason: str) -> str:
    return f"{KEY_PREFIX}:{device_id}:{reason}"


class MemoryClaimStore:
    """Process-local claims; the check and the insert share one lock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._claims: Dict[str, float] = {}
        self._lock = Lock()

    def claim_once(self, device_id: str, reason: str, ttl_seconds: int) -> bool:
        key = claim_key(device_id, reason)
        with self._lock:
            now = self._clock()
            self._prune(now)
            expires_at = self._claims.get(key)
            if expires_at is not None and now < expires_at:
                return False
            self._claims[key] = now + ttl_seconds
            return True

    def _prune(self, now: float) -> None:
        expired = [key for key, expires_at in self._claims.items() if now >= expires_at]
        for key in expired:
            del self._claims[key]

    def ping(self) -> bool:
        return True


class RedisClaimStore:
    """Claims backed by ``SET key 1 NX EX ttl``."""

    def __init__(self, client: Redis) -> None:
        self.client = client

    def claim_once(self, device_id: str, reason: str, ttl_seconds: int) -> bool:
        try:
            created = self.client.set(claim_key(device_id, reason), "1", nx=True, ex=ttl_seconds)
        except RedisError as exc:
            raise CoordinationUnavailable(str(exc)) from exc
        return bool(created)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False


ClaimStore = Union[MemoryClaimStore, RedisClaimStore]


@lru_cache
def build_default_claims() -> ClaimStore:
    settings = get_settings()
    if settings.redis_url:
        return RedisClaimStore(build_redis_client(settings.redis_url))
    return MemoryClaimStore()
