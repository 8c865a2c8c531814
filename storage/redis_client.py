from __future__ import annotations

from functools import lru_cache

from redis import Redis


@lru_cache
def build_redis_client(url: str, socket_timeout: float = 2.0) -> Redis:
    """Shared client for the cache and the claim store.

    Connections are opened lazily, so building the client never touches the
    network.
    """
    return Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )
