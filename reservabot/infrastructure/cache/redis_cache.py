from __future__ import annotations

import redis

from reservabot.application.exceptions import CacheUnavailableError
from reservabot.application.ports.cache_store import CacheStorePort


class RedisCacheStore(CacheStorePort):
    """
    Redis-backed cache store.

    Every redis failure surfaces as CacheUnavailableError so callers can fall
    back to their local map.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None, timeout_seconds: float = 2.0) -> None:
        if client is None:
            if not url:
                raise ValueError("RedisCacheStore needs a url or a client")
            client = redis.Redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=timeout_seconds,
                socket_timeout=timeout_seconds,
            )
        self._client = client

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis get failed: {e}") from e

    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        try:
            self._client.set(key, value, px=max(int(ttl_seconds * 1000), 1))
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis set failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis delete failed: {e}") from e

    def delete_pattern(self, pattern: str) -> int:
        try:
            keys = list(self._client.scan_iter(match=pattern, count=200))
            return int(self._client.delete(*keys)) if keys else 0
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis delete_pattern failed: {e}") from e
