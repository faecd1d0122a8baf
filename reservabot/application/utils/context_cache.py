from __future__ import annotations

import fnmatch
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from reservabot.application.exceptions import CacheUnavailableError
from reservabot.application.ports.cache_store import CacheStorePort

CONTEXT_PREFIX = "cache:context:"
COMPANY_PREFIX = "cache:company:"


@dataclass(frozen=True)
class CachedEntry:
    value: Any
    stored_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl


class TTLCache:
    """
    One cache namespace with a fixed TTL.

    Values go to the shared store when one is configured (encoded to text);
    when it is missing or raises CacheUnavailableError the local map is used.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        store: CacheStorePort | None = None,
        encode: Callable[[Any], str] | None = None,
        decode: Callable[[str], Any] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self._ttl = ttl_seconds
        self._store = store
        self._encode = encode or str
        self._decode = decode or (lambda raw: raw)
        self._clock = clock
        self._local: dict[str, CachedEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._fallbacks = 0
        self._logger = logging.getLogger(__name__)

    def get(self, key: str) -> Any | None:
        if self._store is not None:
            try:
                raw = self._store.get(key)
            except CacheUnavailableError as e:
                self._fallback("get", e)
            else:
                if raw is None:
                    self._count(hit=False)
                    return None
                self._count(hit=True)
                return self._decode(raw)

        with self._lock:
            entry = self._local.get(key)
            if entry is None or entry.expired(self._clock()):
                self._local.pop(key, None)
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any) -> None:
        if self._store is not None:
            try:
                self._store.set(key, self._encode(value), self._ttl)
                return
            except CacheUnavailableError as e:
                self._fallback("set", e)

        with self._lock:
            self._local[key] = CachedEntry(value=value, stored_at=self._clock(), ttl=self._ttl)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is not None:
            return value
        value = loader()
        if value is not None:
            self.set(key, value)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._local.pop(key, None)
        if self._store is not None:
            try:
                self._store.delete(key)
            except CacheUnavailableError as e:
                self._fallback("delete", e)

    def invalidate_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._local if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                del self._local[key]
        removed = len(keys)
        if self._store is not None:
            try:
                removed += self._store.delete_pattern(pattern)
            except CacheUnavailableError as e:
                self._fallback("delete_pattern", e)
        return removed

    def invalidate_prefix(self, prefix: str) -> int:
        return self.invalidate_pattern(f"{_escape_glob(prefix)}*")

    def clean_expired(self) -> int:
        """Drop expired local entries; the shared store expires keys on its own."""
        now = self._clock()
        with self._lock:
            expired = [k for k, entry in self._local.items() if entry.expired(now)]
            for key in expired:
                del self._local[key]
        return len(expired)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "name": self.name,
                "ttl_seconds": self._ttl,
                "local_size": len(self._local),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
                "fallbacks": self._fallbacks,
                "shared_store": self._store is not None,
            }

    def _count(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1

    def _fallback(self, operation: str, error: Exception) -> None:
        with self._lock:
            self._fallbacks += 1
        self._logger.warning(
            "Cache store unavailable, using local map",
            extra={"cache": self.name, "operation": operation, "error": str(error)},
        )


def _escape_glob(value: str) -> str:
    return "".join(f"[{c}]" if c in "*?[" else c for c in value)


class ContextCache:
    """Conversation contexts (short TTL) and business configurations (long TTL)."""

    def __init__(self, contexts: TTLCache, businesses: TTLCache) -> None:
        self.contexts = contexts
        self.businesses = businesses

    @staticmethod
    def context_key(user_id: str, business_id: str) -> str:
        return f"{CONTEXT_PREFIX}{user_id}:{business_id}"

    @staticmethod
    def company_key(business_id: str) -> str:
        return f"{COMPANY_PREFIX}{business_id}"

    def get_context(self, user_id: str, business_id: str, loader: Callable[[], Any]) -> Any:
        return self.contexts.get_or_load(self.context_key(user_id, business_id), loader)

    def invalidate_context(self, user_id: str, business_id: str) -> None:
        self.contexts.invalidate(self.context_key(user_id, business_id))

    def get_business(self, business_id: str, loader: Callable[[], Any]) -> Any:
        return self.businesses.get_or_load(self.company_key(business_id), loader)

    def invalidate_business(self, business_id: str) -> None:
        self.businesses.invalidate(self.company_key(business_id))

    def invalidate_business_contexts(self, business_id: str) -> int:
        return self.contexts.invalidate_pattern(f"{CONTEXT_PREFIX}*:{_escape_glob(business_id)}")

    def clean_expired(self) -> int:
        return self.contexts.clean_expired() + self.businesses.clean_expired()

    def stats(self) -> dict[str, Any]:
        return {"context": self.contexts.stats(), "company": self.businesses.stats()}


class CacheSweeper:
    """Background thread dropping expired local cache entries every `interval_seconds`."""

    def __init__(self, cache: ContextCache, interval_seconds: float = 60.0) -> None:
        self._cache = cache
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._logger = logging.getLogger(__name__)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="cache-sweeper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._interval)
            self._thread = None

    def sweep(self) -> int:
        removed = self._cache.clean_expired()
        if removed:
            self._logger.debug("Expired cache entries removed", extra={"removed": removed})
        return removed

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self.sweep()
