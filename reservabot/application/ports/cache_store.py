from __future__ import annotations

from abc import ABC, abstractmethod


class CacheStorePort(ABC):
    """Shared key/value store with per-key expiry. Adapters raise CacheUnavailableError when unreachable."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern ('cache:context:*:b1'); returns the number removed."""
        raise NotImplementedError
