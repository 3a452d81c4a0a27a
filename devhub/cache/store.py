"""
Key-value store abstraction behind the read cache.

Supports an in-memory implementation for tests/local runs and a Redis-backed
implementation for production. Values are always text.
"""

from __future__ import annotations

import fnmatch
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import redis


class CacheStore(Protocol):
    """Minimal GET / SET EX / DEL / KEYS surface the entity caches rely on."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl: int) -> None:
        ...

    def delete(self, *keys: str) -> int:
        ...

    def keys(self, pattern: str) -> list[str]:
        ...


@dataclass
class InMemoryCacheStore:
    """Dictionary-backed store with per-key expiry, for dev and tests."""

    items: dict[str, tuple[str, float]] = field(default_factory=dict)
    clock: Callable[[], float] = time.monotonic

    def __post_init__(self):
        self._lock = threading.Lock()

    def _live(self, key: str) -> Optional[str]:
        entry = self.items.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self.clock():
            del self.items[key]
            return None
        return value

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self.items[key] = (str(value), self.clock() + ttl)

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self.items.pop(key, None) is not None:
                    removed += 1
        return removed

    def keys(self, pattern: str) -> list[str]:
        with self._lock:
            return [
                key
                for key in list(self.items)
                if fnmatch.fnmatchcase(key, pattern) and self._live(key) is not None
            ]

    def reset(self) -> None:
        """Drop every entry (useful in tests)."""
        with self._lock:
            self.items.clear()


@dataclass
class RedisCacheStore:
    """Redis-backed store. Socket timeouts bound every call."""

    url: str
    socket_timeout: float = 1.0

    def __post_init__(self):
        self.client = redis.Redis.from_url(
            self.url,
            decode_responses=True,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
            health_check_interval=30,
        )

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        self.client.set(key, value, ex=ttl)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return self.client.delete(*keys)

    def keys(self, pattern: str) -> list[str]:
        return list(self.client.keys(pattern))
