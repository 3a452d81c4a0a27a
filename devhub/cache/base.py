"""
Cache-aside machinery shared by the entity caches.

Reads never raise: a store failure or an undecodable payload is logged and
reported as a miss so the caller falls back to the database. Writes and
invalidations never raise either; a stale entry is bounded by its TTL.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from redis import exceptions as redis_exceptions

from devhub.cache import keys
from devhub.cache.store import CacheStore
from devhub.config import Settings

logger = logging.getLogger(__name__)

CACHE_ERRORS = (redis_exceptions.RedisError, OSError, ValueError, TypeError)


@dataclass(frozen=True)
class CacheTTL:
    """Expiry in seconds for each class of cache entry."""

    item: int = 3600
    listing: int = 1800
    count: int = 3600
    name_lookup: int = 300

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheTTL":
        return cls(
            item=settings.cache_ttl_item,
            listing=settings.cache_ttl_list,
            count=settings.cache_ttl_count,
            name_lookup=settings.cache_ttl_name_lookup,
        )


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    errors: int = 0

    def record(self, hit: bool) -> None:
        if hit:
            self.hits += 1
        else:
            self.misses += 1


class EntityCache:
    """
    Read/write/invalidate helpers for one entity family.

    Keys all live under ``{entity}:``, secondary indices included, so one
    ``{entity}:*`` sweep clears every list, count and index page.
    """

    entity: str = ""

    def __init__(
        self,
        store: CacheStore,
        ttl: Optional[CacheTTL] = None,
        stats: Optional[CacheStats] = None,
    ):
        self.store = store
        self.ttl = ttl or CacheTTL()
        self.stats = stats if stats is not None else CacheStats()

    # -- raw two-step interface -------------------------------------------------

    def read(self, key: str) -> Optional[Any]:
        """Return the decoded value for ``key`` or None on miss or failure."""
        try:
            cached = self.store.get(key)
            if cached is None:
                self.stats.record(False)
                logger.info("Cache MISS for %s", key)
                return None
            value = json.loads(cached)
        except CACHE_ERRORS as exc:
            self.stats.errors += 1
            self.stats.record(False)
            logger.warning("Error reading cache key %s: %s", key, exc)
            return None
        self.stats.record(True)
        logger.info("Cache HIT for %s", key)
        return value

    def write(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.store.set(key, json.dumps(value), ttl)
        except CACHE_ERRORS as exc:
            self.stats.errors += 1
            logger.warning("Error caching key %s: %s", key, exc)
            return
        logger.info("Cached %s (ttl=%ss)", key, ttl)

    def delete(self, *cache_keys: str) -> None:
        if not cache_keys:
            return
        try:
            self.store.delete(*cache_keys)
        except CACHE_ERRORS as exc:
            self.stats.errors += 1
            logger.warning("Error invalidating cache keys %s: %s", cache_keys, exc)
            return
        logger.info("Invalidated cache keys: %s", ", ".join(cache_keys))

    def sweep(self, *patterns: str) -> int:
        """Delete every key matching any of ``patterns``; returns how many."""
        try:
            matched: set[str] = set()
            for pattern in patterns:
                matched.update(self.store.keys(pattern))
            if matched:
                self.store.delete(*sorted(matched))
        except CACHE_ERRORS as exc:
            self.stats.errors += 1
            logger.warning("Error sweeping cache patterns %s: %s", patterns, exc)
            return 0
        if matched:
            logger.info(
                "Invalidated %d cache keys matching %s", len(matched), ", ".join(patterns)
            )
        return len(matched)

    # -- single items -----------------------------------------------------------

    def item_key(self, entity_id: str) -> str:
        return keys.item_key(self.entity, entity_id)

    def get_item(self, entity_id: str) -> Optional[dict]:
        return self.read(self.item_key(entity_id))

    def set_item(self, entity_id: str, value: dict) -> None:
        self.write(self.item_key(entity_id), value, self.ttl.item)

    def invalidate_entity(self, entity_id: str) -> None:
        self.delete(self.item_key(entity_id))

    # -- paginated lists and counts --------------------------------------------

    def list_key(
        self, page: int, page_size: int, filters: Optional[Mapping[str, Any]] = None
    ) -> str:
        return keys.list_key(self.entity, page, page_size, filters)

    def count_key(self, filters: Optional[Mapping[str, Any]] = None) -> str:
        return keys.count_key(self.entity, filters)

    def get_list(
        self, page: int, page_size: int, filters: Optional[Mapping[str, Any]] = None
    ) -> Optional[dict]:
        return self.read(self.list_key(page, page_size, filters))

    def set_list(
        self,
        page: int,
        page_size: int,
        filters: Optional[Mapping[str, Any]],
        data: dict,
    ) -> None:
        self.write(self.list_key(page, page_size, filters), data, self.ttl.listing)

    def get_count(self, filters: Optional[Mapping[str, Any]] = None) -> Optional[int]:
        value = self.read(self.count_key(filters))
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Discarding non-integer count cached for %s", self.entity)
            return None

    def set_count(
        self, count: int, filters: Optional[Mapping[str, Any]] = None
    ) -> None:
        try:
            self.store.set(self.count_key(filters), str(int(count)), self.ttl.count)
        except CACHE_ERRORS as exc:
            self.stats.errors += 1
            logger.warning("Error caching %s count: %s", self.entity, exc)

    # -- bulk invalidation -----------------------------------------------------

    def invalidate_all(self) -> int:
        return self.sweep(f"{self.entity}:*")


class NamedEntityCache(EntityCache):
    """Adds the short-lived name lookup used to short-circuit duplicate checks."""

    def name_key(self, name: str) -> str:
        return keys.name_key(self.entity, name)

    def get_name_lookup(self, name: str) -> Optional[str]:
        key = self.name_key(name)
        try:
            cached = self.store.get(key)
        except CACHE_ERRORS as exc:
            self.stats.errors += 1
            self.stats.record(False)
            logger.warning("Error reading cache key %s: %s", key, exc)
            return None
        self.stats.record(bool(cached))
        logger.info("Cache %s for %s", "HIT" if cached else "MISS", key)
        return cached or None

    def set_name_lookup(self, name: str, entity_id: str) -> None:
        key = self.name_key(name)
        try:
            self.store.set(key, entity_id, self.ttl.name_lookup)
        except CACHE_ERRORS as exc:
            self.stats.errors += 1
            logger.warning("Error caching key %s: %s", key, exc)

    def invalidate_name(self, name: str) -> None:
        self.delete(self.name_key(name))
