"""
Redis-backed read cache (cache-aside) for the entity services.
"""

from devhub.cache.base import CacheStats, CacheTTL, EntityCache, NamedEntityCache
from devhub.cache.blog import BlogCache
from devhub.cache.project import ProjectCache
from devhub.cache.skill import SkillCache
from devhub.cache.store import CacheStore, InMemoryCacheStore, RedisCacheStore
from devhub.cache.tech import TechCache

__all__ = [
    "BlogCache",
    "CacheStats",
    "CacheStore",
    "CacheTTL",
    "EntityCache",
    "InMemoryCacheStore",
    "NamedEntityCache",
    "ProjectCache",
    "RedisCacheStore",
    "SkillCache",
    "TechCache",
]
