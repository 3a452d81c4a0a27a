"""
Dependency wiring for the FastAPI app.

Infrastructure clients are process-wide singletons; services and caches are
cheap wrappers assembled per request so tests can override any layer with
``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from devhub.cache import (
    BlogCache,
    CacheStats,
    CacheStore,
    CacheTTL,
    InMemoryCacheStore,
    ProjectCache,
    RedisCacheStore,
    SkillCache,
    TechCache,
)
from devhub.config import Settings, get_settings
from devhub.db import Database
from devhub.errors import ForbiddenError, UnauthorizedError
from devhub.roles import Role
from devhub.security import TokenCodec
from devhub.services import (
    BlogService,
    CurrentUser,
    ProjectService,
    SkillService,
    TechService,
    UserService,
)
from devhub.storage import (
    ImageUploader,
    InMemoryStorageClient,
    S3StorageClient,
    StorageClient,
)

logger = logging.getLogger(__name__)

IN_MEMORY_DATABASE_URL = "sqlite+pysqlite:///:memory:"

_database: Database | None = None
_cache_store: CacheStore | None = None
_storage_client: StorageClient | None = None
_cache_stats: dict[str, CacheStats] = {}

bearer_scheme = HTTPBearer(auto_error=False)


def get_database() -> Database:
    """
    Return a singleton database so the engine pool is shared across requests.
    """
    global _database
    if _database:
        return _database

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        logger.warning("DATABASE_URL not set; using an in-memory SQLite database")
        _database = Database(IN_MEMORY_DATABASE_URL)
    else:
        _database = Database(
            settings.database_url,
            statement_timeout_ms=settings.db_statement_timeout_ms,
            pool_timeout=settings.db_pool_timeout,
        )
    return _database


def get_cache_store() -> CacheStore:
    global _cache_store
    if _cache_store:
        return _cache_store

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _cache_store = RedisCacheStore(
            url=settings.redis_url, socket_timeout=settings.cache_socket_timeout
        )
    else:
        _cache_store = InMemoryCacheStore()
    return _cache_store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.public_base_url or "",
        )
    return _storage_client


def reset_singletons() -> None:
    """Forget cached clients (tests and app shutdown)."""
    global _database, _cache_store, _storage_client
    if _database:
        _database.dispose()
    _database = None
    _cache_store = None
    _storage_client = None
    _cache_stats.clear()


def cache_stats(entity: str) -> CacheStats:
    """Hit/miss counters for one entity family, shared by every request."""
    return _cache_stats.setdefault(entity, CacheStats())


def cache_stats_snapshot() -> dict[str, dict]:
    return {entity: asdict(stats) for entity, stats in sorted(_cache_stats.items())}


def get_cache_ttl(settings: Settings = Depends(get_settings)) -> CacheTTL:
    return CacheTTL.from_settings(settings)


def get_project_cache(
    store: CacheStore = Depends(get_cache_store), ttl: CacheTTL = Depends(get_cache_ttl)
) -> ProjectCache:
    return ProjectCache(store, ttl, cache_stats(ProjectCache.entity))


def get_tech_cache(
    store: CacheStore = Depends(get_cache_store), ttl: CacheTTL = Depends(get_cache_ttl)
) -> TechCache:
    return TechCache(store, ttl, cache_stats(TechCache.entity))


def get_skill_cache(
    store: CacheStore = Depends(get_cache_store), ttl: CacheTTL = Depends(get_cache_ttl)
) -> SkillCache:
    return SkillCache(store, ttl, cache_stats(SkillCache.entity))


def get_blog_cache(
    store: CacheStore = Depends(get_cache_store), ttl: CacheTTL = Depends(get_cache_ttl)
) -> BlogCache:
    return BlogCache(store, ttl, cache_stats(BlogCache.entity))


def get_image_uploader(
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
) -> ImageUploader:
    return ImageUploader(storage, max_bytes=settings.max_file_size)


def get_token_codec(settings: Settings = Depends(get_settings)) -> TokenCodec:
    return TokenCodec(
        settings.access_token_secret,
        algorithm=settings.jwt_algorithm,
        expire_minutes=settings.access_token_expire_minutes,
    )


def get_project_service(
    db: Database = Depends(get_database),
    cache: ProjectCache = Depends(get_project_cache),
    uploader: ImageUploader = Depends(get_image_uploader),
) -> ProjectService:
    return ProjectService(db, cache, uploader)


def get_tech_service(
    db: Database = Depends(get_database),
    cache: TechCache = Depends(get_tech_cache),
    project_cache: ProjectCache = Depends(get_project_cache),
    uploader: ImageUploader = Depends(get_image_uploader),
) -> TechService:
    return TechService(db, cache, project_cache, uploader)


def get_skill_service(
    db: Database = Depends(get_database),
    cache: SkillCache = Depends(get_skill_cache),
) -> SkillService:
    return SkillService(db, cache)


def get_blog_service(
    db: Database = Depends(get_database),
    cache: BlogCache = Depends(get_blog_cache),
    uploader: ImageUploader = Depends(get_image_uploader),
) -> BlogService:
    return BlogService(db, cache, uploader)


def get_user_service(
    db: Database = Depends(get_database),
    tokens: TokenCodec = Depends(get_token_codec),
    uploader: ImageUploader = Depends(get_image_uploader),
    project_cache: ProjectCache = Depends(get_project_cache),
    blog_cache: BlogCache = Depends(get_blog_cache),
    tech_cache: TechCache = Depends(get_tech_cache),
) -> UserService:
    return UserService(db, tokens, uploader, project_cache, blog_cache, tech_cache)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    users: UserService = Depends(get_user_service),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Access denied. No token provided.")
    return users.resolve_token(credentials.credentials)


def require_role(minimum: Role):
    """Build a dependency that admits callers ranked ``minimum`` or above."""

    def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.role.at_least(minimum):
            raise ForbiddenError("You do not have permission to perform this action")
        return user

    return checker


require_admin = require_role(Role.ADMIN)
