"""
Configuration and settings for the devhub backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CACHE_TTL_ITEM = 3600
DEFAULT_CACHE_TTL_LIST = 1800
DEFAULT_CACHE_TTL_COUNT = 3600
DEFAULT_CACHE_TTL_NAME_LOOKUP = 300


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api/v1")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected, SQLite when unset)
    database_url: Optional[str] = Field(default=None)
    db_statement_timeout_ms: int = Field(default=5000)
    db_pool_timeout: float = Field(default=10.0)

    # Read cache (Redis)
    redis_url: Optional[str] = Field(default=None)
    cache_socket_timeout: float = Field(default=1.0)
    cache_ttl_item: int = Field(default=DEFAULT_CACHE_TTL_ITEM)
    cache_ttl_list: int = Field(default=DEFAULT_CACHE_TTL_LIST)
    cache_ttl_count: int = Field(default=DEFAULT_CACHE_TTL_COUNT)
    cache_ttl_name_lookup: int = Field(default=DEFAULT_CACHE_TTL_NAME_LOOKUP)

    # S3-compatible storage (MinIO / AWS)
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    public_base_url: Optional[str] = Field(default=None)
    max_file_size: int = Field(default=5 * 1024 * 1024)

    # Auth
    access_token_secret: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    @field_validator(
        "cache_ttl_item",
        "cache_ttl_list",
        "cache_ttl_count",
        "cache_ttl_name_lookup",
        mode="before",
    )
    @classmethod
    def _positive_ttl(cls, value, info):
        defaults = {
            "cache_ttl_item": DEFAULT_CACHE_TTL_ITEM,
            "cache_ttl_list": DEFAULT_CACHE_TTL_LIST,
            "cache_ttl_count": DEFAULT_CACHE_TTL_COUNT,
            "cache_ttl_name_lookup": DEFAULT_CACHE_TTL_NAME_LOOKUP,
        }
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return defaults[info.field_name]
        return parsed if parsed > 0 else defaults[info.field_name]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
