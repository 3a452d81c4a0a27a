"""Cache for blog posts."""

from __future__ import annotations

from devhub.cache.base import EntityCache


class BlogCache(EntityCache):
    entity = "blog"
