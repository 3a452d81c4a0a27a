"""Cache for skills."""

from __future__ import annotations

from devhub.cache.base import NamedEntityCache


class SkillCache(NamedEntityCache):
    entity = "skill"
