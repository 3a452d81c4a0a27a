"""
Cache for techs. Lists and counts are keyed by the normalized search term.
"""

from __future__ import annotations

from devhub.cache import keys
from devhub.cache.base import NamedEntityCache


class TechCache(NamedEntityCache):
    entity = "tech"

    @staticmethod
    def search_filters(search: str = "") -> dict:
        term = keys.normalize_name(search or "")
        return {"search": term} if term else {}
