"""
Cache for projects, including the per-user and per-tech secondary indices.
"""

from __future__ import annotations

from typing import Optional

from devhub.cache import keys
from devhub.cache.base import EntityCache

USER_INDEX = "user"
TECH_INDEX = "tech"


class ProjectCache(EntityCache):
    entity = "project"

    def user_projects_key(self, user_id: str, page: int, page_size: int) -> str:
        return keys.index_key(self.entity, USER_INDEX, user_id, page, page_size)

    def tech_projects_key(self, tech_id: str, page: int, page_size: int) -> str:
        return keys.index_key(self.entity, TECH_INDEX, tech_id, page, page_size)

    def get_user_projects(
        self, user_id: str, page: int, page_size: int
    ) -> Optional[dict]:
        return self.read(self.user_projects_key(user_id, page, page_size))

    def set_user_projects(
        self, user_id: str, page: int, page_size: int, data: dict
    ) -> None:
        self.write(self.user_projects_key(user_id, page, page_size), data, self.ttl.listing)

    def get_tech_projects(
        self, tech_id: str, page: int, page_size: int
    ) -> Optional[dict]:
        return self.read(self.tech_projects_key(tech_id, page, page_size))

    def set_tech_projects(
        self, tech_id: str, page: int, page_size: int, data: dict
    ) -> None:
        self.write(self.tech_projects_key(tech_id, page, page_size), data, self.ttl.listing)
