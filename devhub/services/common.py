"""
Helpers shared by the entity services.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

from sqlalchemy import select

from devhub.cache.base import NamedEntityCache
from devhub.db import Database
from devhub.errors import ConflictError, ValidationError

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def normalize_page(page: Optional[int], page_size: Optional[int]) -> tuple[int, int]:
    page = max(int(page or 1), 1)
    page_size = min(max(int(page_size or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    return page, page_size


def pagination_meta(page: int, page_size: int, total: int) -> dict:
    total_pages = math.ceil(total / page_size) if total else 0
    return {
        "page": page,
        "pageSize": page_size,
        "totalItems": total,
        "totalPages": total_pages,
        "hasNextPage": page < total_pages,
        "hasPreviousPage": page > 1,
    }


def clean_text(value: Optional[str], field: str = "value") -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    return value or None


LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """Substring ILIKE pattern with the wildcards in ``term`` taken literally."""
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def batch_item_label(raw_name, index: int) -> str:
    """Name to report for a rejected batch entry."""
    if isinstance(raw_name, str) and raw_name.strip():
        return raw_name
    return f"Item {index}"


def unique_ids(ids: Optional[Iterable[str]]) -> list[str]:
    """Drop blanks and duplicates while keeping the caller's order."""
    seen: dict[str, None] = {}
    for item in ids or []:
        if item:
            seen.setdefault(item, None)
    return list(seen)


class NamedEntityService:
    """
    Duplicate-name protocol for entities whose ``name`` column is unique.

    The name-lookup cache is consulted first and a hit is a conflict without a
    database round-trip. On a miss the database is queried by trimmed name and
    any match is backfilled into the lookup before the conflict is raised. The
    unique column stays authoritative: a create that loses a race surfaces as
    an IntegrityError, which ``service_errors`` turns into a conflict.
    """

    row_class = None
    label = "Entity"

    def __init__(self, db: Database, cache: NamedEntityCache):
        self.db = db
        self.cache = cache

    def conflict_message(self, name: str) -> str:
        return f'{self.label} with name "{name}" already exists'

    def _existing_id(self, session, name: str) -> Optional[str]:
        return session.scalars(
            select(self.row_class.id).where(self.row_class.name == name)
        ).first()

    def ensure_name_available(self, name: str, current_id: Optional[str] = None) -> None:
        cached_id = self.cache.get_name_lookup(name)
        if cached_id and cached_id != current_id:
            raise ConflictError(self.conflict_message(name))
        with self.db.Session() as session:
            existing_id = self._existing_id(session, name)
        if existing_id and existing_id != current_id:
            self.cache.set_name_lookup(name, existing_id)
            raise ConflictError(self.conflict_message(name))

    def name_taken(self, session, name: str, backfill: dict) -> bool:
        """Batch variant: database backfills are collected and applied after commit."""
        if self.cache.get_name_lookup(name):
            return True
        existing_id = self._existing_id(session, name)
        if existing_id:
            backfill[name] = existing_id
            return True
        return False
