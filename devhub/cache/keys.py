"""
Deterministic cache key builders.

Every cacheable query shape maps to exactly one key. Filter sets are rendered
with their keys sorted so call-site ordering never changes the key.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def filter_string(filters: Optional[Mapping[str, Any]] = None) -> str:
    """Render ``{"b": 2, "a": 1}`` as ``a:1:b:2``; ``None`` values are dropped."""
    if not filters:
        return ""
    return ":".join(
        f"{key}:{_render(value)}"
        for key, value in sorted(filters.items())
        if value is not None
    )


def normalize_name(name: str) -> str:
    return name.strip().lower()


def item_key(entity: str, entity_id: str) -> str:
    return f"{entity}:{entity_id}"


def list_key(
    entity: str,
    page: int,
    page_size: int,
    filters: Optional[Mapping[str, Any]] = None,
) -> str:
    return f"{entity}:list:page:{page}:pageSize:{page_size}:{filter_string(filters)}"


def count_key(entity: str, filters: Optional[Mapping[str, Any]] = None) -> str:
    return f"{entity}:count:{filter_string(filters)}"


def name_key(entity: str, name: str) -> str:
    return f"{entity}:name:{normalize_name(name)}"


def index_key(
    entity: str, index: str, owner_id: str, page: int, page_size: int
) -> str:
    """Secondary index such as ``project:tech:{techId}:page:1:pageSize:10``."""
    return f"{entity}:{index}:{owner_id}:page:{page}:pageSize:{page_size}"
