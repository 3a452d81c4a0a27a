"""
Tech catalog operations.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from devhub.cache import ProjectCache, TechCache
from devhub.db import Database, TechRow
from devhub.errors import ForbiddenError, NotFoundError, ValidationError, service_errors
from devhub.services.common import (
    LIKE_ESCAPE,
    NamedEntityService,
    batch_item_label,
    clean_text,
    contains_pattern,
    normalize_page,
    pagination_meta,
)
from devhub.storage import ImageUpload, ImageUploader

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255


def _active_techs():
    return select(TechRow).where(TechRow.deleted_at.is_(None))


class TechService(NamedEntityService):
    row_class = TechRow
    label = "Tech"

    def __init__(
        self,
        db: Database,
        cache: TechCache,
        project_cache: ProjectCache,
        uploader: ImageUploader,
    ):
        super().__init__(db, cache)
        self.project_cache = project_cache
        self.uploader = uploader

    def list_techs(self, page: int = 1, page_size: int = 10, search: str = "") -> dict:
        page, page_size = normalize_page(page, page_size)
        filters = TechCache.search_filters(search)
        cached = self.cache.get_list(page, page_size, filters)
        if cached is not None:
            return cached

        term = (search or "").strip()
        stmt = _active_techs()
        if term:
            stmt = stmt.where(
                TechRow.name.ilike(contains_pattern(term), escape=LIKE_ESCAPE)
            )

        with service_errors("Failed to retrieve techs"):
            total = self.cache.get_count(filters)
            count_missed = total is None
            with self.db.Session() as session:
                if count_missed:
                    total = (
                        session.scalar(select(func.count()).select_from(stmt.subquery()))
                        or 0
                    )
                rows = session.scalars(
                    stmt.order_by(TechRow.name)
                    .limit(page_size)
                    .offset((page - 1) * page_size)
                ).all()
                techs = [row.as_dict() for row in rows]

        pagination = pagination_meta(page, page_size, total)
        pagination["search"] = term
        result = {"techs": techs, "pagination": pagination}
        if count_missed:
            self.cache.set_count(total, filters)
        self.cache.set_list(page, page_size, filters, result)
        return result

    def _active(self, session, tech_id: str, with_creator: bool = False) -> TechRow:
        stmt = _active_techs().where(TechRow.id == tech_id)
        if with_creator:
            stmt = stmt.options(selectinload(TechRow.creator))
        tech = session.scalars(stmt).first()
        if tech is None:
            raise NotFoundError("Tech not found")
        return tech

    def get_tech(self, tech_id: str) -> dict:
        cached = self.cache.get_item(tech_id)
        if cached is not None:
            return cached
        with service_errors("Failed to retrieve tech"):
            with self.db.Session() as session:
                data = self._active(session, tech_id, with_creator=True).as_dict(
                    include_creator=True
                )
        self.cache.set_item(tech_id, data)
        return data

    def search_techs(self, term: str, limit: int = 10) -> list[dict]:
        """Name autocomplete; uncached since terms rarely repeat."""
        term = (term or "").strip()
        if not term:
            return []
        limit = min(max(int(limit or 10), 1), 50)
        with service_errors("Failed to search techs"):
            with self.db.Session() as session:
                rows = session.scalars(
                    _active_techs()
                    .where(
                        TechRow.name.ilike(contains_pattern(term), escape=LIKE_ESCAPE)
                    )
                    .order_by(TechRow.name)
                    .limit(limit)
                ).all()
                return [row.as_summary() for row in rows]

    @staticmethod
    def _validated_name(name: Optional[str]) -> str:
        if name is not None and not isinstance(name, str):
            raise ValidationError("Tech name must be a string")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Tech name is required")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError(
                f"Tech name must be at most {MAX_NAME_LENGTH} characters"
            )
        return name

    def _invalidate_tech(self, tech_id: str) -> None:
        self.cache.invalidate_entity(tech_id)
        self.cache.invalidate_all()
        # Project payloads embed tech summaries.
        self.project_cache.invalidate_all()

    def create_tech(self, data: dict, created_by: Optional[str] = None) -> dict:
        name = self._validated_name(data.get("name"))
        with service_errors("Failed to create tech", self.conflict_message(name)):
            self.ensure_name_available(name)
            with self.db.Session() as session, session.begin():
                tech = TechRow(
                    name=name,
                    icon=clean_text(data.get("icon")),
                    description=clean_text(data.get("description")),
                    created_by=created_by,
                )
                session.add(tech)
                session.flush()
                payload = tech.as_dict()

        logger.info("Tech %s created: %s", payload["id"], name)
        self.cache.invalidate_all()
        self.cache.set_name_lookup(name, payload["id"])
        return payload

    def update_tech(self, tech_id: str, data: dict) -> dict:
        with service_errors("Failed to update tech"):
            with self.db.Session() as session:
                old_name = self._active(session, tech_id).name

            new_name = None
            if data.get("name") is not None:
                new_name = self._validated_name(data["name"])
            renamed = new_name is not None and new_name != old_name
            if renamed:
                self.ensure_name_available(new_name, current_id=tech_id)

            with self.db.Session() as session, session.begin():
                tech = self._active(session, tech_id)
                if renamed:
                    tech.name = new_name
                if "icon" in data:
                    tech.icon = clean_text(data["icon"])
                if "description" in data:
                    tech.description = clean_text(data["description"])
                tech.updated_at = time.time()
                session.flush()
                payload = tech.as_dict()

        self._invalidate_tech(tech_id)
        if renamed:
            self.cache.invalidate_name(old_name)
            self.cache.set_name_lookup(new_name, tech_id)
        return payload

    def delete_tech(self, tech_id: str) -> None:
        """Soft delete; the name stays reserved by the unique column."""
        with service_errors("Failed to delete tech"):
            with self.db.Session() as session, session.begin():
                tech = self._active(session, tech_id)
                name = tech.name
                tech.deleted_at = time.time()

        logger.info("Tech %s deleted", tech_id)
        self._invalidate_tech(tech_id)
        self.cache.invalidate_name(name)

    def _batch_fields(self, item) -> tuple[str, Optional[str], Optional[str]]:
        if not isinstance(item, dict):
            raise ValidationError("Tech entry must be an object")
        return (
            self._validated_name(item.get("name")),
            clean_text(item.get("icon"), "icon"),
            clean_text(item.get("description"), "description"),
        )

    def batch_create_techs(
        self, items: list[dict], created_by: Optional[str] = None
    ) -> dict:
        """
        Create several techs in one transaction. Items with a blank or overlong
        name are reported under ``errors``; names that already exist (or repeat
        earlier in the batch) are reported under ``skipped``.
        """
        created: list[dict] = []
        skipped: list[dict] = []
        errors: list[dict] = []
        backfill: dict[str, str] = {}
        with service_errors("Failed to batch create techs", "Duplicate tech name in batch"):
            with self.db.Session() as session, session.begin():
                seen: set[str] = set()
                pending: list[TechRow] = []
                for index, item in enumerate(items):
                    raw_name = item.get("name") if isinstance(item, dict) else None
                    try:
                        name, icon, description = self._batch_fields(item)
                    except ValidationError as exc:
                        errors.append(
                            {
                                "index": index,
                                "name": batch_item_label(raw_name, index),
                                "error": exc.message,
                            }
                        )
                        continue
                    if name in seen or self.name_taken(session, name, backfill):
                        skipped.append(
                            {
                                "index": index,
                                "name": name,
                                "reason": "Tech with this name already exists",
                            }
                        )
                        continue
                    seen.add(name)
                    tech = TechRow(
                        name=name,
                        icon=icon,
                        description=description,
                        created_by=created_by,
                    )
                    session.add(tech)
                    pending.append(tech)
                session.flush()
                created = [tech.as_dict() for tech in pending]

        if created:
            self.cache.invalidate_all()
        for tech in created:
            self.cache.set_name_lookup(tech["name"], tech["id"])
        for name, existing_id in backfill.items():
            self.cache.set_name_lookup(name, existing_id)
        logger.info(
            "Batch tech create: %d created, %d skipped, %d errors",
            len(created),
            len(skipped),
            len(errors),
        )
        return {
            "created": created,
            "skipped": skipped,
            "errors": errors,
            "summary": {
                "total": len(items),
                "created": len(created),
                "skipped": len(skipped),
                "errors": len(errors),
            },
        }

    def update_tech_icon(
        self, tech_id: str, image: ImageUpload, user_id: str, is_admin: bool = False
    ) -> dict:
        with service_errors("Failed to update tech icon"):
            with self.db.Session() as session, session.begin():
                tech = self._active(session, tech_id)
                if not is_admin and tech.created_by != user_id:
                    raise ForbiddenError(
                        "You do not have permission to update this tech's icon"
                    )
                old_icon = tech.icon
                tech.icon = self.uploader.upload(image, f"tech_icon_{tech_id}")
                tech.updated_at = time.time()
                session.flush()
                payload = tech.as_dict()

        self._invalidate_tech(tech_id)
        self.uploader.delete_quietly(old_icon, keep=payload["icon"])
        return payload
