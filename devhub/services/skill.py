"""
Skill catalog operations.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import delete, func, select

from devhub.cache import SkillCache
from devhub.db import Database, SkillRow, user_skills
from devhub.errors import NotFoundError, ValidationError, service_errors
from devhub.services.common import (
    NamedEntityService,
    batch_item_label,
    clean_text,
    normalize_page,
    pagination_meta,
)

logger = logging.getLogger(__name__)


class SkillService(NamedEntityService):
    row_class = SkillRow
    label = "Skill"

    def __init__(self, db: Database, cache: SkillCache):
        super().__init__(db, cache)

    def list_skills(self, page: int = 1, page_size: int = 10) -> dict:
        page, page_size = normalize_page(page, page_size)
        cached = self.cache.get_list(page, page_size)
        if cached is not None:
            return cached

        with service_errors("Failed to retrieve skills"):
            total = self.cache.get_count()
            count_missed = total is None
            with self.db.Session() as session:
                if count_missed:
                    total = session.scalar(select(func.count(SkillRow.id))) or 0
                rows = session.scalars(
                    select(SkillRow)
                    .order_by(SkillRow.name)
                    .limit(page_size)
                    .offset((page - 1) * page_size)
                ).all()
                skills = [row.as_dict() for row in rows]

        result = {"skills": skills, "pagination": pagination_meta(page, page_size, total)}
        if count_missed:
            self.cache.set_count(total)
        self.cache.set_list(page, page_size, None, result)
        return result

    @staticmethod
    def _existing(session, skill_id: str) -> SkillRow:
        skill = session.get(SkillRow, skill_id)
        if skill is None:
            raise NotFoundError("Skill not found")
        return skill

    def get_skill(self, skill_id: str) -> dict:
        cached = self.cache.get_item(skill_id)
        if cached is not None:
            return cached
        with service_errors("Failed to retrieve skill"):
            with self.db.Session() as session:
                data = self._existing(session, skill_id).as_dict()
        self.cache.set_item(skill_id, data)
        return data

    @staticmethod
    def _validated_name(name: Optional[str]) -> str:
        if name is not None and not isinstance(name, str):
            raise ValidationError("Skill name must be a string")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Skill name is required")
        return name

    def create_skill(self, data: dict, created_by: Optional[str] = None) -> dict:
        name = self._validated_name(data.get("name"))
        with service_errors("Failed to create skill", self.conflict_message(name)):
            self.ensure_name_available(name)
            with self.db.Session() as session, session.begin():
                skill = SkillRow(
                    name=name,
                    description=clean_text(data.get("description")),
                    created_by=created_by,
                )
                session.add(skill)
                session.flush()
                payload = skill.as_dict()

        logger.info("Skill %s created: %s", payload["id"], name)
        self.cache.invalidate_all()
        self.cache.set_item(payload["id"], payload)
        self.cache.set_name_lookup(name, payload["id"])
        return payload

    def update_skill(self, skill_id: str, data: dict) -> dict:
        with service_errors("Failed to update skill"):
            with self.db.Session() as session:
                old_name = self._existing(session, skill_id).name

            new_name = None
            if data.get("name") is not None:
                new_name = self._validated_name(data["name"])
            renamed = new_name is not None and new_name != old_name
            if renamed:
                self.ensure_name_available(new_name, current_id=skill_id)

            with self.db.Session() as session, session.begin():
                skill = self._existing(session, skill_id)
                if renamed:
                    skill.name = new_name
                if "description" in data:
                    skill.description = clean_text(data["description"])
                skill.updated_at = time.time()
                session.flush()
                payload = skill.as_dict()

        self.cache.invalidate_all()
        self.cache.set_item(skill_id, payload)
        if renamed:
            self.cache.invalidate_name(old_name)
            self.cache.set_name_lookup(new_name, skill_id)
        return payload

    def delete_skill(self, skill_id: str) -> None:
        with service_errors("Failed to delete skill"):
            with self.db.Session() as session, session.begin():
                skill = self._existing(session, skill_id)
                name = skill.name
                session.execute(delete(user_skills).where(user_skills.c.skill_id == skill_id))
                session.delete(skill)

        logger.info("Skill %s deleted", skill_id)
        self.cache.invalidate_entity(skill_id)
        self.cache.invalidate_all()
        self.cache.invalidate_name(name)

    def _batch_fields(self, item) -> tuple[str, Optional[str]]:
        if not isinstance(item, dict):
            raise ValidationError("Skill entry must be an object")
        return (
            self._validated_name(item.get("name")),
            clean_text(item.get("description"), "description"),
        )

    def batch_create_skills(
        self, items: list[dict], created_by: Optional[str] = None
    ) -> dict:
        created: list[dict] = []
        skipped: list[dict] = []
        errors: list[dict] = []
        backfill: dict[str, str] = {}
        with service_errors("Failed to batch create skills", "Duplicate skill name in batch"):
            with self.db.Session() as session, session.begin():
                seen: set[str] = set()
                pending: list[SkillRow] = []
                for index, item in enumerate(items):
                    raw_name = item.get("name") if isinstance(item, dict) else None
                    try:
                        name, description = self._batch_fields(item)
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
                                "reason": "Skill with this name already exists",
                            }
                        )
                        continue
                    seen.add(name)
                    skill = SkillRow(
                        name=name,
                        description=description,
                        created_by=created_by,
                    )
                    session.add(skill)
                    pending.append(skill)
                session.flush()
                created = [skill.as_dict() for skill in pending]

        if created:
            self.cache.invalidate_all()
        for skill in created:
            self.cache.set_name_lookup(skill["name"], skill["id"])
        for name, existing_id in backfill.items():
            self.cache.set_name_lookup(name, existing_id)
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
