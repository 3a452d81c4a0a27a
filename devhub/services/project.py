"""
Project operations: paginated reads through the cache and owner-only
mutations that reconcile the tech and contributor association sets.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import joinedload, selectinload

from devhub.cache import ProjectCache
from devhub.db import (
    Database,
    ProjectContributorRow,
    ProjectRow,
    ProjectTechRow,
    TechRow,
    UserRow,
)
from devhub.errors import ForbiddenError, NotFoundError, service_errors
from devhub.services.common import (
    LIKE_ESCAPE,
    clean_text,
    contains_pattern,
    normalize_page,
    pagination_meta,
    unique_ids,
)
from devhub.storage import ImageUpload, ImageUploader

logger = logging.getLogger(__name__)

_LOAD_OPTIONS = (
    selectinload(ProjectRow.creator),
    selectinload(ProjectRow.techs),
    selectinload(ProjectRow.contributors),
)
# Single-project reads fetch the row and its relations in one statement.
_ITEM_OPTIONS = (
    joinedload(ProjectRow.creator),
    joinedload(ProjectRow.techs),
    joinedload(ProjectRow.contributors),
)


def _active_projects():
    return select(ProjectRow).where(ProjectRow.deleted_at.is_(None))


class ProjectService:
    def __init__(self, db: Database, cache: ProjectCache, uploader: ImageUploader):
        self.db = db
        self.cache = cache
        self.uploader = uploader

    # -- reads -----------------------------------------------------------------

    @staticmethod
    def build_filters(
        created_by: Optional[str] = None,
        tech: Optional[str] = None,
        featured: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> dict:
        filters: dict = {}
        if created_by:
            filters["createdBy"] = created_by
        if tech:
            filters["tech"] = tech
        if featured is not None:
            filters["featured"] = featured
        search = clean_text(search)
        if search:
            filters["search"] = search
        return filters

    @staticmethod
    def _filtered(filters: dict):
        stmt = _active_projects()
        if filters.get("createdBy"):
            stmt = stmt.where(ProjectRow.created_by == filters["createdBy"])
        if filters.get("featured") is not None:
            stmt = stmt.where(ProjectRow.featured == filters["featured"])
        if filters.get("search"):
            pattern = contains_pattern(filters["search"])
            stmt = stmt.where(
                or_(
                    ProjectRow.title.ilike(pattern, escape=LIKE_ESCAPE),
                    ProjectRow.description.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )
        if filters.get("tech"):
            stmt = stmt.where(
                ProjectRow.id.in_(
                    select(ProjectTechRow.project_id).where(
                        ProjectTechRow.tech_id == filters["tech"]
                    )
                )
            )
        return stmt

    def _page(self, session, stmt, page: int, page_size: int, total: int) -> dict:
        rows = session.scalars(
            stmt.options(*_LOAD_OPTIONS)
            .order_by(ProjectRow.created_at.desc(), ProjectRow.id)
            .limit(page_size)
            .offset((page - 1) * page_size)
        ).all()
        return {
            "projects": [row.as_dict() for row in rows],
            "pagination": pagination_meta(page, page_size, total),
        }

    @staticmethod
    def _count(session, stmt) -> int:
        return session.scalar(select(func.count()).select_from(stmt.subquery())) or 0

    def list_projects(
        self,
        page: int = 1,
        page_size: int = 10,
        *,
        created_by: Optional[str] = None,
        tech: Optional[str] = None,
        featured: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> dict:
        page, page_size = normalize_page(page, page_size)
        filters = self.build_filters(created_by, tech, featured, search)
        cached = self.cache.get_list(page, page_size, filters)
        if cached is not None:
            return cached

        with service_errors("Failed to retrieve projects"):
            stmt = self._filtered(filters)
            total = self.cache.get_count(filters)
            with self.db.Session() as session:
                count_missed = total is None
                if count_missed:
                    total = self._count(session, stmt)
                result = self._page(session, stmt, page, page_size, total)

        if count_missed:
            self.cache.set_count(total, filters)
        self.cache.set_list(page, page_size, filters, result)
        return result

    def _load(self, session, project_id: str) -> ProjectRow:
        project = session.scalars(
            _active_projects()
            .where(ProjectRow.id == project_id)
            .options(*_ITEM_OPTIONS)
        ).unique().first()
        if project is None:
            raise NotFoundError("Project not found")
        return project

    def get_project(self, project_id: str) -> dict:
        cached = self.cache.get_item(project_id)
        if cached is not None:
            return cached
        with service_errors("Failed to retrieve project"):
            with self.db.Session() as session:
                data = self._load(session, project_id).as_dict()
        self.cache.set_item(project_id, data)
        return data

    def list_user_projects(self, user_id: str, page: int = 1, page_size: int = 10) -> dict:
        """Projects the user created or contributes to."""
        page, page_size = normalize_page(page, page_size)
        cached = self.cache.get_user_projects(user_id, page, page_size)
        if cached is not None:
            return cached

        with service_errors("Failed to retrieve user projects"):
            with self.db.Session() as session:
                if session.get(UserRow, user_id) is None:
                    raise NotFoundError("User not found")
                contributed = select(ProjectContributorRow.project_id).where(
                    ProjectContributorRow.user_id == user_id
                )
                stmt = _active_projects().where(
                    or_(ProjectRow.created_by == user_id, ProjectRow.id.in_(contributed))
                )
                result = self._page(
                    session, stmt, page, page_size, self._count(session, stmt)
                )

        self.cache.set_user_projects(user_id, page, page_size, result)
        return result

    def list_tech_projects(self, tech_id: str, page: int = 1, page_size: int = 10) -> dict:
        page, page_size = normalize_page(page, page_size)
        cached = self.cache.get_tech_projects(tech_id, page, page_size)
        if cached is not None:
            return cached

        with service_errors("Failed to retrieve tech projects"):
            with self.db.Session() as session:
                tech = session.get(TechRow, tech_id)
                if tech is None or tech.deleted_at is not None:
                    raise NotFoundError("Tech not found")
                stmt = self._filtered({"tech": tech_id})
                result = self._page(
                    session, stmt, page, page_size, self._count(session, stmt)
                )

        self.cache.set_tech_projects(tech_id, page, page_size, result)
        return result

    # -- association helpers ---------------------------------------------------

    @staticmethod
    def _resolve_techs(session, tech_ids: Iterable[str]) -> list[str]:
        wanted = unique_ids(tech_ids)
        if not wanted:
            return []
        found = set(
            session.scalars(
                select(TechRow.id).where(
                    TechRow.id.in_(wanted), TechRow.deleted_at.is_(None)
                )
            )
        )
        missing = [tech_id for tech_id in wanted if tech_id not in found]
        if missing:
            raise NotFoundError(f"Techs not found: {', '.join(missing)}")
        return wanted

    @staticmethod
    def _resolve_contributors(session, user_ids: Iterable[str], creator_id: str) -> list[str]:
        # The creator is implicitly a member and never stored as a contributor.
        wanted = [uid for uid in unique_ids(user_ids) if uid != creator_id]
        if not wanted:
            return []
        found = set(session.scalars(select(UserRow.id).where(UserRow.id.in_(wanted))))
        missing = [uid for uid in wanted if uid not in found]
        if missing:
            raise NotFoundError(f"Users not found: {', '.join(missing)}")
        return wanted

    @staticmethod
    def _associated(session, model, column: str, project_id: str) -> set[str]:
        return set(
            session.scalars(
                select(getattr(model, column)).where(model.project_id == project_id)
            )
        )

    def _replace_associations(
        self, session, model, column: str, project_id: str, desired: list[str]
    ) -> None:
        """Make the stored set equal ``desired``."""
        current = self._associated(session, model, column, project_id)
        stale = current - set(desired)
        if stale:
            session.execute(
                delete(model).where(
                    model.project_id == project_id, getattr(model, column).in_(stale)
                )
            )
        for other_id in desired:
            if other_id not in current:
                session.add(model(project_id=project_id, **{column: other_id}))

    def _add_associations(
        self, session, model, column: str, project_id: str, ids: list[str]
    ) -> None:
        current = self._associated(session, model, column, project_id)
        for other_id in ids:
            if other_id not in current:
                session.add(model(project_id=project_id, **{column: other_id}))

    @staticmethod
    def _remove_associations(
        session, model, column: str, project_id: str, ids: list[str]
    ) -> None:
        if ids:
            session.execute(
                delete(model).where(
                    model.project_id == project_id, getattr(model, column).in_(ids)
                )
            )

    def _owned(self, session, project_id: str, user_id: str, action: str) -> ProjectRow:
        project = session.scalars(
            _active_projects().where(ProjectRow.id == project_id)
        ).first()
        if project is None:
            raise NotFoundError("Project not found")
        if project.created_by != user_id:
            raise ForbiddenError(f"You are not authorized to {action} this project")
        return project

    def _invalidate(self, project_id: str) -> None:
        # The project:* sweep also clears the user and tech index pages.
        self.cache.invalidate_entity(project_id)
        self.cache.invalidate_all()

    def _fetch(self, project_id: str) -> dict:
        with self.db.Session() as session:
            return self._load(session, project_id).as_dict()

    # -- mutations -------------------------------------------------------------

    def create_project(
        self, data: dict, user_id: str, image: Optional[ImageUpload] = None
    ) -> dict:
        with service_errors("Failed to create project"):
            with self.db.Session() as session, session.begin():
                if session.get(UserRow, user_id) is None:
                    raise NotFoundError("User not found")
                project = ProjectRow(
                    title=data["title"].strip(),
                    description=clean_text(data.get("description")),
                    repo_link=clean_text(data.get("repo_link")),
                    featured=bool(data.get("featured", False)),
                    created_by=user_id,
                )
                session.add(project)
                session.flush()
                project_id = project.id

                tech_ids = self._resolve_techs(session, data.get("techs") or [])
                contributor_ids = self._resolve_contributors(
                    session, data.get("contributors") or [], user_id
                )
                self._replace_associations(
                    session, ProjectTechRow, "tech_id", project_id, tech_ids
                )
                self._replace_associations(
                    session, ProjectContributorRow, "user_id", project_id, contributor_ids
                )
                if image is not None:
                    project.cover_image = self.uploader.upload(
                        image, f"project_cover_{project_id}"
                    )

            logger.info("Project %s created by %s", project_id, user_id)
            self._invalidate(project_id)
            return self._fetch(project_id)

    def update_project(
        self,
        project_id: str,
        data: dict,
        user_id: str,
        image: Optional[ImageUpload] = None,
    ) -> dict:
        """
        Apply a partial update. ``techs``/``contributors``, when present, replace
        the stored sets (an empty list clears them). A ``cover_image`` of None or
        "" removes the image; a new upload replaces it. Replaced images are
        removed from storage only once the update has committed.
        """
        replaced_image = None
        with service_errors("Failed to update project"):
            with self.db.Session() as session, session.begin():
                project = self._owned(session, project_id, user_id, "update")
                if "title" in data and data["title"] is not None:
                    project.title = data["title"].strip()
                if "description" in data:
                    project.description = clean_text(data["description"])
                if "repo_link" in data:
                    project.repo_link = clean_text(data["repo_link"])
                if "featured" in data and data["featured"] is not None:
                    project.featured = bool(data["featured"])

                if image is not None:
                    replaced_image = project.cover_image
                    project.cover_image = self.uploader.upload(
                        image, f"project_cover_{project_id}"
                    )
                elif "cover_image" in data:
                    new_cover = clean_text(data["cover_image"])
                    if new_cover != project.cover_image:
                        replaced_image = project.cover_image
                        project.cover_image = new_cover

                if data.get("techs") is not None:
                    tech_ids = self._resolve_techs(session, data["techs"])
                    self._replace_associations(
                        session, ProjectTechRow, "tech_id", project_id, tech_ids
                    )

                if data.get("contributors") is not None:
                    contributor_ids = self._resolve_contributors(
                        session, data["contributors"], user_id
                    )
                    self._replace_associations(
                        session, ProjectContributorRow, "user_id", project_id, contributor_ids
                    )
                project.updated_at = time.time()
                current_cover = project.cover_image

            self._invalidate(project_id)
            self.uploader.delete_quietly(replaced_image, keep=current_cover)
            return self._fetch(project_id)

    def delete_project(self, project_id: str, user_id: str) -> None:
        with service_errors("Failed to delete project"):
            with self.db.Session() as session, session.begin():
                project = self._owned(session, project_id, user_id, "delete")
                cover_image = project.cover_image
                project.deleted_at = time.time()

            logger.info("Project %s deleted by %s", project_id, user_id)
            self._invalidate(project_id)
            self.uploader.delete_quietly(cover_image)

    def add_techs(self, project_id: str, tech_ids: list[str], user_id: str) -> dict:
        with service_errors("Failed to add techs to project"):
            with self.db.Session() as session, session.begin():
                self._owned(session, project_id, user_id, "update")
                wanted = self._resolve_techs(session, tech_ids)
                self._add_associations(session, ProjectTechRow, "tech_id", project_id, wanted)

            self._invalidate(project_id)
            return self._fetch(project_id)

    def remove_techs(self, project_id: str, tech_ids: list[str], user_id: str) -> dict:
        with service_errors("Failed to remove techs from project"):
            wanted = unique_ids(tech_ids)
            with self.db.Session() as session, session.begin():
                self._owned(session, project_id, user_id, "update")
                self._remove_associations(
                    session, ProjectTechRow, "tech_id", project_id, wanted
                )

            self._invalidate(project_id)
            return self._fetch(project_id)

    def add_contributors(
        self, project_id: str, contributor_ids: list[str], user_id: str
    ) -> dict:
        with service_errors("Failed to add contributors to project"):
            with self.db.Session() as session, session.begin():
                project = self._owned(session, project_id, user_id, "update")
                wanted = self._resolve_contributors(
                    session, contributor_ids, project.created_by
                )
                self._add_associations(
                    session, ProjectContributorRow, "user_id", project_id, wanted
                )

            if wanted:
                self._invalidate(project_id)
            return self._fetch(project_id)

    def remove_contributors(
        self, project_id: str, contributor_ids: list[str], user_id: str
    ) -> dict:
        with service_errors("Failed to remove contributors from project"):
            with self.db.Session() as session, session.begin():
                project = self._owned(session, project_id, user_id, "update")
                wanted = [
                    uid for uid in unique_ids(contributor_ids) if uid != project.created_by
                ]
                self._remove_associations(
                    session, ProjectContributorRow, "user_id", project_id, wanted
                )

            if wanted:
                self._invalidate(project_id)
            return self._fetch(project_id)
