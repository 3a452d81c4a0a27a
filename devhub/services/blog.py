"""
Blog post operations. Authors manage their own posts; ADMIN and above may
manage any post.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from devhub.cache import BlogCache
from devhub.db import BlogRow, Database, UserRow
from devhub.errors import ForbiddenError, NotFoundError, service_errors
from devhub.services.common import (
    LIKE_ESCAPE,
    clean_text,
    contains_pattern,
    normalize_page,
    pagination_meta,
)
from devhub.storage import ImageUpload, ImageUploader

logger = logging.getLogger(__name__)


class BlogService:
    def __init__(self, db: Database, cache: BlogCache, uploader: ImageUploader):
        self.db = db
        self.cache = cache
        self.uploader = uploader

    def list_blogs(
        self,
        page: int = 1,
        page_size: int = 10,
        *,
        featured: Optional[bool] = None,
        topic: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> dict:
        page, page_size = normalize_page(page, page_size)
        topic = clean_text(topic)
        filters = {"featured": featured, "topic": topic, "createdBy": created_by or None}
        cached = self.cache.get_list(page, page_size, filters)
        if cached is not None:
            return cached

        stmt = select(BlogRow)
        if featured is not None:
            stmt = stmt.where(BlogRow.featured == featured)
        if topic:
            stmt = stmt.where(
                BlogRow.topic.ilike(contains_pattern(topic), escape=LIKE_ESCAPE)
            )
        if created_by:
            stmt = stmt.where(BlogRow.created_by == created_by)

        with service_errors("Failed to retrieve blogs"):
            total = self.cache.get_count(filters)
            count_missed = total is None
            with self.db.Session() as session:
                if count_missed:
                    total = (
                        session.scalar(select(func.count()).select_from(stmt.subquery()))
                        or 0
                    )
                rows = session.scalars(
                    stmt.options(selectinload(BlogRow.author))
                    .order_by(BlogRow.created_at.desc(), BlogRow.id)
                    .limit(page_size)
                    .offset((page - 1) * page_size)
                ).all()
                blogs = [row.as_dict() for row in rows]

        result = {"blogs": blogs, "pagination": pagination_meta(page, page_size, total)}
        if count_missed:
            self.cache.set_count(total, filters)
        self.cache.set_list(page, page_size, filters, result)
        return result

    @staticmethod
    def _existing(session, blog_id: str) -> BlogRow:
        blog = session.scalars(
            select(BlogRow)
            .where(BlogRow.id == blog_id)
            .options(selectinload(BlogRow.author))
        ).first()
        if blog is None:
            raise NotFoundError("Blog not found")
        return blog

    def _editable(self, session, blog_id: str, user_id: str, is_admin: bool) -> BlogRow:
        blog = self._existing(session, blog_id)
        if not is_admin and blog.created_by != user_id:
            raise ForbiddenError("You are not authorized to modify this blog")
        return blog

    def get_blog(self, blog_id: str) -> dict:
        cached = self.cache.get_item(blog_id)
        if cached is not None:
            return cached
        with service_errors("Failed to retrieve blog"):
            with self.db.Session() as session:
                data = self._existing(session, blog_id).as_dict()
        self.cache.set_item(blog_id, data)
        return data

    def _invalidate(self, blog_id: str) -> None:
        self.cache.invalidate_entity(blog_id)
        self.cache.invalidate_all()

    def create_blog(
        self, data: dict, user_id: str, image: Optional[ImageUpload] = None
    ) -> dict:
        with service_errors("Failed to create blog"):
            with self.db.Session() as session, session.begin():
                if session.get(UserRow, user_id) is None:
                    raise NotFoundError("User not found")
                blog = BlogRow(
                    title=data["title"].strip(),
                    body=data["body"],
                    description=clean_text(data.get("description")),
                    topic=clean_text(data.get("topic")),
                    featured=bool(data.get("featured", False)),
                    created_by=user_id,
                )
                session.add(blog)
                session.flush()
                blog_id = blog.id
                if image is not None:
                    blog.cover_image = self.uploader.upload(image, f"blog_cover_{blog_id}")

            logger.info("Blog %s created by %s", blog_id, user_id)
            self._invalidate(blog_id)
            return self.get_blog(blog_id)

    def update_blog(
        self, blog_id: str, data: dict, user_id: str, is_admin: bool = False
    ) -> dict:
        replaced_image = None
        with service_errors("Failed to update blog"):
            with self.db.Session() as session, session.begin():
                blog = self._editable(session, blog_id, user_id, is_admin)
                if data.get("title") is not None:
                    blog.title = data["title"].strip()
                if data.get("body") is not None:
                    blog.body = data["body"]
                if "description" in data:
                    blog.description = clean_text(data["description"])
                if "topic" in data:
                    blog.topic = clean_text(data["topic"])
                if data.get("featured") is not None:
                    blog.featured = bool(data["featured"])
                if "cover_image" in data:
                    new_cover = clean_text(data["cover_image"])
                    if new_cover != blog.cover_image:
                        replaced_image = blog.cover_image
                        blog.cover_image = new_cover
                blog.updated_at = time.time()
                current_cover = blog.cover_image

            self._invalidate(blog_id)
            self.uploader.delete_quietly(replaced_image, keep=current_cover)
            return self.get_blog(blog_id)

    def update_blog_cover(
        self, blog_id: str, image: ImageUpload, user_id: str, is_admin: bool = False
    ) -> dict:
        with service_errors("Failed to update blog cover"):
            with self.db.Session() as session, session.begin():
                blog = self._editable(session, blog_id, user_id, is_admin)
                old_cover = blog.cover_image
                blog.cover_image = self.uploader.upload(image, f"blog_cover_{blog_id}")
                blog.updated_at = time.time()
                new_cover = blog.cover_image

            self._invalidate(blog_id)
            self.uploader.delete_quietly(old_cover, keep=new_cover)
            return self.get_blog(blog_id)

    def delete_blog(self, blog_id: str, user_id: str, is_admin: bool = False) -> None:
        with service_errors("Failed to delete blog"):
            with self.db.Session() as session, session.begin():
                blog = self._editable(session, blog_id, user_id, is_admin)
                cover_image = blog.cover_image
                session.delete(blog)

        logger.info("Blog %s deleted by %s", blog_id, user_id)
        self._invalidate(blog_id)
        self.uploader.delete_quietly(cover_image)
