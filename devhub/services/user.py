"""
Accounts, profiles, user skills and role assignment.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, func, insert, select
from sqlalchemy.orm import selectinload

from devhub.cache import BlogCache, ProjectCache, TechCache
from devhub.db import Database, SkillRow, UserRow, user_skills
from devhub.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    service_errors,
)
from devhub.roles import Role
from devhub.security import TokenCodec, hash_password, verify_password
from devhub.services.common import normalize_page, pagination_meta
from devhub.storage import ImageUpload, ImageUploader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated caller, resolved from the access token."""

    id: str
    email: str
    fullname: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role.at_least(Role.ADMIN)

    @classmethod
    def from_row(cls, row: UserRow) -> "CurrentUser":
        return cls(id=row.id, email=row.email, fullname=row.fullname, role=Role(row.role))


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class UserService:
    def __init__(
        self,
        db: Database,
        tokens: TokenCodec,
        uploader: ImageUploader,
        project_cache: ProjectCache,
        blog_cache: BlogCache,
        tech_cache: TechCache,
    ):
        self.db = db
        self.tokens = tokens
        self.uploader = uploader
        self.project_cache = project_cache
        self.blog_cache = blog_cache
        self.tech_cache = tech_cache

    # -- authentication --------------------------------------------------------

    def _session_payload(self, user: UserRow) -> dict:
        return {
            "user": user.as_dict(),
            "accessToken": self.tokens.encode(user.id, user.role),
            "tokenType": "bearer",
        }

    def signup(self, fullname: str, email: str, password: str) -> dict:
        email = _normalize_email(email)
        with service_errors("Failed to create account", "Email already in use"):
            with self.db.Session() as session, session.begin():
                exists = session.scalar(select(UserRow.id).where(UserRow.email == email))
                if exists:
                    raise ConflictError("Email already in use")
                user = UserRow(
                    fullname=fullname.strip(),
                    email=email,
                    password=hash_password(password),
                    role=Role.USER.value,
                )
                session.add(user)
                session.flush()
                payload = self._session_payload(user)
        logger.info("User %s signed up", payload["user"]["id"])
        return payload

    def signin(self, email: str, password: str) -> dict:
        email = _normalize_email(email)
        with service_errors("Failed to sign in"):
            with self.db.Session() as session:
                user = session.scalars(select(UserRow).where(UserRow.email == email)).first()
                if user is None or not verify_password(password, user.password):
                    raise UnauthorizedError("Invalid email or password")
                return self._session_payload(user)

    def resolve_token(self, token: str) -> CurrentUser:
        user_id = self.tokens.decode_subject(token)
        with self.db.Session() as session:
            user = session.get(UserRow, user_id)
            if user is None:
                raise UnauthorizedError("User not found. Token may be invalid.")
            return CurrentUser.from_row(user)

    # -- profile ---------------------------------------------------------------

    @staticmethod
    def _existing(session, user_id: str, with_skills: bool = False) -> UserRow:
        stmt = select(UserRow).where(UserRow.id == user_id)
        if with_skills:
            stmt = stmt.options(selectinload(UserRow.skills))
        user = session.scalars(stmt).first()
        if user is None:
            raise NotFoundError("User not found")
        return user

    def get_profile(self, user_id: str) -> dict:
        with service_errors("Failed to retrieve profile"):
            with self.db.Session() as session:
                user = self._existing(session, user_id, with_skills=True)
                profile = user.as_dict()
                profile["skills"] = [skill.as_dict() for skill in user.skills]
                return profile

    def _invalidate_embedded_user(self) -> None:
        # Project, blog and tech payloads embed creator summaries.
        self.project_cache.invalidate_all()
        self.blog_cache.invalidate_all()
        self.tech_cache.invalidate_all()

    def update_profile(self, user_id: str, data: dict) -> dict:
        with service_errors("Failed to update profile", "Email already in use"):
            with self.db.Session() as session, session.begin():
                user = self._existing(session, user_id)
                if data.get("email") is not None:
                    email = _normalize_email(data["email"])
                    if email != user.email:
                        taken = session.scalar(
                            select(UserRow.id).where(
                                UserRow.email == email, UserRow.id != user_id
                            )
                        )
                        if taken:
                            raise ConflictError("Email already in use")
                        user.email = email
                if data.get("fullname") is not None:
                    user.fullname = data["fullname"].strip()
                user.updated_at = time.time()

        self._invalidate_embedded_user()
        return self.get_profile(user_id)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        with service_errors("Failed to change password"):
            with self.db.Session() as session, session.begin():
                user = self._existing(session, user_id)
                if not verify_password(current_password, user.password):
                    raise ValidationError("Current password is incorrect")
                if current_password == new_password:
                    raise ValidationError(
                        "New password must be different from current password"
                    )
                user.password = hash_password(new_password)
                user.updated_at = time.time()
        logger.info("Password changed for user %s", user_id)

    def upload_profile_picture(self, user_id: str, image: ImageUpload) -> dict:
        with service_errors("Failed to upload profile picture"):
            with self.db.Session() as session, session.begin():
                user = self._existing(session, user_id)
                old_picture = user.profile_picture
                user.profile_picture = self.uploader.upload(
                    image, f"profile_picture_{user_id}"
                )
                user.updated_at = time.time()
                payload = user.as_dict()

        self._invalidate_embedded_user()
        self.uploader.delete_quietly(old_picture, keep=payload["profilePicture"])
        return payload

    def delete_account(self, user_id: str, reason: Optional[str] = None) -> None:
        """Hard delete; owned projects and blogs cascade, catalog rows keep a null creator."""
        with service_errors("Failed to delete account"):
            with self.db.Session() as session, session.begin():
                user = self._existing(session, user_id)
                picture = user.profile_picture
                session.delete(user)

        logger.info("Account %s deleted (reason=%s)", user_id, reason or "none given")
        self._invalidate_embedded_user()
        self.uploader.delete_quietly(picture)

    def list_users(self, page: int = 1, page_size: int = 10) -> dict:
        page, page_size = normalize_page(page, page_size)
        with service_errors("Failed to fetch users"):
            with self.db.Session() as session:
                total = session.scalar(select(func.count(UserRow.id))) or 0
                rows = session.scalars(
                    select(UserRow)
                    .order_by(UserRow.created_at.desc(), UserRow.id)
                    .limit(page_size)
                    .offset((page - 1) * page_size)
                ).all()
                users = [row.as_dict() for row in rows]
        return {"users": users, "pagination": pagination_meta(page, page_size, total)}

    # -- skills ----------------------------------------------------------------

    def list_user_skills(self, user_id: str) -> list[dict]:
        with service_errors("Failed to fetch user skills"):
            with self.db.Session() as session:
                user = self._existing(session, user_id, with_skills=True)
                return [skill.as_dict() for skill in user.skills]

    def add_skill_to_user(self, user_id: str, skill_id: str) -> list[dict]:
        with service_errors("Failed to add skill to user", "User already has this skill"):
            with self.db.Session() as session, session.begin():
                self._existing(session, user_id)
                if session.get(SkillRow, skill_id) is None:
                    raise NotFoundError("Skill not found")
                held = session.scalar(
                    select(user_skills.c.skill_id).where(
                        user_skills.c.user_id == user_id,
                        user_skills.c.skill_id == skill_id,
                    )
                )
                if held:
                    raise ConflictError("User already has this skill")
                session.execute(
                    insert(user_skills).values(
                        user_id=user_id, skill_id=skill_id, created_at=time.time()
                    )
                )
        return self.list_user_skills(user_id)

    def remove_skill_from_user(self, user_id: str, skill_id: str) -> list[dict]:
        with service_errors("Failed to remove skill from user"):
            with self.db.Session() as session, session.begin():
                self._existing(session, user_id)
                session.execute(
                    delete(user_skills).where(
                        user_skills.c.user_id == user_id,
                        user_skills.c.skill_id == skill_id,
                    )
                )
        return self.list_user_skills(user_id)

    # -- roles -----------------------------------------------------------------

    def assign_role(self, caller: CurrentUser, target_id: str, role: str) -> dict:
        try:
            target_role = Role(role)
        except ValueError as exc:
            raise ValidationError("Role must be one of: USER, ADMIN") from exc
        if target_role is Role.ROOT:
            raise ForbiddenError(
                "ROOT role cannot be assigned. There can only be one ROOT user."
            )
        if not caller.role.can_assign(target_role):
            raise ForbiddenError(
                "Insufficient permissions. Only ADMIN or ROOT can assign roles."
            )
        if caller.id == target_id:
            raise ForbiddenError("You cannot modify your own role")

        with service_errors("Failed to assign role"):
            with self.db.Session() as session, session.begin():
                target = self._existing(session, target_id)
                if Role(target.role) is Role.ROOT:
                    raise ForbiddenError("The ROOT user's role cannot be changed")
                target.role = target_role.value
                target.updated_at = time.time()
                summary = {"id": target.id, "email": target.email, "role": target.role}

        logger.info("Role assignment: %s -> %s by %s", target_id, target_role.value, caller.id)
        return {"message": "Role updated", "user": summary}
