"""
Relational storage: SQLAlchemy rows for every entity plus the engine/session owner.

Accepts any SQLAlchemy URL; Postgres in production, SQLite for local runs and tests.
"""

from __future__ import annotations

import time
import uuid
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from devhub.roles import Role

Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


def user_summary(user: Optional["UserRow"]) -> Optional[dict]:
    if user is None:
        return None
    return {
        "id": user.id,
        "fullname": user.fullname,
        "email": user.email,
        "profilePicture": user.profile_picture,
    }


user_skills = Table(
    "user_skills",
    Base.metadata,
    Column(
        "user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    ),
    Column(
        "skill_id", String, ForeignKey("skills.id", ondelete="CASCADE"), primary_key=True
    ),
    Column("created_at", Float, nullable=False, default=time.time),
)

learning_learners = Table(
    "learning_learners",
    Base.metadata,
    Column(
        "learning_id",
        String,
        ForeignKey("learnings.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    ),
)

learning_techs = Table(
    "learning_techs",
    Base.metadata,
    Column(
        "learning_id",
        String,
        ForeignKey("learnings.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "tech_id", String, ForeignKey("techs.id", ondelete="CASCADE"), primary_key=True
    ),
)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    fullname = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password = Column(String, nullable=False)
    role = Column(String(16), nullable=False, default=Role.USER.value)
    profile_picture = Column(String, nullable=True)
    created_at = Column(Float, nullable=False, default=time.time)
    updated_at = Column(Float, nullable=False, default=time.time, onupdate=time.time)

    skills = relationship(
        "SkillRow", secondary=user_skills, order_by="SkillRow.name", viewonly=True
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "fullname": self.fullname,
            "email": self.email,
            "role": self.role,
            "profilePicture": self.profile_picture,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class TechRow(Base):
    __tablename__ = "techs"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False, unique=True)
    icon = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(
        String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(Float, nullable=False, default=time.time)
    updated_at = Column(Float, nullable=False, default=time.time, onupdate=time.time)
    deleted_at = Column(Float, nullable=True)

    creator = relationship("UserRow", foreign_keys=[created_by])

    def as_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "icon": self.icon}

    def as_dict(self, include_creator: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "description": self.description,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if include_creator:
            data["creator"] = user_summary(self.creator)
        return data


class SkillRow(Base):
    __tablename__ = "skills"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_by = Column(
        String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(Float, nullable=False, default=time.time)
    updated_at = Column(Float, nullable=False, default=time.time, onupdate=time.time)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class ProjectTechRow(Base):
    __tablename__ = "project_techs"
    __table_args__ = (
        UniqueConstraint("project_id", "tech_id", name="project_techs_unique_idx"),
    )

    id = Column(String, primary_key=True, default=_new_id)
    project_id = Column(
        String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tech_id = Column(
        String, ForeignKey("techs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(Float, nullable=False, default=time.time)
    updated_at = Column(Float, nullable=False, default=time.time, onupdate=time.time)


class ProjectContributorRow(Base):
    __tablename__ = "project_contributors"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "user_id", name="project_contributors_unique_idx"
        ),
    )

    id = Column(String, primary_key=True, default=_new_id)
    project_id = Column(
        String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(Float, nullable=False, default=time.time)
    updated_at = Column(Float, nullable=False, default=time.time, onupdate=time.time)


class ProjectRow(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    cover_image = Column(String, nullable=True)
    repo_link = Column(String, nullable=True)
    featured = Column(Boolean, nullable=False, default=False, index=True)
    created_by = Column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(Float, nullable=False, default=time.time)
    updated_at = Column(Float, nullable=False, default=time.time, onupdate=time.time)
    deleted_at = Column(Float, nullable=True)

    creator = relationship("UserRow", foreign_keys=[created_by])
    # Junction rows are written explicitly; these are read paths only.
    techs = relationship(
        "TechRow",
        secondary="project_techs",
        order_by="TechRow.name",
        viewonly=True,
    )
    contributors = relationship(
        "UserRow",
        secondary="project_contributors",
        order_by="UserRow.fullname",
        viewonly=True,
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "coverImage": self.cover_image,
            "repoLink": self.repo_link,
            "featured": bool(self.featured),
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "creator": user_summary(self.creator),
            "techs": [t.as_summary() for t in self.techs if t.deleted_at is None],
            "contributors": [user_summary(u) for u in self.contributors],
        }


class BlogRow(Base):
    __tablename__ = "blogs"

    id = Column(String, primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    cover_image = Column(String, nullable=True)
    topic = Column(String(255), nullable=True)
    featured = Column(Boolean, nullable=False, default=False)
    created_by = Column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(Float, nullable=False, default=time.time)
    updated_at = Column(Float, nullable=False, default=time.time, onupdate=time.time)

    author = relationship("UserRow", foreign_keys=[created_by])

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "description": self.description,
            "coverImage": self.cover_image,
            "topic": self.topic,
            "featured": bool(self.featured),
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "author": user_summary(self.author),
        }


class LearningRow(Base):
    __tablename__ = "learnings"

    id = Column(String, primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False, index=True)
    description = Column(String(1000), nullable=True)
    period = Column(String(50), nullable=True)
    link = Column(String, nullable=True)
    cover_image = Column(String, nullable=True)
    featured = Column(Boolean, nullable=False, default=False, index=True)
    created_by = Column(
        String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(Float, nullable=False, default=time.time)
    updated_at = Column(Float, nullable=False, default=time.time, onupdate=time.time)
    deleted_at = Column(Float, nullable=True)

    learners = relationship("UserRow", secondary=learning_learners, viewonly=True)
    techs = relationship("TechRow", secondary=learning_techs, viewonly=True)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owns the engine and session factory. Services open sessions through
    ``Session`` and wrap multi-row mutations in ``session.begin()``.
    """

    def __init__(
        self,
        database_url: str,
        *,
        statement_timeout_ms: Optional[int] = None,
        pool_timeout: Optional[float] = None,
    ):
        if not database_url:
            raise ValueError("database_url is required")
        is_sqlite = database_url.startswith("sqlite")
        engine_kwargs: dict = {"future": True}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url.rstrip("/").endswith(":"):
                # One shared connection so every session sees the same in-memory db.
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs.update(pool_pre_ping=True, pool_recycle=1800)
            if pool_timeout:
                engine_kwargs["pool_timeout"] = pool_timeout
            if statement_timeout_ms and database_url.startswith("postgresql"):
                engine_kwargs["connect_args"] = {
                    "options": f"-c statement_timeout={int(statement_timeout_ms)}"
                }
        self.engine = create_engine(database_url, **engine_kwargs)
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
