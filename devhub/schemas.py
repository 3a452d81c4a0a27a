"""
Pydantic schemas for request bodies. JSON uses camelCase; services receive
snake_case dictionaries via ``model_dump(exclude_unset=True)``.
"""

from __future__ import annotations

import json
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )


def _id_list(value):
    """Accept a list, a JSON-encoded list or a comma-separated string."""
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                return json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError("must be a JSON array of ids") from exc
        return [part.strip() for part in text.split(",") if part.strip()]
    return value


IdList = Annotated[list[str], BeforeValidator(_id_list)]


# -- auth / users -------------------------------------------------------------


class SignupRequest(CamelModel):
    fullname: str = Field(..., min_length=2, max_length=255)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)


class SigninRequest(CamelModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1)


class ProfileUpdateRequest(CamelModel):
    fullname: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class DeleteAccountRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class AddSkillRequest(CamelModel):
    skill_id: str = Field(..., min_length=1)


class AssignRoleRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    role: Literal["USER", "ADMIN"]


# -- projects -----------------------------------------------------------------


class ProjectCreateRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    repo_link: Optional[str] = Field(None, max_length=500)
    featured: bool = False
    techs: IdList = Field(default_factory=list)
    contributors: IdList = Field(default_factory=list)


class ProjectUpdateRequest(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    repo_link: Optional[str] = Field(None, max_length=500)
    featured: Optional[bool] = None
    cover_image: Optional[str] = None
    techs: Optional[IdList] = None
    contributors: Optional[IdList] = None


class TechIdsRequest(CamelModel):
    tech_ids: list[str] = Field(..., min_length=1)


class ContributorIdsRequest(CamelModel):
    contributor_ids: list[str] = Field(..., min_length=1)


# -- techs / skills -----------------------------------------------------------


class TechCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    icon: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = None


class TechUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    icon: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = None


class TechBatchRequest(CamelModel):
    techs: list[dict] = Field(..., min_length=1, max_length=100)


class SkillCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class SkillUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class SkillBatchRequest(CamelModel):
    skills: list[dict] = Field(..., min_length=1, max_length=100)


# -- blogs --------------------------------------------------------------------


class BlogCreateRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    description: Optional[str] = None
    topic: Optional[str] = Field(None, max_length=255)
    featured: bool = False


class BlogUpdateRequest(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    body: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    topic: Optional[str] = Field(None, max_length=255)
    featured: Optional[bool] = None
    cover_image: Optional[str] = None


# -- responses ----------------------------------------------------------------


class CacheStatsResponse(BaseModel):
    hits: int = 0
    misses: int = 0
    errors: int = 0


class HealthResponse(BaseModel):
    status: Literal["ok"]
    version: str
    cache: dict[str, CacheStatsResponse] = Field(default_factory=dict)
