"""Skill routes; writes need ADMIN or above."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from devhub.dependencies import get_skill_service, require_admin
from devhub.routes.common import PageParams, ok
from devhub.schemas import SkillBatchRequest, SkillCreateRequest, SkillUpdateRequest
from devhub.services import CurrentUser, SkillService

router = APIRouter(prefix="/skills", tags=["skills"])


@router.get("")
def list_skills(
    paging: PageParams = Depends(),
    skills: SkillService = Depends(get_skill_service),
):
    result = skills.list_skills(paging.page, paging.page_size)
    return ok("Skills retrieved successfully", **result)


@router.post("", status_code=201)
def create_skill(
    payload: SkillCreateRequest,
    user: CurrentUser = Depends(require_admin),
    skills: SkillService = Depends(get_skill_service),
):
    skill = skills.create_skill(payload.model_dump(), created_by=user.id)
    return ok("Skill created successfully", skill=skill)


@router.post("/batch", status_code=201)
def batch_create_skills(
    payload: SkillBatchRequest,
    user: CurrentUser = Depends(require_admin),
    skills: SkillService = Depends(get_skill_service),
):
    result = skills.batch_create_skills(payload.skills, created_by=user.id)
    return ok("Skills batch created successfully", **result)


@router.get("/{skill_id}")
def get_skill(skill_id: str, skills: SkillService = Depends(get_skill_service)):
    return ok("Skill retrieved successfully", skill=skills.get_skill(skill_id))


@router.patch("/{skill_id}")
def update_skill(
    skill_id: str,
    payload: SkillUpdateRequest,
    user: CurrentUser = Depends(require_admin),
    skills: SkillService = Depends(get_skill_service),
):
    skill = skills.update_skill(skill_id, payload.model_dump(exclude_unset=True))
    return ok("Skill updated successfully", skill=skill)


@router.delete("/{skill_id}")
def delete_skill(
    skill_id: str,
    user: CurrentUser = Depends(require_admin),
    skills: SkillService = Depends(get_skill_service),
):
    skills.delete_skill(skill_id)
    return ok("Skill deleted successfully")
