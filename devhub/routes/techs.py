"""
Tech routes. Catalog writes need ADMIN or above; icon uploads are also open
to the tech's creator.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.concurrency import run_in_threadpool

from devhub.dependencies import (
    get_current_user,
    get_project_service,
    get_tech_service,
    require_admin,
)
from devhub.errors import ValidationError
from devhub.routes.common import PageParams, ok, read_image
from devhub.schemas import TechBatchRequest, TechCreateRequest, TechUpdateRequest
from devhub.services import CurrentUser, ProjectService, TechService

router = APIRouter(prefix="/techs", tags=["techs"])


@router.get("")
def list_techs(
    paging: PageParams = Depends(),
    search: str = Query("", max_length=255),
    techs: TechService = Depends(get_tech_service),
):
    result = techs.list_techs(paging.page, paging.page_size, search)
    return ok("Techs retrieved successfully", **result)


@router.get("/search")
def search_techs(
    q: str = Query("", max_length=255),
    limit: int = Query(10),
    techs: TechService = Depends(get_tech_service),
):
    return ok("Techs retrieved successfully", techs=techs.search_techs(q, limit))


@router.post("", status_code=201)
def create_tech(
    payload: TechCreateRequest,
    user: CurrentUser = Depends(require_admin),
    techs: TechService = Depends(get_tech_service),
):
    tech = techs.create_tech(payload.model_dump(), created_by=user.id)
    return ok("Tech created successfully", tech=tech)


@router.post("/batch", status_code=201)
def batch_create_techs(
    payload: TechBatchRequest,
    user: CurrentUser = Depends(require_admin),
    techs: TechService = Depends(get_tech_service),
):
    result = techs.batch_create_techs(payload.techs, created_by=user.id)
    return ok("Techs batch created successfully", **result)


@router.get("/{tech_id}")
def get_tech(tech_id: str, techs: TechService = Depends(get_tech_service)):
    return ok("Tech retrieved successfully", tech=techs.get_tech(tech_id))


@router.patch("/{tech_id}")
def update_tech(
    tech_id: str,
    payload: TechUpdateRequest,
    user: CurrentUser = Depends(require_admin),
    techs: TechService = Depends(get_tech_service),
):
    tech = techs.update_tech(tech_id, payload.model_dump(exclude_unset=True))
    return ok("Tech updated successfully", tech=tech)


@router.delete("/{tech_id}")
def delete_tech(
    tech_id: str,
    user: CurrentUser = Depends(require_admin),
    techs: TechService = Depends(get_tech_service),
):
    techs.delete_tech(tech_id)
    return ok("Tech deleted successfully")


@router.patch("/{tech_id}/icon")
async def update_tech_icon(
    tech_id: str,
    icon: UploadFile = File(...),
    user: CurrentUser = Depends(get_current_user),
    techs: TechService = Depends(get_tech_service),
):
    image = await read_image(icon)
    if image is None:
        raise ValidationError("No file uploaded")
    tech = await run_in_threadpool(
        techs.update_tech_icon, tech_id, image, user.id, user.is_admin
    )
    return ok("Tech icon updated successfully", tech=tech)


@router.get("/{tech_id}/projects")
def list_tech_projects(
    tech_id: str,
    paging: PageParams = Depends(),
    projects: ProjectService = Depends(get_project_service),
):
    result = projects.list_tech_projects(tech_id, paging.page, paging.page_size)
    return ok("Projects retrieved successfully", **result)
