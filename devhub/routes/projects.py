"""
Project routes. Create and update accept JSON or multipart bodies; the cover
image arrives as the ``coverImage`` file part.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool

from devhub.dependencies import get_current_user, get_project_service
from devhub.routes.common import PageParams, ok, read_payload
from devhub.schemas import (
    ContributorIdsRequest,
    ProjectCreateRequest,
    ProjectUpdateRequest,
    TechIdsRequest,
)
from devhub.services import CurrentUser, ProjectService

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("")
def list_projects(
    paging: PageParams = Depends(),
    created_by: Optional[str] = Query(None, alias="createdBy"),
    tech: Optional[str] = Query(None),
    featured: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=255),
    projects: ProjectService = Depends(get_project_service),
):
    result = projects.list_projects(
        paging.page,
        paging.page_size,
        created_by=created_by,
        tech=tech,
        featured=featured,
        search=search,
    )
    return ok("Projects retrieved successfully", **result)


@router.post("", status_code=201)
async def create_project(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    projects: ProjectService = Depends(get_project_service),
):
    payload, image = await read_payload(request, ProjectCreateRequest, "coverImage")
    project = await run_in_threadpool(
        projects.create_project, payload.model_dump(), user.id, image
    )
    return ok("Project created successfully", project=project)


@router.get("/{project_id}")
def get_project(
    project_id: str, projects: ProjectService = Depends(get_project_service)
):
    return ok("Project retrieved successfully", project=projects.get_project(project_id))


@router.patch("/{project_id}")
async def update_project(
    project_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    projects: ProjectService = Depends(get_project_service),
):
    payload, image = await read_payload(request, ProjectUpdateRequest, "coverImage")
    project = await run_in_threadpool(
        projects.update_project,
        project_id,
        payload.model_dump(exclude_unset=True),
        user.id,
        image,
    )
    return ok("Project updated successfully", project=project)


@router.delete("/{project_id}")
def delete_project(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    projects: ProjectService = Depends(get_project_service),
):
    projects.delete_project(project_id, user.id)
    return ok("Project deleted successfully")


@router.post("/{project_id}/techs")
def add_project_techs(
    project_id: str,
    payload: TechIdsRequest,
    user: CurrentUser = Depends(get_current_user),
    projects: ProjectService = Depends(get_project_service),
):
    project = projects.add_techs(project_id, payload.tech_ids, user.id)
    return ok("Techs added to project successfully", project=project)


@router.delete("/{project_id}/techs")
def remove_project_techs(
    project_id: str,
    payload: TechIdsRequest,
    user: CurrentUser = Depends(get_current_user),
    projects: ProjectService = Depends(get_project_service),
):
    project = projects.remove_techs(project_id, payload.tech_ids, user.id)
    return ok("Techs removed from project successfully", project=project)


@router.post("/{project_id}/contributors")
def add_project_contributors(
    project_id: str,
    payload: ContributorIdsRequest,
    user: CurrentUser = Depends(get_current_user),
    projects: ProjectService = Depends(get_project_service),
):
    project = projects.add_contributors(project_id, payload.contributor_ids, user.id)
    return ok("Contributors added to project successfully", project=project)


@router.delete("/{project_id}/contributors")
def remove_project_contributors(
    project_id: str,
    payload: ContributorIdsRequest,
    user: CurrentUser = Depends(get_current_user),
    projects: ProjectService = Depends(get_project_service),
):
    project = projects.remove_contributors(project_id, payload.contributor_ids, user.id)
    return ok("Contributors removed from project successfully", project=project)
