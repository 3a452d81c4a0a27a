"""Blog routes. Authors manage their own posts; ADMIN and above manage any."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from devhub.dependencies import get_blog_service, get_current_user
from devhub.errors import ValidationError
from devhub.routes.common import PageParams, ok, read_image, read_payload
from devhub.schemas import BlogCreateRequest, BlogUpdateRequest
from devhub.services import BlogService, CurrentUser

router = APIRouter(prefix="/blogs", tags=["blogs"])


@router.get("")
def list_blogs(
    paging: PageParams = Depends(),
    featured: Optional[bool] = Query(None),
    topic: Optional[str] = Query(None, max_length=255),
    created_by: Optional[str] = Query(None, alias="createdBy"),
    blogs: BlogService = Depends(get_blog_service),
):
    result = blogs.list_blogs(
        paging.page,
        paging.page_size,
        featured=featured,
        topic=topic,
        created_by=created_by,
    )
    return ok("Blogs retrieved successfully", **result)


@router.post("", status_code=201)
async def create_blog(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    blogs: BlogService = Depends(get_blog_service),
):
    payload, image = await read_payload(request, BlogCreateRequest, "coverImage")
    blog = await run_in_threadpool(blogs.create_blog, payload.model_dump(), user.id, image)
    return ok("Blog created successfully", blog=blog)


@router.get("/{blog_id}")
def get_blog(blog_id: str, blogs: BlogService = Depends(get_blog_service)):
    return ok("Blog retrieved successfully", blog=blogs.get_blog(blog_id))


@router.patch("/{blog_id}")
def update_blog(
    blog_id: str,
    payload: BlogUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    blogs: BlogService = Depends(get_blog_service),
):
    blog = blogs.update_blog(
        blog_id, payload.model_dump(exclude_unset=True), user.id, user.is_admin
    )
    return ok("Blog updated successfully", blog=blog)


@router.patch("/{blog_id}/cover")
async def update_blog_cover(
    blog_id: str,
    cover_image: UploadFile = File(..., alias="coverImage"),
    user: CurrentUser = Depends(get_current_user),
    blogs: BlogService = Depends(get_blog_service),
):
    image = await read_image(cover_image)
    if image is None:
        raise ValidationError("No file uploaded")
    blog = await run_in_threadpool(
        blogs.update_blog_cover, blog_id, image, user.id, user.is_admin
    )
    return ok("Blog cover updated successfully", blog=blog)


@router.delete("/{blog_id}")
def delete_blog(
    blog_id: str,
    user: CurrentUser = Depends(get_current_user),
    blogs: BlogService = Depends(get_blog_service),
):
    blogs.delete_blog(blog_id, user.id, user.is_admin)
    return ok("Blog deleted successfully")
