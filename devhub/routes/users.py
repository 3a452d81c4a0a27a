"""
Authentication, profile, user-skill and role routes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool

from devhub.dependencies import (
    get_current_user,
    get_project_service,
    get_user_service,
    require_admin,
)
from devhub.errors import ValidationError
from devhub.routes.common import PageParams, ok, read_image
from devhub.schemas import (
    AddSkillRequest,
    AssignRoleRequest,
    ChangePasswordRequest,
    DeleteAccountRequest,
    ProfileUpdateRequest,
    SigninRequest,
    SignupRequest,
)
from devhub.services import CurrentUser, ProjectService, UserService

auth_router = APIRouter(prefix="/auth", tags=["auth"])
users_router = APIRouter(prefix="/users", tags=["users"])
roles_router = APIRouter(prefix="/roles", tags=["roles"])


@auth_router.post("/signup", status_code=201)
def signup(payload: SignupRequest, users: UserService = Depends(get_user_service)):
    result = users.signup(payload.fullname, payload.email, payload.password)
    return ok("User registered successfully", **result)


@auth_router.post("/signin")
def signin(payload: SigninRequest, users: UserService = Depends(get_user_service)):
    result = users.signin(payload.email, payload.password)
    return ok("Signed in successfully", **result)


@users_router.get("")
def list_users(
    paging: PageParams = Depends(),
    _: CurrentUser = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    result = users.list_users(paging.page, paging.page_size)
    return ok("Users retrieved successfully", **result)


@users_router.get("/profile")
def get_profile(
    user: CurrentUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    return ok("Profile retrieved successfully", user=users.get_profile(user.id))


@users_router.patch("/profile")
def update_profile(
    payload: ProfileUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationError("At least one field must be provided")
    return ok("Profile updated successfully", user=users.update_profile(user.id, updates))


@users_router.put("/password")
def change_password(
    payload: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    users.change_password(user.id, payload.current_password, payload.new_password)
    return ok("Password changed successfully")


@users_router.patch("/profile-picture")
async def upload_profile_picture(
    profile_picture: UploadFile = File(..., alias="profilePicture"),
    user: CurrentUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    image = await read_image(profile_picture)
    if image is None:
        raise ValidationError("No file uploaded")
    updated = await run_in_threadpool(users.upload_profile_picture, user.id, image)
    return ok("Profile picture updated successfully", user=updated)


@users_router.delete("/account")
def delete_account(
    payload: Optional[DeleteAccountRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    users.delete_account(user.id, payload.reason if payload else None)
    return ok("Account deleted successfully")


@users_router.get("/me/skills")
def list_my_skills(
    user: CurrentUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    return ok("Skills retrieved successfully", skills=users.list_user_skills(user.id))


@users_router.post("/me/skills", status_code=201)
def add_my_skill(
    payload: AddSkillRequest,
    user: CurrentUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    skills = users.add_skill_to_user(user.id, payload.skill_id)
    return ok("Skill added successfully", skills=skills)


@users_router.delete("/me/skills/{skill_id}")
def remove_my_skill(
    skill_id: str,
    user: CurrentUser = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    skills = users.remove_skill_from_user(user.id, skill_id)
    return ok("Skill removed successfully", skills=skills)


@users_router.get("/{user_id}/projects")
def list_user_projects(
    user_id: str,
    paging: PageParams = Depends(),
    projects: ProjectService = Depends(get_project_service),
):
    result = projects.list_user_projects(user_id, paging.page, paging.page_size)
    return ok("Projects retrieved successfully", **result)


@roles_router.post("/assign")
def assign_role(
    payload: AssignRoleRequest,
    caller: CurrentUser = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    result = users.assign_role(caller, payload.user_id, payload.role)
    return {"success": True, **result}
