"""
HTTP routes for the devhub API.
"""

from fastapi import APIRouter

from devhub.routes.blogs import router as blogs_router
from devhub.routes.projects import router as projects_router
from devhub.routes.skills import router as skills_router
from devhub.routes.techs import router as techs_router
from devhub.routes.users import auth_router, roles_router, users_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(roles_router)
router.include_router(projects_router)
router.include_router(techs_router)
router.include_router(skills_router)
router.include_router(blogs_router)
