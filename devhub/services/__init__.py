"""
Domain services. Each receives its database, caches and storage through its
constructor.
"""

from devhub.services.blog import BlogService
from devhub.services.project import ProjectService
from devhub.services.skill import SkillService
from devhub.services.tech import TechService
from devhub.services.user import CurrentUser, UserService

__all__ = [
    "BlogService",
    "CurrentUser",
    "ProjectService",
    "SkillService",
    "TechService",
    "UserService",
]
