"""API routes."""

from .auth_routes import router as auth_router
from .access_rules import router as access_rules_router
from .user_access import router as user_access_router
from .resources import router as resources_router
from .oidc import router as oidc_router, discovery_router

__all__ = [
    "auth_router",
    "access_rules_router",
    "user_access_router",
    "resources_router",
    "oidc_router",
    "discovery_router",
]
