"""Pydantic schemas for API validation."""

from .access_rule import (
    AccessRuleCreate,
    AccessRuleUpdate,
    AccessRuleToggle,
    AccessRuleResponse,
    AccessRuleDeleteResponse,
    AccessRuleStats,
)
from .access import (
    AccessCheckRequest,
    AccessCheckResponse,
    MyAccessResponse,
)
from .oidc import (
    TokenResponse,
    UserInfoResponse,
    DiscoveryDocument,
)

__all__ = [
    "AccessRuleCreate",
    "AccessRuleUpdate",
    "AccessRuleToggle",
    "AccessRuleResponse",
    "AccessRuleDeleteResponse",
    "AccessRuleStats",
    "AccessCheckRequest",
    "AccessCheckResponse",
    "MyAccessResponse",
    "TokenResponse",
    "UserInfoResponse",
    "DiscoveryDocument",
]
