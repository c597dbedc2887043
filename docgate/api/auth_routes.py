"""Authentication and user management API endpoints.

Public endpoints:
    POST /api/auth/register  — create account (open for first user, admin-only after)
    POST /api/auth/login     — authenticate, receive a session token (and cookie)
    POST /api/auth/logout    — clear the session cookie
    GET  /api/auth/me        — current user info + role permissions

Admin-only endpoints:
    GET  /api/auth/users                        — list all users
    PUT  /api/auth/users/{user_id}/role         — change global role
    PUT  /api/auth/users/{user_id}/deactivate   — deactivate account
"""

import logging
from typing import Optional, List

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, optional_auth, require_auth, require_admin
from ..core.config import Environment, settings
from ..core.token_factory import create_token
from ..database import get_db
from ..exceptions import ForbiddenError
from ..models.user import DEFAULT_ROLE, User
from ..services import auth_service
from ..services.permission_service import permissions_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


# --- Request/Response schemas ---


class RegisterRequest(BaseModel):
    email: str = Field(..., description="Email address")
    password: str = Field(..., min_length=8, description="Password (min 8 characters)")
    name: str = Field(..., description="Display name")
    role: str = Field(DEFAULT_ROLE, description="Role: admin, contributor, or reader")

    model_config = {
        "json_schema_extra": {
            "examples": [{"email": "alice@company.com", "password": "securepass", "name": "Alice"}]
        }
    }


class LoginRequest(BaseModel):
    email: str
    password: str


class RoleRequest(BaseModel):
    role: str = Field(..., description="New role: admin, contributor, or reader")


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    is_active: bool

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse
    permissions: List[str]


class MessageResponse(BaseModel):
    message: str


# --- Endpoints ---


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=201,
    summary="Register a new user",
    description="First registration is open (creates admin). After that, admin auth required.",
)
def register_user(
    body: RegisterRequest,
    db: Session = Depends(get_db),
    auth: Optional[AuthContext] = Depends(optional_auth),
):
    if db.query(User).count() > 0:
        if auth is None or not auth.is_admin:
            raise ForbiddenError("Only admins can register new users")

    user = auth_service.register_user(db, body.email, body.password, body.name, body.role)
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Authenticate and receive a session token",
)
def login(body: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, body.email, body.password)
    token = create_token(
        subject=str(user.id),
        role=user.role,
        secret=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_hours=settings.session_token_hours,
    )
    # The cookie lets the OIDC authorize redirect find the session.
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_token_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.environment == Environment.PRODUCTION,
    )
    return LoginResponse(token=token, user=UserResponse.model_validate(user))


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Clear the session cookie",
)
def logout(response: Response):
    # Session tokens are stateless; a copied bearer token stays valid until it expires.
    response.delete_cookie(settings.session_cookie_name)
    return MessageResponse(message="Logged out")


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current user info and permissions",
)
def get_me(auth: AuthContext = Depends(require_auth), db: Session = Depends(get_db)):
    user = auth_service.require_user(db, auth.user_id)
    return MeResponse(
        user=UserResponse.model_validate(user),
        permissions=sorted(f"{action}:{resource}" for action, resource in permissions_for(user.role)),
    )


@router.get(
    "/users",
    response_model=List[UserResponse],
    summary="List all users (admin only)",
)
def list_users(
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [UserResponse.model_validate(u) for u in auth_service.list_users(db)]


@router.put(
    "/users/{user_id}/role",
    response_model=UserResponse,
    summary="Change a user's global role (admin only)",
)
def update_role(
    user_id: int,
    body: RoleRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = auth_service.update_user_role(db, user_id, body.role, changed_by=auth.user_id)
    return UserResponse.model_validate(user)


@router.put(
    "/users/{user_id}/deactivate",
    response_model=UserResponse,
    summary="Deactivate a user account (admin only)",
)
def deactivate(
    user_id: int,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = auth_service.deactivate_user(db, user_id, changed_by=auth.user_id)
    return UserResponse.model_validate(user)
