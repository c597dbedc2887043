"""Authentication module: the session/identity provider as FastAPI dependencies.

Public interface:
    ``optional_auth``       — AuthContext or None, never a 401.
    ``require_auth``        — AuthContext or 401.
    ``require_admin``       — AuthContext, 403 if not admin.
    ``require_permission``  — dependency factory over the role permission table.

A session token is accepted from the ``Authorization: Bearer`` header or,
for browser redirects such as the OIDC authorize step, from the session
cookie. The user's role and active flag are reloaded from the database on
every request, so role changes and deactivation take effect immediately.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import sqlalchemy.exc
from sqlalchemy.orm import Session

from .config import settings
from .token_factory import decode_token
from ..database import get_db
from ..exceptions import AuthenticationError, DatabaseError, ForbiddenError

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Resolved identity of the caller: ``currentUser() -> {id, email, role}``."""

    user_id: int
    email: str
    role: str
    name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_bearer_scheme() -> HTTPBearer:
    """Expose the security scheme so OpenAPI picks it up."""
    return _bearer_scheme


def _session_token(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name) or None


def resolve_auth_context(db: Session, token: Optional[str]) -> Optional[AuthContext]:
    """Turn a raw session token into an AuthContext, or None.

    None covers every failure: missing, malformed, expired or forged token,
    unknown user, deactivated account. A failing user lookup raises
    DatabaseError instead, so an outage is never read as "logged out".
    """
    if not token:
        return None

    payload = decode_token(token, settings.jwt_secret_key, settings.jwt_algorithm)
    if payload is None:
        return None

    try:
        user_id = int(payload.sub)
    except ValueError:
        return None

    from ..models.user import User

    try:
        user = db.query(User).filter(User.id == user_id).first()
    except sqlalchemy.exc.SQLAlchemyError as e:
        db.rollback()
        logger.error("Session user lookup failed", exc_info=True, extra={"user_id": user_id})
        raise DatabaseError("Could not resolve session", original_error=e) from e
    if user is None or not user.is_active:
        logger.info("Session token for missing or inactive user", extra={"user_id": user_id})
        return None

    return AuthContext(user_id=user.id, email=user.email, role=user.role, name=user.name)


def optional_auth(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[AuthContext]:
    """Validate a session if present. Absence is None, not a 401 (unlike require_auth)."""
    return resolve_auth_context(db, _session_token(request, credentials))


def require_auth(
    auth: Optional[AuthContext] = Depends(optional_auth),
) -> AuthContext:
    """Require a valid session and return the caller's AuthContext."""
    if auth is None:
        raise AuthenticationError("Missing, invalid or expired session")
    return auth


def require_admin(
    auth: AuthContext = Depends(require_auth),
) -> AuthContext:
    """Require the authenticated user to be an admin. Raises 403 otherwise."""
    if not auth.is_admin:
        raise ForbiddenError("Admin access required")
    return auth


def require_permission(action: str, resource: str) -> Callable[..., AuthContext]:
    """Build a dependency requiring the caller's role to hold (action, resource)."""
    from ..services.permission_service import has_permission

    def _dependency(auth: AuthContext = Depends(require_auth)) -> AuthContext:
        if not has_permission(auth.role, action, resource):
            raise ForbiddenError(f"Role '{auth.role}' may not {action} {resource}")
        return auth

    return _dependency
