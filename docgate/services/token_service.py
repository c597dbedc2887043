"""Token issuance pipeline: the OIDC bridge towards the document backend.

Flow:
    1. authorize  -- a logged-in user is handed a short-lived signed code
                     (typ=code) bound to client, redirect URI and nonce.
                     The code carries identity only, never access lists.
    2. exchange   -- the backend trades the code for an ID token. Access
                     lists are computed here, at exchange time, so a rule
                     changed between login and exchange is honoured.
    3. userinfo   -- the access token (typ=access) returned alongside the
                     ID token resolves back to the user's profile.

Any failure aborts the exchange with a TokenExchangeError; no partial token
is ever returned. Tag and category grants are not exported: the backend
only understands document and folder lists.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.timeutils import resolve_now
from ..core.token_factory import decode_jwt, encode_jwt
from ..exceptions import DatabaseError, TokenExchangeError
from ..models.user import User
from . import audit_service
from .access_service import AccessEvaluator

logger = logging.getLogger(__name__)

AUTHORIZATION_CODE_TYPE = "code"
ACCESS_TOKEN_TYPE = "access"
GRANT_TYPE_AUTHORIZATION_CODE = "authorization_code"


class AccessScope(str, Enum):
    GLOBAL = "global"
    RESTRICTED = "restricted"


@dataclass(frozen=True)
class RoleGroupMapping:
    """Local role -> external group names, versioned.

    The version is logged with every issuance so a token can be traced back
    to the mapping that produced its ``groups`` claim.
    """
    version: int
    groups: Mapping[str, str] = field(default_factory=dict)
    default: str = "SSO_Restricted_Access"

    def groups_for(self, role: str) -> List[str]:
        return [self.groups.get(role, self.default)]


ROLE_GROUP_MAPPING = RoleGroupMapping(
    version=1,
    groups={"admin": "Administrators"},
    default="SSO_Restricted_Access",
)


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    id_token: str
    expires_in: int
    token_type: str = "Bearer"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "id_token": self.id_token,
        }


# ---------------------------------------------------------------------------
# Authorization codes
# ---------------------------------------------------------------------------

def issue_authorization_code(
    user_id: int,
    email: str,
    client_id: str,
    redirect_uri: str,
    nonce: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Mint a signed, short-lived authorization code for *user_id*."""
    issued = int(resolve_now(now).timestamp())
    claims = {
        "typ": AUTHORIZATION_CODE_TYPE,
        "sub": str(user_id),
        "email": email,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "jti": secrets.token_urlsafe(8),
        "iat": issued,
        "exp": issued + settings.authorization_code_ttl_seconds,
    }
    if nonce:
        claims["nonce"] = nonce
    return encode_jwt(claims, settings.jwt_secret_key, settings.jwt_algorithm)


def read_authorization_code(code: str, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Verify a code and return its claims, or None if invalid, expired or not a code."""
    return decode_jwt(
        code,
        settings.jwt_secret_key,
        settings.jwt_algorithm,
        expected_type=AUTHORIZATION_CODE_TYPE,
        now=resolve_now(now).timestamp() if now is not None else None,
    )


def build_authorization_redirect(
    user_id: int,
    email: str,
    client_id: Optional[str],
    redirect_uri: Optional[str],
    response_type: Optional[str] = None,
    state: Optional[str] = None,
    nonce: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Validate an authorize request and return the client redirect URL.

    Raises:
        TokenExchangeError: unknown client, missing redirect URI or
            unsupported response type. These are never redirected back to
            the caller-supplied URI.
    """
    if client_id != settings.oidc_client_id:
        raise TokenExchangeError("unauthorized_client", "Unknown client_id")
    if not redirect_uri:
        raise TokenExchangeError("invalid_request", "redirect_uri is required")
    if response_type is not None and response_type != "code":
        raise TokenExchangeError("unsupported_response_type", "Only response_type=code is supported")

    code = issue_authorization_code(user_id, email, client_id, redirect_uri, nonce, now)
    params = [("code", code)]
    if state:
        params.append(("state", state))

    parts = urlsplit(redirect_uri)
    query = parse_qsl(parts.query, keep_blank_values=True) + params
    logger.info("Authorization code issued", extra={"user_id": user_id, "client_id": client_id})
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


# ---------------------------------------------------------------------------
# Exchange
# ---------------------------------------------------------------------------

class TokenIssuer:
    """Exchanges authorization codes for signed ID tokens.

    Args:
        db: Request-scoped session.
        issuer: Value of the ``iss`` claim (configured or request origin).
        mapping: Role -> group mapping for the ``groups`` claim.
    """

    def __init__(self, db: Session, issuer: str, mapping: RoleGroupMapping = ROLE_GROUP_MAPPING):
        self.db = db
        self.issuer = issuer
        self.mapping = mapping
        self.evaluator = AccessEvaluator(db)

    def exchange_code(
        self,
        grant_type: Optional[str],
        code: Optional[str],
        redirect_uri: Optional[str] = None,
        client_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> IssuedTokens:
        if grant_type != GRANT_TYPE_AUTHORIZATION_CODE:
            raise TokenExchangeError("unsupported_grant_type")
        if not code:
            raise TokenExchangeError("invalid_request", "code is required")

        now = resolve_now(now)
        code_claims = read_authorization_code(code, now)
        if code_claims is None:
            logger.warning("Rejected invalid or expired authorization code")
            raise TokenExchangeError("invalid_grant", "Invalid or expired authorization code")
        if redirect_uri and redirect_uri != code_claims.get("redirect_uri"):
            raise TokenExchangeError("invalid_grant", "redirect_uri does not match the authorization request")
        if client_id and client_id != code_claims.get("client_id"):
            raise TokenExchangeError("invalid_grant", "Code was issued to another client")

        user = self._load_user(code_claims.get("sub"))
        if user is None:
            logger.warning("Authorization code for missing or inactive user", extra={"sub": code_claims.get("sub")})
            raise TokenExchangeError("invalid_grant", "User no longer exists or is deactivated")

        claims = self.build_id_token_claims(user, code_claims.get("nonce"), now)
        try:
            id_token = encode_jwt(claims, settings.id_token_secret, settings.jwt_algorithm)
            access_token = self._issue_access_token(user, now)
        except ValueError as e:
            logger.error("Token signing failed: %s", e)
            raise TokenExchangeError("server_error", "Token signing failed", status_code=500) from e

        audit_service.log(
            self.db, user.id, "token_issued", "token", str(user.id),
            {
                "client_id": code_claims.get("client_id"),
                "access_scope": claims["access_scope"],
                "documents": len(claims["document_access_list"]),
                "folders": len(claims["folder_access_list"]),
                "group_mapping_version": self.mapping.version,
            },
        )
        logger.info(
            "ID token issued",
            extra={"user_id": user.id, "access_scope": claims["access_scope"]},
        )
        return IssuedTokens(
            access_token=access_token,
            id_token=id_token,
            expires_in=settings.id_token_ttl_seconds,
        )

    def build_id_token_claims(
        self, user: User, nonce: Optional[str], now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Assemble the ID token claim set for *user* at *now*.

        Admins get ``global`` scope with empty lists; everyone else gets the
        document and folder ids currently granted by their rules.
        """
        now = resolve_now(now)
        issued = int(now.timestamp())

        if user.is_admin:
            scope = AccessScope.GLOBAL
            documents: List[str] = []
            folders: List[str] = []
        else:
            scope = AccessScope.RESTRICTED
            try:
                targets = self.evaluator.get_user_accessible_targets(user.id, now, strict=True)
            except DatabaseError as e:
                raise TokenExchangeError("server_error", "Could not compute access lists", status_code=500) from e
            documents = list(targets.documents)
            folders = list(targets.folders)

        claims: Dict[str, Any] = {
            "iss": self.issuer,
            "sub": str(user.id),
            "aud": settings.oidc_audience,
            "iat": issued,
            "exp": issued + settings.id_token_ttl_seconds,
            "email": user.email,
            "name": user.name,
            "preferred_username": user.name,
            "groups": self.mapping.groups_for(user.role),
            "access_scope": scope.value,
            "document_access_list": documents,
            "folder_access_list": folders,
        }
        if nonce:
            claims["nonce"] = nonce
        return claims

    def userinfo(self, access_token: Optional[str]) -> Dict[str, Any]:
        """Profile claims for the holder of *access_token*."""
        claims = decode_jwt(
            access_token or "",
            settings.jwt_secret_key,
            settings.jwt_algorithm,
            expected_type=ACCESS_TOKEN_TYPE,
        )
        user = self._load_user(claims.get("sub")) if claims else None
        if user is None:
            raise TokenExchangeError("invalid_token", "Access token is invalid or expired", status_code=401)
        return {
            "sub": str(user.id),
            "email": user.email,
            "name": user.name,
            "preferred_username": user.name,
            "groups": self.mapping.groups_for(user.role),
        }

    def _issue_access_token(self, user: User, now: datetime) -> str:
        issued = int(now.timestamp())
        return encode_jwt(
            {
                "typ": ACCESS_TOKEN_TYPE,
                "sub": str(user.id),
                "iss": self.issuer,
                "iat": issued,
                "exp": issued + settings.id_token_ttl_seconds,
            },
            settings.jwt_secret_key,
            settings.jwt_algorithm,
        )

    def _load_user(self, sub: Any) -> Optional[User]:
        try:
            user_id = int(sub)
        except (TypeError, ValueError):
            return None
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None or not user.is_active:
            return None
        return user
