"""OIDC bridge endpoints consumed by the document backend.

    GET       /.well-known/openid-configuration  — discovery
    GET       /api/oidc/authorize                — session -> code redirect
    POST      /api/oidc/token                    — code -> ID token
    GET|POST  /api/oidc/userinfo                 — access token -> profile

Errors are OAuth-shaped (``{"error", "error_description"}``), rendered by
the DocgateException handler from TokenExchangeError.
"""

import base64
import binascii
import hmac
import logging
from typing import Optional, Tuple
from urllib.parse import quote, unquote

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, optional_auth
from ..core.config import settings
from ..database import get_db
from ..exceptions import TokenExchangeError
from ..schemas.oidc import DiscoveryDocument, TokenRequest, TokenResponse, UserInfoResponse
from ..services.token_service import TokenIssuer, build_authorization_redirect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/oidc", tags=["oidc"])
discovery_router = APIRouter(tags=["oidc"])

_access_token_scheme = HTTPBearer(auto_error=False)

_SUPPORTED_CLAIMS = [
    "sub", "iss", "aud", "exp", "iat", "nonce",
    "email", "name", "preferred_username", "groups",
    "access_scope", "document_access_list", "folder_access_list",
]


def issuer_for(request: Request) -> str:
    """Configured issuer, or the origin the request came in on."""
    return settings.oidc_issuer or str(request.base_url).rstrip("/")


@discovery_router.get("/.well-known/openid-configuration", response_model=DiscoveryDocument)
def discovery(request: Request):
    issuer = issuer_for(request)
    return DiscoveryDocument(
        issuer=issuer,
        authorization_endpoint=f"{issuer}/api/oidc/authorize",
        token_endpoint=f"{issuer}/api/oidc/token",
        userinfo_endpoint=f"{issuer}/api/oidc/userinfo",
        response_types_supported=["code"],
        subject_types_supported=["public"],
        id_token_signing_alg_values_supported=[settings.jwt_algorithm],
        scopes_supported=["openid", "profile", "email", "groups"],
        token_endpoint_auth_methods_supported=["client_secret_post", "client_secret_basic"],
        claims_supported=_SUPPORTED_CLAIMS,
    )


@router.get("/authorize")
def authorize(
    request: Request,
    client_id: Optional[str] = Query(None),
    redirect_uri: Optional[str] = Query(None),
    response_type: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    nonce: Optional[str] = Query(None),
    auth: Optional[AuthContext] = Depends(optional_auth),
):
    """Hand a logged-in user back to the client with an authorization code."""
    if auth is None:
        login = f"{settings.login_url}?callbackUrl={quote(str(request.url), safe='')}"
        return RedirectResponse(login, status_code=302)

    target = build_authorization_redirect(
        auth.user_id,
        auth.email,
        client_id=client_id,
        redirect_uri=redirect_uri,
        response_type=response_type,
        state=state,
        nonce=nonce,
    )
    return RedirectResponse(target, status_code=302)


async def _read_token_request(request: Request) -> TokenRequest:
    """Token parameters from a form-encoded (standard) or JSON body."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = await request.json()
        except ValueError as e:
            raise TokenExchangeError("invalid_request", "Malformed JSON body") from e
        if not isinstance(data, dict):
            raise TokenExchangeError("invalid_request", "Body must be an object")
    else:
        form = await request.form()
        data = {key: value for key, value in form.items() if isinstance(value, str)}
    return TokenRequest(**{k: v for k, v in data.items() if k in TokenRequest.model_fields and isinstance(v, str)})


def _basic_credentials(request: Request) -> Tuple[Optional[str], Optional[str]]:
    header = request.headers.get("authorization", "")
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None, None
    try:
        decoded = base64.b64decode(encoded, validate=True).decode()
    except (binascii.Error, UnicodeDecodeError) as e:
        raise TokenExchangeError("invalid_client", "Malformed client credentials", status_code=401) from e
    client_id, sep, client_secret = decoded.partition(":")
    if not sep:
        raise TokenExchangeError("invalid_client", "Malformed client credentials", status_code=401)
    return unquote(client_id), unquote(client_secret)


def _authenticate_client(request: Request, body: TokenRequest) -> Optional[str]:
    """Resolve the calling client; enforce its secret when one is configured."""
    basic_id, basic_secret = _basic_credentials(request)
    client_id = basic_id or body.client_id
    client_secret = basic_secret if basic_id else body.client_secret

    if client_id is not None and client_id != settings.oidc_client_id:
        raise TokenExchangeError("invalid_client", "Unknown client", status_code=401)

    if settings.oidc_client_secret:
        if not client_id or not client_secret or not hmac.compare_digest(
            client_secret.encode(), settings.oidc_client_secret.encode()
        ):
            logger.warning("Token request with bad client credentials", extra={"client_id": client_id})
            raise TokenExchangeError("invalid_client", "Client authentication failed", status_code=401)
    return client_id


@router.post("/token", response_model=TokenResponse)
async def token(request: Request, db: Session = Depends(get_db)):
    """Exchange an authorization code for an ID token."""
    body = await _read_token_request(request)
    client_id = _authenticate_client(request, body)
    issuer = TokenIssuer(db, issuer_for(request))
    issued = issuer.exchange_code(
        grant_type=body.grant_type,
        code=body.code,
        redirect_uri=body.redirect_uri,
        client_id=client_id,
    )
    return TokenResponse(**issued.to_dict())


@router.api_route("/userinfo", methods=["GET", "POST"], response_model=UserInfoResponse)
def userinfo(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_access_token_scheme),
    db: Session = Depends(get_db),
):
    access_token = credentials.credentials if credentials is not None else None
    return UserInfoResponse(**TokenIssuer(db, issuer_for(request)).userinfo(access_token))
