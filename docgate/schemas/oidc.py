"""OIDC bridge payloads."""

from typing import List, Optional

from pydantic import BaseModel


class TokenRequest(BaseModel):
    """Token endpoint body (form-encoded or JSON)."""
    grant_type: Optional[str] = None
    code: Optional[str] = None
    redirect_uri: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    id_token: str


class UserInfoResponse(BaseModel):
    sub: str
    email: str
    name: str
    preferred_username: str
    groups: List[str]


class DiscoveryDocument(BaseModel):
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str
    response_types_supported: List[str]
    subject_types_supported: List[str]
    id_token_signing_alg_values_supported: List[str]
    scopes_supported: List[str]
    token_endpoint_auth_methods_supported: List[str]
    claims_supported: List[str]
