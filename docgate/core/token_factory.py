"""Pure functions for creating and decoding HS256 JWTs.

No classes with behaviour, no state: just encode/decode. Two layers:

``encode_jwt`` / ``decode_jwt``
    Generic signed claim sets. Used by the OIDC bridge for authorization
    codes, access tokens and ID tokens.
``create_token`` / ``decode_token``
    Local session tokens (``typ=session``) returned by login and accepted by
    the auth dependencies.

Every token docgate mints carries a ``typ`` claim except the ID token, whose
shape is fixed by the OIDC consumer. Decoders check ``typ`` so a token minted
for one purpose is never accepted for another, even when the secrets match.
"""

import hashlib
import hmac
import base64
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SESSION_TOKEN_TYPE = "session"
SESSION_ISSUER = "docgate"


@dataclass(frozen=True)
class TokenPayload:
    """Decoded session token payload. Immutable."""
    sub: str
    role: str
    exp: datetime


def encode_jwt(claims: Dict[str, Any], secret: str, algorithm: str = "HS256") -> str:
    """Sign *claims* as a compact JWT.

    Args:
        claims: JSON-serialisable claim set. Not modified.
        secret: HMAC signing key.
        algorithm: Only HS256 supported.

    Returns:
        Encoded JWT string.
    """
    if algorithm != "HS256":
        raise ValueError(f"Unsupported algorithm: {algorithm}")
    if not secret:
        raise ValueError("Signing secret must not be empty")

    header = {"alg": "HS256", "typ": "JWT"}
    segments = [
        _b64encode(json.dumps(header, separators=(",", ":")).encode()),
        _b64encode(json.dumps(claims, separators=(",", ":")).encode()),
    ]
    signing_input = b".".join(segments)
    signature = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
    segments.append(_b64encode(signature))
    return b".".join(segments).decode()


def decode_jwt(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    audience: Optional[str] = None,
    expected_type: Optional[str] = None,
    now: Optional[float] = None,
) -> Optional[Dict[str, Any]]:
    """Verify a JWT and return its claims.

    Returns ``None`` on any validation failure (bad signature, expired,
    malformed, wrong audience, wrong ``typ``) rather than raising; callers
    decide what absence means for them.

    Args:
        token: Encoded JWT string.
        secret: HMAC signing key.
        algorithm: Only HS256 supported.
        audience: When given, the ``aud`` claim must equal it (or contain it).
        expected_type: When given, the ``typ`` claim must equal it.
        now: Unix timestamp to validate ``exp`` against (injectable for tests).
    """
    if algorithm != "HS256" or not token or not secret:
        return None
    try:
        parts = token.encode().split(b".")
        if len(parts) != 3:
            return None

        header = json.loads(_b64decode(parts[0]))
        if header.get("alg") != "HS256":
            return None

        signing_input = parts[0] + b"." + parts[1]
        expected_sig = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
        actual_sig = _b64decode(parts[2])

        if not hmac.compare_digest(expected_sig, actual_sig):
            return None

        claims = json.loads(_b64decode(parts[1]))
        if not isinstance(claims, dict):
            return None

        current = time.time() if now is None else now
        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or current > exp:
            return None

        if audience is not None:
            aud = claims.get("aud")
            allowed = aud if isinstance(aud, list) else [aud]
            if audience not in allowed:
                return None

        if expected_type is not None and claims.get("typ") != expected_type:
            return None

        return claims
    except (json.JSONDecodeError, KeyError, ValueError, IndexError, UnicodeDecodeError):
        return None


def create_token(
    subject: str,
    role: str,
    secret: str,
    algorithm: str = "HS256",
    expires_hours: int = 24,
    now: Optional[float] = None,
) -> str:
    """Create a signed session token.

    Args:
        subject: Token subject, the user's id as a string.
        role: Role claim at login time. Informational only: the auth
            dependency reloads the role from the database on every request.
        secret: HMAC signing key.
        algorithm: Only HS256 supported.
        expires_hours: Hours until expiry.
        now: Issue time as a Unix timestamp (injectable for tests).

    Returns:
        Encoded JWT string.
    """
    issued = time.time() if now is None else now
    payload = {
        "sub": subject,
        "role": role,
        "typ": SESSION_TOKEN_TYPE,
        "iat": int(issued),
        "exp": int(issued + expires_hours * 3600),
        "iss": SESSION_ISSUER,
    }
    return encode_jwt(payload, secret, algorithm)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[TokenPayload]:
    """Decode and validate a session token.

    Returns:
        ``TokenPayload`` if valid, ``None`` otherwise.
    """
    claims = decode_jwt(token, secret, algorithm, expected_type=SESSION_TOKEN_TYPE)
    if claims is None:
        return None
    return TokenPayload(
        sub=str(claims.get("sub", "")),
        role=str(claims.get("role", "")),
        exp=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    )


# --- base64url helpers (no padding, URL-safe) ---

def _b64encode(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def _b64decode(data: bytes) -> bytes:
    padding = 4 - len(data) % 4
    if padding != 4:
        data += b"=" * padding
    return base64.urlsafe_b64decode(data)
