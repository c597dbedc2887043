"""Per-request context: request id, timing, access log line, credential throttling.

Credential endpoints (session login and the OIDC code exchange) are the
only places a client can guess secrets, so only those POSTs are throttled.
Each (client, path) pair gets its own token bucket; access checks and reads
are never throttled.
"""

import logging
import threading
import time
import uuid
from typing import Dict, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..core.config import settings
from ..core.logging_config import request_id_var

logger = logging.getLogger(__name__)

# Throttled only for POST.
_RATE_LIMITED_PATHS = frozenset({"/api/auth/login", "/api/oidc/token"})

# bucket key -> (tokens left, time of last refill)
Buckets = Dict[str, Tuple[float, float]]

_rate_buckets: Buckets = {}
_rate_lock = threading.Lock()
_checks_since_sweep = 0

_SWEEP_INTERVAL = 100
_IDLE_SECONDS = 120.0


def _sweep_idle(bucket: Buckets, now: float) -> None:
    """Drop keys not seen for ``_IDLE_SECONDS``; a refilled bucket equals a new one."""
    cutoff = now - _IDLE_SECONDS
    for key in [k for k, (_, seen) in bucket.items() if seen < cutoff]:
        del bucket[key]


def check_rate_limit(
    bucket: Buckets,
    key: str,
    max_per_minute: int,
    now: Optional[float] = None,
) -> Tuple[bool, float]:
    """Spend one token for *key*; report whether the attempt may proceed.

    Args:
        bucket: Per-key state, updated in place.
        key: ``"<client>:<path>"``.
        max_per_minute: Attempts per minute; ``<= 0`` turns throttling off.
        now: Monotonic timestamp, injectable for tests.

    Returns:
        ``(allowed, retry_after_seconds)``.
    """
    global _checks_since_sweep

    if max_per_minute <= 0:
        return True, 0.0
    if now is None:
        now = time.monotonic()

    _checks_since_sweep += 1
    if _checks_since_sweep >= _SWEEP_INTERVAL:
        _checks_since_sweep = 0
        _sweep_idle(bucket, now)

    per_second = max_per_minute / 60.0
    tokens, last = bucket.get(key, (float(max_per_minute), now))
    tokens = min(float(max_per_minute), tokens + (now - last) * per_second)

    if tokens < 1.0:
        bucket[key] = (tokens, now)
        return False, (1.0 - tokens) / per_second

    bucket[key] = (tokens - 1.0, now)
    return True, 0.0


def reset_rate_limits() -> None:
    """Forget all bucket state."""
    with _rate_lock:
        _rate_buckets.clear()


def _client_address(request: Request) -> str:
    """First ``X-Forwarded-For`` hop when proxied, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _throttled(request_id: str, client: str, path: str, retry_after: float) -> JSONResponse:
    logger.warning(
        "Credential endpoint throttled",
        extra={"client": client, "path": path, "retry_after": round(retry_after, 1)},
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "RATE_LIMITED",
            "message": "Too many attempts, slow down",
            "details": {"retry_after": round(retry_after, 1)},
        },
        headers={"Retry-After": str(int(retry_after) + 1), "X-Request-ID": request_id},
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id, throttles credential POSTs, logs the outcome."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request_id_var.set(request_id)
        path = request.url.path

        if request.method == "POST" and path in _RATE_LIMITED_PATHS:
            client = _client_address(request)
            with _rate_lock:
                allowed, retry_after = check_rate_limit(
                    _rate_buckets, f"{client}:{path}", settings.rate_limit_per_minute
                )
            if not allowed:
                return _throttled(request_id, client, path, retry_after)

        started = time.monotonic()
        response = await call_next(request)
        elapsed_ms = round((time.monotonic() - started) * 1000, 1)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"
        logger.info(
            "%s %s %s",
            request.method,
            path,
            response.status_code,
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
        return response
