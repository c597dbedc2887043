"""Access-control guard for protected operations.

One synchronous decision per request, no retries:

    no identity                  -> unauthenticated (401)
    identity, admin              -> allowed (rules not consulted)
    identity, no target id       -> bad request (400)
    identity, non-admin          -> evaluator -> allowed | denied (403)

``decide_access`` is the framework-free state machine. ``require_target_access``
wraps it as a FastAPI dependency for routes; ``verify_access`` is the
non-raising form for routes that branch on the outcome themselves. On allow
the request is passed through untouched.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .auth import AuthContext, optional_auth
from ..database import get_db
from ..exceptions import AccessDeniedError, AuthenticationError, BadRequestError
from ..models.access_rule import TargetType
from ..services.access_service import AccessCheckResult, AccessEvaluator, DocumentMetadata

logger = logging.getLogger(__name__)

TargetIdExtractor = Callable[[Request], Optional[str]]
MetadataExtractor = Callable[[Request], Optional[DocumentMetadata]]

# Errors an extractor may raise on a malformed request.
_EXTRACTOR_ERRORS = (KeyError, ValueError, TypeError, AttributeError)


class DecisionOutcome(str, Enum):
    ALLOWED = "allowed"
    UNAUTHENTICATED = "unauthenticated"
    BAD_REQUEST = "bad_request"
    DENIED = "denied"


@dataclass(frozen=True)
class AccessDecision:
    outcome: DecisionOutcome
    user_id: Optional[int] = None
    is_admin: bool = False
    reason: Optional[str] = None
    result: Optional[AccessCheckResult] = None

    @property
    def allowed(self) -> bool:
        return self.outcome == DecisionOutcome.ALLOWED

    @property
    def is_authenticated(self) -> bool:
        return self.outcome != DecisionOutcome.UNAUTHENTICATED

    def raise_for_outcome(self) -> None:
        """Translate a negative decision into the matching API error."""
        if self.outcome == DecisionOutcome.UNAUTHENTICATED:
            raise AuthenticationError(self.reason or "Authentication required")
        if self.outcome == DecisionOutcome.BAD_REQUEST:
            raise BadRequestError(self.reason or "Missing resource identifier")
        if self.outcome == DecisionOutcome.DENIED:
            reason_code = None
            if self.result is not None and self.result.reason_code is not None:
                reason_code = self.result.reason_code.value
            raise AccessDeniedError(self.reason, reason_code)


def decide_access(
    auth: Optional[AuthContext],
    target_type: TargetType,
    get_target_id: Callable[[], Optional[str]],
    evaluator: AccessEvaluator,
    get_metadata: Optional[Callable[[], Optional[DocumentMetadata]]] = None,
    now: Optional[datetime] = None,
) -> AccessDecision:
    """Run the access state machine for one request.

    Extractors are called lazily: an admin's request never has its target
    id read, and metadata is only read for documents.
    """
    target_type = TargetType(target_type)

    if auth is None:
        return AccessDecision(DecisionOutcome.UNAUTHENTICATED, reason="Authentication required")

    if auth.is_admin:
        return AccessDecision(DecisionOutcome.ALLOWED, user_id=auth.user_id, is_admin=True)

    try:
        target_id = get_target_id()
    except _EXTRACTOR_ERRORS as e:
        logger.info("Target id extraction failed: %s", e, extra={"target_type": target_type.value})
        target_id = None
    if target_id is None or not str(target_id).strip():
        return AccessDecision(
            DecisionOutcome.BAD_REQUEST,
            user_id=auth.user_id,
            reason=f"Missing {target_type.value} identifier",
        )
    target_id = str(target_id).strip()

    if target_type == TargetType.DOCUMENT and get_metadata is not None:
        try:
            metadata = get_metadata()
        except _EXTRACTOR_ERRORS as e:
            logger.info("Document metadata extraction failed: %s", e)
            return AccessDecision(
                DecisionOutcome.BAD_REQUEST,
                user_id=auth.user_id,
                reason="Malformed document metadata",
            )
        result = evaluator.check_document_access(auth.user_id, target_id, metadata, now)
    else:
        result = evaluator.check_user_access(auth.user_id, target_type, target_id, now)

    if result.has_access:
        return AccessDecision(DecisionOutcome.ALLOWED, user_id=auth.user_id, result=result)

    logger.warning(
        "Access denied",
        extra={
            "user_id": auth.user_id,
            "target_type": target_type.value,
            "target_id": target_id,
            "reason_code": result.reason_code.value if result.reason_code else None,
        },
    )
    return AccessDecision(
        DecisionOutcome.DENIED,
        user_id=auth.user_id,
        reason=result.reason,
        result=result,
    )


def verify_access(
    auth: Optional[AuthContext],
    db: Session,
    target_type: TargetType,
    target_id: Optional[str],
    metadata: Optional[DocumentMetadata] = None,
) -> AccessDecision:
    """Non-raising check for an already-known target id."""
    return decide_access(
        auth,
        target_type,
        lambda: target_id,
        AccessEvaluator(db),
        get_metadata=(lambda: metadata) if metadata is not None else None,
    )


# ---------------------------------------------------------------------------
# Request extractors
# ---------------------------------------------------------------------------

def path_param(name: str) -> TargetIdExtractor:
    """Extractor reading the target id from a path parameter."""

    def _extract(request: Request) -> Optional[str]:
        return request.path_params.get(name)

    return _extract


def metadata_from_query(request: Request) -> Optional[DocumentMetadata]:
    """Read ``folder_id``, ``tag_ids`` and ``category_id`` from the query string.

    ``tag_ids`` may be repeated or comma-separated; order is preserved.
    Returns None when no container is named at all.
    """
    params = request.query_params
    folder_id = (params.get("folder_id") or "").strip() or None
    category_id = (params.get("category_id") or "").strip() or None
    tag_ids = tuple(
        tag.strip()
        for raw in params.getlist("tag_ids")
        for tag in raw.split(",")
        if tag.strip()
    )
    if folder_id is None and category_id is None and not tag_ids:
        return None
    return DocumentMetadata(folder_id=folder_id, tag_ids=tag_ids, category_id=category_id)


def require_target_access(
    target_type: TargetType,
    target_id_param: str = "target_id",
    get_target_id: Optional[TargetIdExtractor] = None,
    get_metadata: Optional[MetadataExtractor] = None,
) -> Callable[..., AuthContext]:
    """Build a dependency that guards a route with an access decision.

    Args:
        target_type: What the route serves.
        target_id_param: Path parameter holding the target id (default extractor).
        get_target_id: Custom extractor, overrides *target_id_param*.
        get_metadata: Container metadata extractor, documents only.

    Returns:
        A dependency yielding the caller's AuthContext once access is allowed.
    """
    target_type = TargetType(target_type)
    extract_id = get_target_id or path_param(target_id_param)

    def _dependency(
        request: Request,
        auth: Optional[AuthContext] = Depends(optional_auth),
        db: Session = Depends(get_db),
    ) -> AuthContext:
        decision = decide_access(
            auth,
            target_type,
            lambda: extract_id(request),
            AccessEvaluator(db),
            get_metadata=(lambda: get_metadata(request)) if get_metadata else None,
        )
        decision.raise_for_outcome()
        return auth

    return _dependency
