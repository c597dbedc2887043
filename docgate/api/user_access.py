"""The caller's own access: snapshot and point checks.

    GET  /api/user/access        — active rules + accessible target ids
    POST /api/user/access/check  — may I reach this target now?
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.access_guard import verify_access
from ..core.auth import AuthContext, require_auth
from ..core.config import settings
from ..core.timeutils import utcnow
from ..database import get_db
from ..schemas.access import (
    AccessCheckRequest,
    AccessCheckResponse,
    AccessibleTargetsResponse,
    MyAccessResponse,
    RuleSummaryResponse,
)
from ..services.access_service import AccessEvaluator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user/access", tags=["user-access"])


@router.get("", response_model=MyAccessResponse)
def get_my_access(
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Snapshot of the caller's access, recomputed on every request.

    ``is_admin`` tells the client that rules do not bind this caller. A
    failed rule lookup is a 500, never an empty (and cacheable) snapshot.
    """
    now = utcnow()
    evaluator = AccessEvaluator(db)
    rules = evaluator.get_user_active_rules(auth.user_id, now, strict=True)
    targets = evaluator.get_user_accessible_targets(auth.user_id, now, strict=True)
    return MyAccessResponse(
        is_admin=auth.is_admin,
        rules=[RuleSummaryResponse.from_summary(r) for r in rules],
        accessible=AccessibleTargetsResponse.from_set(targets),
        computed_at=now,
        max_age_seconds=settings.access_snapshot_ttl_seconds,
    )


@router.post("/check", response_model=AccessCheckResponse)
def check_my_access(
    body: AccessCheckRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    metadata = body.document_metadata.to_metadata() if body.document_metadata else None
    decision = verify_access(auth, db, body.target_type, body.target_id, metadata)
    if decision.result is None:
        # Admin bypass: granted without consulting rules.
        return AccessCheckResponse(has_access=decision.allowed)
    return AccessCheckResponse.from_result(decision.result)
