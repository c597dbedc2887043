"""Access rule administration API.

All endpoints require the ``manage permissions`` capability (admins).
Status is derived per request, never stored.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import AuthContext, require_permission
from ..core.timeutils import utcnow
from ..database import get_db
from ..models.access_rule import TargetType
from ..schemas.access_rule import (
    AccessRuleCreate,
    AccessRuleUpdate,
    AccessRuleToggle,
    AccessRuleResponse,
    AccessRuleDeleteResponse,
    AccessRuleStats,
    DeletedRule,
)
from ..services import access_rule_service
from ..services.rule_status import RuleStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/access-rules", tags=["access-rules"])

_manage_permissions = require_permission("manage", "permissions")


@router.get("", response_model=List[AccessRuleResponse])
def list_access_rules(
    user_id: Optional[int] = Query(None, description="Only rules of this user"),
    status: Optional[RuleStatus] = Query(None, description="upcoming, active, expired or disabled"),
    target_type: Optional[TargetType] = Query(None),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(_manage_permissions),
):
    """List access rules, newest first."""
    now = utcnow()
    rules = access_rule_service.list_rules(db, user_id=user_id, status=status, target_type=target_type, now=now)
    return [AccessRuleResponse.from_rule(r, now) for r in rules]


@router.get("/expiring", response_model=List[AccessRuleResponse])
def list_expiring_rules(
    within_hours: float = Query(2, gt=0, description="Look-ahead window in hours"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(_manage_permissions),
):
    """Active rules ending within the window, soonest first."""
    now = utcnow()
    rules = access_rule_service.list_expiring(db, within_hours=within_hours, now=now)
    return [AccessRuleResponse.from_rule(r, now) for r in rules]


@router.get("/stats", response_model=AccessRuleStats)
def access_rule_stats(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(_manage_permissions),
):
    """Users per role, rules per derived status, logins in the last 24 hours."""
    return AccessRuleStats(**access_rule_service.rule_stats(db, now=utcnow()))


@router.post("", response_model=AccessRuleResponse, status_code=201)
def create_access_rule(
    data: AccessRuleCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(_manage_permissions),
):
    rule = access_rule_service.create_rule(
        db,
        user_id=data.user_id,
        target_type=data.target_type,
        target_id=data.target_id,
        target_name=data.target_name,
        start_date=data.start_date,
        end_date=data.end_date,
        is_active=data.is_active,
        created_by=auth.user_id,
    )
    return AccessRuleResponse.from_rule(rule)


@router.get("/{rule_id}", response_model=AccessRuleResponse)
def get_access_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(_manage_permissions),
):
    return AccessRuleResponse.from_rule(access_rule_service.get_rule(db, rule_id))


@router.put("/{rule_id}", response_model=AccessRuleResponse)
def update_access_rule(
    rule_id: int,
    data: AccessRuleUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(_manage_permissions),
):
    """Partial update: only fields sent in the body change."""
    # An explicit null target_name resets it to the target id; other nulls are ignored.
    patch = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key == "target_name"
    }
    rule = access_rule_service.update_rule(db, rule_id, patch, updated_by=auth.user_id)
    return AccessRuleResponse.from_rule(rule)


@router.patch("/{rule_id}", response_model=AccessRuleResponse)
def toggle_access_rule(
    rule_id: int,
    data: AccessRuleToggle,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(_manage_permissions),
):
    rule = access_rule_service.toggle_active(db, rule_id, data.is_active, updated_by=auth.user_id)
    return AccessRuleResponse.from_rule(rule)


@router.delete("/{rule_id}", response_model=AccessRuleDeleteResponse)
def delete_access_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(_manage_permissions),
):
    summary = access_rule_service.delete_rule(db, rule_id, deleted_by=auth.user_id)
    return AccessRuleDeleteResponse(
        message="Access rule deleted",
        deleted_rule=DeletedRule(**summary),
    )
