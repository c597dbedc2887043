"""Access rule administration: create, edit, toggle, delete, list, stats.

Status is never stored. Every read classifies rules at the instant of the
read, so the status filter and the returned ``status`` always agree.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import sqlalchemy.exc
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.timeutils import as_utc, resolve_now
from ..exceptions import DatabaseError, ValidationError
from ..models.access_rule import AccessRule, TargetType
from ..models.user import ROLES, AuditLog, User
from ..repositories.access_rule_repository import AccessRuleRepository
from . import audit_service
from .auth_service import require_user
from .rule_status import RuleStatus, classify_rule, rule_status

logger = logging.getLogger(__name__)


def _check_date_range(start_date: datetime, end_date: datetime) -> None:
    if as_utc(end_date) <= as_utc(start_date):
        raise ValidationError("end_date must be after start_date", field="end_date")


def list_rules(
    db: Session,
    user_id: Optional[int] = None,
    status: Optional[RuleStatus] = None,
    target_type: Optional[TargetType] = None,
    now: Optional[datetime] = None,
) -> List[AccessRule]:
    """Rules matching the filters, newest first."""
    now = resolve_now(now)
    rules = AccessRuleRepository(db).find_rules(user_id=user_id, target_type=target_type)
    if status is None:
        return rules
    status = RuleStatus(status)
    return [r for r in rules if rule_status(r, now) == status]


def get_rule(db: Session, rule_id: int) -> AccessRule:
    return AccessRuleRepository(db).get_by_id(rule_id)


def create_rule(
    db: Session,
    user_id: int,
    target_type: TargetType,
    target_id: str,
    start_date: datetime,
    end_date: datetime,
    target_name: Optional[str] = None,
    is_active: bool = True,
    created_by: Optional[int] = None,
) -> AccessRule:
    """Grant *user_id* access to a target for ``[start_date, end_date]``.

    Raises:
        UserNotFoundError: the grantee does not exist.
        ValidationError: empty target id or end_date not after start_date.
    """
    require_user(db, user_id)
    target_id = (target_id or "").strip()
    if not target_id:
        raise ValidationError("target_id is required", field="target_id")
    _check_date_range(start_date, end_date)

    rule = AccessRule(
        user_id=user_id,
        target_type=TargetType(target_type).value,
        target_id=target_id,
        target_name=(target_name or "").strip() or target_id,
        start_date=as_utc(start_date),
        end_date=as_utc(end_date),
        is_active=is_active,
    )
    rule = AccessRuleRepository(db).insert(rule)
    audit_service.log(
        db, created_by, "rule_create", "access_rule", str(rule.id),
        {"user_id": user_id, "target_type": rule.target_type, "target_id": rule.target_id},
    )
    logger.info(
        "Access rule created",
        extra={"rule_id": rule.id, "user_id": user_id, "target_type": rule.target_type},
    )
    return rule


def update_rule(
    db: Session,
    rule_id: int,
    patch: Dict[str, Any],
    updated_by: Optional[int] = None,
) -> AccessRule:
    """Apply a partial update. Fields absent from *patch* keep their value.

    The merged date range must still satisfy ``end_date > start_date``.
    """
    if not patch:
        raise ValidationError("No fields to update")

    repo = AccessRuleRepository(db)
    rule = repo.get_by_id(rule_id)

    patch = dict(patch)
    if "user_id" in patch:
        require_user(db, patch["user_id"])
    if "target_type" in patch:
        patch["target_type"] = TargetType(patch["target_type"])
    if "target_id" in patch:
        patch["target_id"] = (patch["target_id"] or "").strip()
        if not patch["target_id"]:
            raise ValidationError("target_id cannot be empty", field="target_id")
    if "target_name" in patch:
        patch["target_name"] = (patch["target_name"] or "").strip() or patch.get("target_id", rule.target_id)
    for key in ("start_date", "end_date"):
        if key in patch:
            patch[key] = as_utc(patch[key])

    _check_date_range(
        patch.get("start_date", rule.start_date),
        patch.get("end_date", rule.end_date),
    )

    rule = repo.update(rule_id, patch)
    audit_service.log(
        db, updated_by, "rule_update", "access_rule", str(rule.id),
        {"fields": sorted(patch)},
    )
    return rule


def toggle_active(
    db: Session, rule_id: int, is_active: bool, updated_by: Optional[int] = None
) -> AccessRule:
    rule = AccessRuleRepository(db).update(rule_id, {"is_active": is_active})
    audit_service.log(
        db, updated_by, "rule_toggle", "access_rule", str(rule.id), {"is_active": is_active}
    )
    return rule


def delete_rule(db: Session, rule_id: int, deleted_by: Optional[int] = None) -> Dict[str, Any]:
    """Delete a rule. Returns a summary of what was removed."""
    repo = AccessRuleRepository(db)
    rule = repo.get_by_id(rule_id)
    summary = {
        "id": rule.id,
        "user_id": rule.user_id,
        "user_name": rule.user.name if rule.user is not None else None,
        "target_type": rule.target_type,
        "target_id": rule.target_id,
        "target_name": rule.target_name,
    }
    repo.delete(rule_id)
    audit_service.log(db, deleted_by, "rule_delete", "access_rule", str(rule_id), summary)
    return summary


def list_expiring(
    db: Session, within_hours: float = 2, now: Optional[datetime] = None
) -> List[AccessRule]:
    """Currently active rules that end within the next *within_hours* hours."""
    if within_hours <= 0:
        raise ValidationError("within_hours must be positive", field="within_hours")
    now = resolve_now(now)
    return AccessRuleRepository(db).find_expiring(now, now + timedelta(hours=within_hours))


def rule_stats(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Counters for the admin overview: users per role, rules per status, recent logins.

    Raises:
        DatabaseError: the counts could not be read.
    """
    now = resolve_now(now)
    try:
        role_counts = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
        rules = db.query(AccessRule.is_active, AccessRule.start_date, AccessRule.end_date).all()
        logins = (
            db.query(func.count(AuditLog.id))
            .filter(AuditLog.action == "login", AuditLog.created_at >= now - timedelta(hours=24))
            .scalar()
        )
    except sqlalchemy.exc.SQLAlchemyError as e:
        db.rollback()
        raise DatabaseError("Could not compute access statistics", original_error=e) from e

    by_status = {status: 0 for status in RuleStatus}
    for is_active, start_date, end_date in rules:
        by_status[classify_rule(is_active, start_date, end_date, now)] += 1

    return {
        "total_users": sum(role_counts.values()),
        "users_by_role": {role: role_counts.get(role, 0) for role in ROLES},
        "total_rules": len(rules),
        "rules_by_status": by_status,
        "logins_24h": logins or 0,
        "computed_at": now,
    }
