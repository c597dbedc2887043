"""Repository for access rule database operations.

Pure persistence boundary: no status logic, no access decisions. Callers
that need "valid at instant N" pass ``active_at`` and get the SQL filter
``is_active AND start_date <= N <= end_date``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from ..exceptions import AccessRuleNotFoundError
from ..models.access_rule import AccessRule, TargetType
from .base import BaseRepository

# Columns an administrator may patch.
_PATCHABLE = frozenset({
    "user_id", "target_type", "target_id", "target_name",
    "start_date", "end_date", "is_active",
})


class AccessRuleRepository(BaseRepository[AccessRule]):
    """Data access layer for access rules."""

    model_class = AccessRule
    not_found_error = AccessRuleNotFoundError

    def find_rules(
        self,
        user_id: Optional[int] = None,
        target_type: Optional[TargetType] = None,
        target_id: Optional[str] = None,
        active_at: Optional[datetime] = None,
    ) -> List[AccessRule]:
        """Rules matching the given filters, newest first.

        Args:
            user_id: Restrict to one user's rules.
            target_type: Restrict to one target namespace.
            target_id: Restrict to one target id (meaningful with target_type).
            active_at: Only rules that grant access at this instant.
        """
        query = self.db.query(AccessRule)
        if user_id is not None:
            query = query.filter(AccessRule.user_id == user_id)
        if target_type is not None:
            query = query.filter(AccessRule.target_type == TargetType(target_type).value)
        if target_id is not None:
            query = query.filter(AccessRule.target_id == target_id)
        if active_at is not None:
            query = query.filter(
                AccessRule.is_active.is_(True),
                AccessRule.start_date <= active_at,
                AccessRule.end_date >= active_at,
            )
        return query.order_by(AccessRule.created_at.desc(), AccessRule.id.desc()).all()

    def find_expiring(self, now: datetime, until: datetime) -> List[AccessRule]:
        """Active, currently valid rules whose end_date falls in ``[now, until]``."""
        return (
            self.db.query(AccessRule)
            .filter(
                AccessRule.is_active.is_(True),
                AccessRule.start_date <= now,
                AccessRule.end_date >= now,
                AccessRule.end_date <= until,
            )
            .order_by(AccessRule.end_date.asc(), AccessRule.id.asc())
            .all()
        )

    def insert(self, rule: AccessRule) -> AccessRule:
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def update(self, rule_id: int, patch: Dict[str, Any]) -> AccessRule:
        """Apply *patch* to the rule. Unknown keys are rejected."""
        unknown = set(patch) - _PATCHABLE
        if unknown:
            raise ValueError(f"Cannot patch access rule fields: {sorted(unknown)}")

        rule = self.get_by_id(rule_id)
        for key, value in patch.items():
            setattr(rule, key, value.value if isinstance(value, TargetType) else value)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def delete(self, rule_id: int) -> None:
        rule = self.get_by_id(rule_id)
        self.db.delete(rule)
        self.db.commit()
