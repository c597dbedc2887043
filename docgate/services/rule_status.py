"""Rule status classification: single pure function.

A rule's lifecycle state is a function of ``(is_active, start_date,
end_date, now)`` and nothing else. It is never stored: two reads at
different instants may legitimately disagree, which is how rules expire
without a background sweep.

Decision order (first match wins):
    1. inactive          -> disabled
    2. now < start_date  -> upcoming
    3. now > end_date    -> expired
    4. otherwise         -> active

Both bounds are inclusive for ``active``, matching the evaluator's
``start_date <= now <= end_date`` query.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..core.timeutils import as_utc, resolve_now

if TYPE_CHECKING:
    from ..models.access_rule import AccessRule


class RuleStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    EXPIRED = "expired"
    DISABLED = "disabled"


def classify_rule(
    is_active: bool,
    start_date: datetime,
    end_date: datetime,
    now: datetime,
) -> RuleStatus:
    """Derive the status of a rule at instant *now*."""
    if not is_active:
        return RuleStatus.DISABLED

    now = as_utc(now)
    if now < as_utc(start_date):
        return RuleStatus.UPCOMING
    if now > as_utc(end_date):
        return RuleStatus.EXPIRED
    return RuleStatus.ACTIVE


def rule_status(rule: AccessRule, now: Optional[datetime] = None) -> RuleStatus:
    """Classify a stored rule at *now* (defaults to the current instant)."""
    return classify_rule(rule.is_active, rule.start_date, rule.end_date, resolve_now(now))
