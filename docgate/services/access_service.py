"""Access evaluation: may a user act on a target at a given instant?

This is the ONE place where access-rule semantics are applied. The
middleware (core.access_guard), the "my access" endpoints and the token
pipeline all call into AccessEvaluator; none of them query rules directly.

Design:
    - A rule grants iff active and ``start_date <= now <= end_date``.
    - Any valid rule suffices; the newest one explains the grant.
    - Documents may inherit access from exactly one level of container
      (folder, then tags in order, then category). No recursion.
    - Storage failures fail closed: a denial with reason code
      ``lookup_failed``, logged apart from genuine denials, never raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import sqlalchemy.exc
from sqlalchemy.orm import Session

from ..core.timeutils import resolve_now
from ..exceptions import DatabaseError
from ..models.access_rule import AccessRule, TargetType
from ..repositories.access_rule_repository import AccessRuleRepository

logger = logging.getLogger(__name__)


class DenialReason(str, Enum):
    """Internal reason codes for a negative access decision."""
    NO_VALID_RULE = "no_valid_rule"
    NO_CONTAINER_ACCESS = "no_container_access"
    LOOKUP_FAILED = "lookup_failed"


_REASON_MESSAGES: Dict[DenialReason, str] = {
    DenialReason.NO_VALID_RULE: "no valid access rule found",
    DenialReason.NO_CONTAINER_ACCESS: "no access via document or containers",
    DenialReason.LOOKUP_FAILED: "lookup failed",
}


@dataclass(frozen=True)
class RuleSummary:
    """The parts of a rule a caller needs to explain a grant."""
    id: int
    target_type: TargetType
    target_id: str
    target_name: str
    start_date: datetime
    end_date: datetime

    @classmethod
    def from_rule(cls, rule: AccessRule) -> "RuleSummary":
        return cls(
            id=rule.id,
            target_type=TargetType(rule.target_type),
            target_id=rule.target_id,
            target_name=rule.target_name,
            start_date=rule.start_date,
            end_date=rule.end_date,
        )


@dataclass(frozen=True)
class AccessCheckResult:
    has_access: bool
    reason: Optional[str] = None
    reason_code: Optional[DenialReason] = None
    rule: Optional[RuleSummary] = None

    @classmethod
    def granted(cls, rule: AccessRule) -> "AccessCheckResult":
        return cls(has_access=True, rule=RuleSummary.from_rule(rule))

    @classmethod
    def denied(cls, reason_code: DenialReason) -> "AccessCheckResult":
        return cls(has_access=False, reason=_REASON_MESSAGES[reason_code], reason_code=reason_code)


@dataclass(frozen=True)
class DocumentMetadata:
    """Containers a document belongs to, as known to the document backend."""
    folder_id: Optional[str] = None
    tag_ids: Tuple[str, ...] = ()
    category_id: Optional[str] = None


# Container checks for indirect document access, in evaluation order.
# Each entry maps a target type to the ids it contributes from the metadata.
_CONTAINER_CHECKS: Tuple[Tuple[TargetType, Callable[[DocumentMetadata], Sequence[str]]], ...] = (
    (TargetType.FOLDER, lambda m: [m.folder_id] if m.folder_id else []),
    (TargetType.TAG, lambda m: [t for t in m.tag_ids if t]),
    (TargetType.CATEGORY, lambda m: [m.category_id] if m.category_id else []),
)

# Target type -> AccessibleTargetSet attribute.
_BUCKETS: Dict[TargetType, str] = {
    TargetType.DOCUMENT: "documents",
    TargetType.FOLDER: "folders",
    TargetType.TAG: "tags",
    TargetType.CATEGORY: "categories",
}


@dataclass
class AccessibleTargetSet:
    """Target ids a user can reach at one instant, bucketed by type.

    Built per request; the membership helpers let callers answer many
    "can they see X?" questions without one query per target.
    """
    documents: List[str] = field(default_factory=list)
    folders: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "AccessibleTargetSet":
        """Partition ``(target_type, target_id)`` pairs into sorted, de-duplicated buckets."""
        buckets: Dict[TargetType, set] = {t: set() for t in _BUCKETS}
        for target_type, target_id in pairs:
            try:
                buckets[TargetType(target_type)].add(target_id)
            except ValueError:
                logger.warning("Ignoring rule with unknown target type: %s", target_type)
        return cls(**{_BUCKETS[t]: sorted(ids) for t, ids in buckets.items()})

    def ids_for(self, target_type: TargetType) -> List[str]:
        return getattr(self, _BUCKETS[TargetType(target_type)])

    def contains(self, target_type: TargetType, target_id: str) -> bool:
        return target_id in self.ids_for(target_type)

    def grants_document(self, document_id: str, metadata: Optional[DocumentMetadata] = None) -> bool:
        """Same single-hop semantics as check_document_access, answered from memory."""
        if self.contains(TargetType.DOCUMENT, document_id):
            return True
        if metadata is None:
            return False
        return any(
            self.contains(target_type, target_id)
            for target_type, ids_of in _CONTAINER_CHECKS
            for target_id in ids_of(metadata)
        )

    def is_empty(self) -> bool:
        return not (self.documents or self.folders or self.tags or self.categories)


class AccessEvaluator:
    """Access decisions over the rule store.

    Public methods:
        check_user_access            -- one exact target
        check_document_access        -- document, then its containers
        get_user_accessible_targets  -- every reachable target id, bucketed
        get_user_active_rules        -- the user's currently valid rules
    """

    def __init__(self, db: Session):
        self.db = db
        self.rule_repo = AccessRuleRepository(db)

    def check_user_access(
        self,
        user_id: int,
        target_type: TargetType,
        target_id: str,
        now: Optional[datetime] = None,
    ) -> AccessCheckResult:
        """Does a valid rule grant *user_id* access to this exact target?"""
        target_type = TargetType(target_type)
        now = resolve_now(now)
        try:
            rules = self.rule_repo.find_rules(
                user_id=user_id,
                target_type=target_type,
                target_id=target_id,
                active_at=now,
            )
        except sqlalchemy.exc.SQLAlchemyError:
            self._rollback()
            logger.error(
                "Access rule lookup failed",
                exc_info=True,
                extra={"user_id": user_id, "target_type": target_type.value, "target_id": target_id},
            )
            return AccessCheckResult.denied(DenialReason.LOOKUP_FAILED)

        if rules:
            # find_rules orders newest first; that rule explains the grant.
            return AccessCheckResult.granted(rules[0])
        return AccessCheckResult.denied(DenialReason.NO_VALID_RULE)

    def check_document_access(
        self,
        user_id: int,
        document_id: str,
        metadata: Optional[DocumentMetadata] = None,
        now: Optional[datetime] = None,
    ) -> AccessCheckResult:
        """Direct document access, else access through one of its containers.

        Tags are tried in the order given and the first granting tag wins;
        later tags are not evaluated.
        """
        now = resolve_now(now)
        direct = self.check_user_access(user_id, TargetType.DOCUMENT, document_id, now)
        if direct.has_access or direct.reason_code == DenialReason.LOOKUP_FAILED:
            return direct

        if metadata is not None:
            for target_type, ids_of in _CONTAINER_CHECKS:
                for container_id in ids_of(metadata):
                    result = self.check_user_access(user_id, target_type, container_id, now)
                    if result.has_access or result.reason_code == DenialReason.LOOKUP_FAILED:
                        return result

        return AccessCheckResult.denied(DenialReason.NO_CONTAINER_ACCESS)

    def get_user_accessible_targets(
        self,
        user_id: int,
        now: Optional[datetime] = None,
        strict: bool = False,
    ) -> AccessibleTargetSet:
        """Every target id the user can reach at *now*.

        On storage failure returns an empty set (fail closed), or raises
        DatabaseError when *strict* is set, for callers that must not
        mistake "lookup failed" for "no access".
        """
        now = resolve_now(now)
        try:
            rules = self.rule_repo.find_rules(user_id=user_id, active_at=now)
        except sqlalchemy.exc.SQLAlchemyError as e:
            self._rollback()
            logger.error("Accessible target lookup failed", exc_info=True, extra={"user_id": user_id})
            if strict:
                raise DatabaseError("Could not load access rules", original_error=e) from e
            return AccessibleTargetSet()

        return AccessibleTargetSet.from_pairs((r.target_type, r.target_id) for r in rules)

    def get_user_active_rules(
        self,
        user_id: int,
        now: Optional[datetime] = None,
        strict: bool = False,
    ) -> List[RuleSummary]:
        """The user's currently valid rules, ordered by target type then name.

        Failure handling matches get_user_accessible_targets.
        """
        now = resolve_now(now)
        try:
            rules = self.rule_repo.find_rules(user_id=user_id, active_at=now)
        except sqlalchemy.exc.SQLAlchemyError as e:
            self._rollback()
            logger.error("Active rule lookup failed", exc_info=True, extra={"user_id": user_id})
            if strict:
                raise DatabaseError("Could not load access rules", original_error=e) from e
            return []

        summaries = [RuleSummary.from_rule(r) for r in rules]
        return sorted(summaries, key=lambda s: (s.target_type.value, s.target_name, s.id))

    def _rollback(self) -> None:
        """Reset the session after a failed lookup. A broken connection may
        refuse even that; the decision is already a denial, so only log it."""
        try:
            self.db.rollback()
        except sqlalchemy.exc.SQLAlchemyError as e:
            logger.warning("Rollback after failed lookup also failed: %s", e)
