"""Schemas for the caller's own access: checks and the accessible-target snapshot."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from ..models.access_rule import TargetType
from ..services.access_service import (
    AccessCheckResult,
    AccessibleTargetSet,
    DocumentMetadata,
    RuleSummary,
)


class DocumentMetadataIn(BaseModel):
    """Containers of a document, in evaluation order for tags."""
    folder_id: Optional[str] = None
    tag_ids: List[str] = []
    category_id: Optional[str] = None

    def to_metadata(self) -> DocumentMetadata:
        return DocumentMetadata(
            folder_id=self.folder_id or None,
            tag_ids=tuple(t for t in self.tag_ids if t),
            category_id=self.category_id or None,
        )


class AccessCheckRequest(BaseModel):
    target_type: TargetType
    target_id: str
    document_metadata: Optional[DocumentMetadataIn] = None

    @field_validator('target_id')
    @classmethod
    def validate_target_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("target_id cannot be empty")
        return v


class RuleSummaryResponse(BaseModel):
    id: int
    target_type: TargetType
    target_id: str
    target_name: str
    start_date: datetime
    end_date: datetime

    @classmethod
    def from_summary(cls, summary: RuleSummary) -> "RuleSummaryResponse":
        return cls(
            id=summary.id,
            target_type=summary.target_type,
            target_id=summary.target_id,
            target_name=summary.target_name,
            start_date=summary.start_date,
            end_date=summary.end_date,
        )


class AccessCheckResponse(BaseModel):
    has_access: bool
    reason: Optional[str] = None
    reason_code: Optional[str] = None
    rule: Optional[RuleSummaryResponse] = None

    @classmethod
    def from_result(cls, result: AccessCheckResult) -> "AccessCheckResponse":
        return cls(
            has_access=result.has_access,
            reason=result.reason,
            reason_code=result.reason_code.value if result.reason_code else None,
            rule=RuleSummaryResponse.from_summary(result.rule) if result.rule else None,
        )


class AccessibleTargetsResponse(BaseModel):
    documents: List[str] = []
    folders: List[str] = []
    tags: List[str] = []
    categories: List[str] = []

    @classmethod
    def from_set(cls, targets: AccessibleTargetSet) -> "AccessibleTargetsResponse":
        return cls(
            documents=targets.documents,
            folders=targets.folders,
            tags=targets.tags,
            categories=targets.categories,
        )


class MyAccessResponse(BaseModel):
    """Snapshot of the caller's access.

    ``computed_at`` plus ``max_age_seconds`` bound how long a client may
    reuse the snapshot before asking again.
    """
    is_admin: bool
    rules: List[RuleSummaryResponse]
    accessible: AccessibleTargetsResponse
    computed_at: datetime
    max_age_seconds: int
