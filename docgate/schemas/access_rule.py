"""Access rule schemas."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, field_validator, model_validator

from ..core.timeutils import as_utc
from ..models.access_rule import AccessRule, TargetType
from ..services.rule_status import RuleStatus, rule_status


class AccessRuleBase(BaseModel):
    """Fields shared by create requests and responses."""
    user_id: int
    target_type: TargetType
    target_id: str
    target_name: Optional[str] = None
    start_date: datetime
    end_date: datetime
    is_active: bool = True

    @field_validator('target_id')
    @classmethod
    def validate_target_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("target_id cannot be empty")
        return v

    @field_validator('start_date', 'end_date')
    @classmethod
    def normalize_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class AccessRuleCreate(AccessRuleBase):
    """Schema for creating an access rule. ``target_name`` defaults to ``target_id``."""

    @model_validator(mode='after')
    def check_date_range(self) -> "AccessRuleCreate":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class AccessRuleUpdate(BaseModel):
    """Patch schema: only fields present in the request body are applied."""
    user_id: Optional[int] = None
    target_type: Optional[TargetType] = None
    target_id: Optional[str] = None
    target_name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator('start_date', 'end_date')
    @classmethod
    def normalize_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None


class AccessRuleToggle(BaseModel):
    is_active: bool


class AccessRuleResponse(AccessRuleBase):
    """An access rule with its status derived at read time."""
    id: int
    target_name: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    status: RuleStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_rule(cls, rule: AccessRule, now: Optional[datetime] = None) -> "AccessRuleResponse":
        return cls(
            id=rule.id,
            user_id=rule.user_id,
            user_name=rule.user.name if rule.user is not None else None,
            user_email=rule.user.email if rule.user is not None else None,
            target_type=TargetType(rule.target_type),
            target_id=rule.target_id,
            target_name=rule.target_name,
            start_date=rule.start_date,
            end_date=rule.end_date,
            is_active=rule.is_active,
            status=rule_status(rule, now),
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


class DeletedRule(BaseModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    target_type: TargetType
    target_id: str
    target_name: str


class AccessRuleDeleteResponse(BaseModel):
    message: str
    deleted_rule: DeletedRule


class AccessRuleStats(BaseModel):
    """Admin dashboard counters. Rule buckets are classified at ``computed_at``."""
    total_users: int
    users_by_role: Dict[str, int]
    total_rules: int
    rules_by_status: Dict[RuleStatus, int]
    logins_24h: int
    computed_at: datetime
