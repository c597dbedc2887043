"""Database models."""

from .user import User, AuditLog
from .access_rule import AccessRule, TargetType

__all__ = ["User", "AuditLog", "AccessRule", "TargetType"]
