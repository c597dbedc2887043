"""Data access layer."""

from .access_rule_repository import AccessRuleRepository

__all__ = ["AccessRuleRepository"]
