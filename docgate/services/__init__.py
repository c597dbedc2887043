"""Business logic services."""

from .access_service import AccessEvaluator
from .token_service import TokenIssuer

__all__ = ["AccessEvaluator", "TokenIssuer"]
