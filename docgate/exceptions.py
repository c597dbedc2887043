"""Custom exception hierarchy for docgate."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Access rule errors
    ACCESS_RULE_NOT_FOUND = "ACCESS_RULE_NOT_FOUND"

    # User errors
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Request errors
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Database errors
    DATABASE_ERROR = "DATABASE_ERROR"

    # Auth, access decisions & rate limiting
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    ACCESS_DENIED = "ACCESS_DENIED"
    RATE_LIMITED = "RATE_LIMITED"

    # Token exchange (OIDC bridge)
    TOKEN_EXCHANGE_FAILED = "TOKEN_EXCHANGE_FAILED"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DocgateException(Exception):
    """
    Base exception for all docgate errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            status_code: HTTP status code to return
            details: Optional additional context/details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class AccessRuleNotFoundError(DocgateException):
    """Access rule not found in database."""

    def __init__(self, rule_id):
        super().__init__(
            f"Access rule not found: {rule_id}",
            ErrorCode.ACCESS_RULE_NOT_FOUND,
            status_code=404,
            details={"rule_id": str(rule_id)}
        )


class UserNotFoundError(DocgateException):
    """User not found in database."""

    def __init__(self, user_id):
        super().__init__(
            f"User not found: {user_id}",
            ErrorCode.USER_NOT_FOUND,
            status_code=404,
            details={"user_id": str(user_id)}
        )


class ValidationError(DocgateException):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class BadRequestError(DocgateException):
    """Request is missing an identifier needed to make an access decision.

    Kept apart from AccessDeniedError: a malformed request is a caller error,
    not a denial.
    """

    def __init__(self, message: str = "Missing resource identifier"):
        super().__init__(
            message,
            ErrorCode.BAD_REQUEST,
            status_code=400,
        )


class AuthenticationError(DocgateException):
    """Request lacks valid authentication credentials."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(
            message,
            ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class ForbiddenError(DocgateException):
    """Authenticated user's role lacks permission for the requested action."""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(
            message,
            ErrorCode.FORBIDDEN,
            status_code=403,
        )


class AccessDeniedError(DocgateException):
    """The evaluator ran and found no valid access rule for the target."""

    def __init__(self, reason: Optional[str] = None, reason_code: Optional[str] = None):
        details: Dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        if reason_code:
            details["reason_code"] = reason_code
        super().__init__(
            "Access refused",
            ErrorCode.ACCESS_DENIED,
            status_code=403,
            details=details,
        )


class DatabaseError(DocgateException):
    """Database operation failed.

    The original driver error is kept on the exception for logging only and
    never rendered into the response body.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            message,
            ErrorCode.DATABASE_ERROR,
            status_code=500,
        )
        self.original_error = original_error


class TokenExchangeError(DocgateException):
    """The OIDC bridge refused to issue a token.

    Rendered as an OAuth 2.0 error body (``error`` / ``error_description``)
    because the consumer is the document backend's OIDC client, not a browser.
    """

    def __init__(self, oauth_error: str, description: str = "", status_code: int = 400):
        super().__init__(
            description or oauth_error,
            ErrorCode.TOKEN_EXCHANGE_FAILED,
            status_code=status_code,
            details={"oauth_error": oauth_error},
        )
        self.oauth_error = oauth_error

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.oauth_error}
        if self.message and self.message != self.oauth_error:
            body["error_description"] = self.message
        return body
