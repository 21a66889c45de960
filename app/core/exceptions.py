"""
Custom Exceptions

This module defines the exception hierarchy used across the gateway.
Every exception carries the HTTP status and the public message that the
exception handlers in app.main render into the JSON error envelope.

Categories:
- Credential problems (malformed or invalid) -> 401
- Capability problems (missing scope, session required) -> 403
- Request budget exhausted -> 429
- Input validation -> 400
- Missing or foreign resources -> 404
- Row store failures -> 500, never leaking store detail to the caller
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from app.core.rate_limit import RateLimitResult


class LinkGatewayException(Exception):
    """Base exception for the link gateway service."""

    status_code: int = 500

    def __init__(self, message: str = "Internal server error"):
        self.message = message
        super().__init__(message)


class MalformedCredentialError(LinkGatewayException):
    """Raised when a presented API key does not have the expected shape."""

    status_code = 401

    def __init__(self, message: str = "Invalid API key format"):
        super().__init__(message)


class InvalidCredentialError(LinkGatewayException):
    """Raised when a key is unknown, inactive or expired, or no session resolves."""

    status_code = 401

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(message)


class InsufficientScopeError(LinkGatewayException):
    """Raised when a resolved identity lacks the scope an operation needs."""

    status_code = 403

    def __init__(self, required_scope: str):
        self.required_scope = required_scope
        super().__init__(f"Insufficient permissions. Required scope: {required_scope}")


class SessionRequiredError(LinkGatewayException):
    """Raised when an operation is only allowed for session-authenticated users."""

    status_code = 403


class RateLimitedError(LinkGatewayException):
    """Raised when the request budget for a client and category is exhausted."""

    status_code = 429

    def __init__(self, result: "RateLimitResult", retry_after: int):
        self.result = result
        self.retry_after = retry_after
        super().__init__("Rate limit exceeded")


class ValidationFailedError(LinkGatewayException):
    """Raised when request input fails validation."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[dict[str, str]] = None):
        self.errors = errors
        super().__init__(message)


class ResourceNotFoundError(LinkGatewayException):
    """Raised when a resource does not exist or belongs to another user."""

    status_code = 404


class DatabaseError(LinkGatewayException):
    """Raised when database operations fail."""

    status_code = 500

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        self.detail = f"Database error: {message}"
        super().__init__("Internal server error")
