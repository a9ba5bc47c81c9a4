"""
Service layer exceptions.

Every error raised by the request path is a ServiceError carrying a
machine-checkable ErrorCode and, where the remote API produced it, the
HTTP status code and parsed response body.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes exposed to calling layers."""

    API_ERROR = "API_ERROR"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    CIRCUIT_BREAKER_OPEN = "CIRCUIT_BREAKER_OPEN"
    CONFIG_ERROR = "CONFIG_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMIT = "RATE_LIMIT"
    TIMEOUT = "TIMEOUT"
    UNAUTHORIZED = "UNAUTHORIZED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"


RETRYABLE_CODES = frozenset(
    {
        ErrorCode.INTERNAL_ERROR,
        ErrorCode.NETWORK_ERROR,
        ErrorCode.RATE_LIMIT,
        ErrorCode.TIMEOUT,
    }
)


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        status_code: int | None = None,
        details: Any = None,
        service_id: str | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.service_id = service_id
        super().__init__(message)

    def is_retryable(self) -> bool:
        """Whether a retry loop may try the failed call again."""
        return self.code in RETRYABLE_CODES

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
            "service_id": self.service_id,
        }


class AuthenticationError(ServiceError):
    """Missing, invalid or expired access token."""

    def __init__(self, message: str, status_code: int | None = 401, details: Any = None):
        super().__init__(message, ErrorCode.UNAUTHORIZED, status_code, details)


class NotFoundError(ServiceError):
    """Requested resource does not exist."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, ErrorCode.NOT_FOUND, 404, details)


class ConflictError(ServiceError):
    """Resource already exists."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, ErrorCode.ALREADY_EXISTS, 409, details)


class ValidationError(ServiceError):
    """Request was rejected as invalid."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, 422, details)


class RateLimitError(ServiceError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: float | None = None,
        details: Any = None,
    ):
        self.retry_after = retry_after
        if retry_after:
            message += f", retry after {retry_after}s"
        super().__init__(message, ErrorCode.RATE_LIMIT, 429, details)


class InternalServerError(ServiceError):
    """Remote API answered with a 5xx status."""

    def __init__(self, message: str, status_code: int = 500, details: Any = None):
        super().__init__(message, ErrorCode.INTERNAL_ERROR, status_code, details)


class NetworkError(ServiceError):
    """Connection refused, reset or name resolution failure."""

    def __init__(self, message: str, service_id: str | None = None):
        super().__init__(message, ErrorCode.NETWORK_ERROR, service_id=service_id)


class RequestTimeoutError(ServiceError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            ErrorCode.TIMEOUT,
            service_id=service_id,
        )


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            ErrorCode.CIRCUIT_BREAKER_OPEN,
            service_id=service_id,
        )

    def is_retryable(self) -> bool:
        return False


class ConfigurationError(ServiceError):
    """Client-side configuration is unusable."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, ErrorCode.CONFIG_ERROR, 400, details)


def error_from_status(
    status_code: int,
    message: str,
    details: Any = None,
    retry_after: float | None = None,
) -> ServiceError:
    """Build the typed error for a non-success HTTP status."""
    if status_code in (401, 403):
        return AuthenticationError(message, status_code, details)
    if status_code == 404:
        return NotFoundError(message, details)
    if status_code == 409:
        return ConflictError(message, details)
    if status_code == 422:
        return ValidationError(message, details)
    if status_code == 429:
        return RateLimitError(message, retry_after, details)
    if 500 <= status_code < 600:
        return InternalServerError(message, status_code, details)
    return ServiceError(message, ErrorCode.API_ERROR, status_code, details)
