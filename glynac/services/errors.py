"""
Client-side error taxonomy.

Every failure that leaves the transport/retry layer is an ApiError carrying the
normalized shape {message, status, code, details, timestamp}.
"""

from datetime import datetime, timezone
from typing import Any


class ApiError(Exception):
    """Base exception for API client errors."""

    default_code = "unknown_error"

    def __init__(
        self,
        message: str,
        status: int = 0,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status = status
        self.code = code or self.default_code
        self.details = details
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the normalized error shape."""
        return {
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class NetworkError(ApiError):
    """No response was received."""

    default_code = "network_error"


class RequestTimeoutError(ApiError):
    """Request deadline exceeded."""

    default_code = "timeout"

    def __init__(self, path: str, timeout: float):
        self.timeout = timeout
        super().__init__(f"Request to '{path}' timed out after {timeout}s")


class RequestCancelledError(ApiError):
    """Request was abandoned through its cancellation token."""

    default_code = "cancelled"

    def __init__(self, path: str):
        super().__init__(f"Request to '{path}' was cancelled")


class ClientError(ApiError):
    """4xx response."""

    default_code = "client_error"


class RateLimitError(ClientError):
    """Rate limit exceeded (429)."""

    default_code = "rate_limited"

    def __init__(
        self,
        message: str,
        status: int = 429,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retry_after: float | None = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, status=status, code=code, details=details)


class AuthExpiredError(ClientError):
    """401 response; the session is no longer valid."""

    default_code = "auth_expired"


class ServerError(ApiError):
    """5xx response."""

    default_code = "server_error"


class RejectedError(ApiError):
    """2xx response whose envelope says success: false."""

    default_code = "request_rejected"


class ValidationError(ApiError):
    """Input rejected before any network call."""

    default_code = "validation_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status=400, details=details)
