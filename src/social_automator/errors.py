"""
Application error types.

Every error raised on purpose by the services carries the HTTP status code and
the machine-readable error code the API returns for it. The centralized
handler in ``middleware.error_handler`` turns them into JSON responses.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for operational errors with an HTTP mapping."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.extra = extra or {}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class TokenExpiredError(AppError):
    status_code = 401
    code = "TOKEN_EXPIRED"


class UsageLimitError(AppError):
    status_code = 402
    code = "USAGE_LIMIT_REACHED"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"


class DatabaseError(AppError):
    status_code = 400
    code = "DATABASE_ERROR"


class ServiceUnavailableError(AppError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"


class PlatformError(AppError):
    """A third-party platform API rejected a request."""

    status_code = 502
    code = "PLATFORM_ERROR"

    def __init__(self, message: str, platform: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.platform = platform
        self.http_status = http_status
