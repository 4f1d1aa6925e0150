"""HTTP middleware: error handling, rate limiting and request logging."""

from .error_handler import map_exception, register_error_handlers
from .rate_limiter import limiter, auth_limit, api_limit, public_limit
from .request_logger import request_logging_middleware

__all__ = [
    "map_exception",
    "register_error_handlers",
    "limiter",
    "auth_limit",
    "api_limit",
    "public_limit",
    "request_logging_middleware",
]
