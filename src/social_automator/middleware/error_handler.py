"""
Centralized error handling for the Social Media Automator API.

Maps exceptions raised anywhere in a request to a consistent JSON error body:

    {"success": false, "error": {"message": ..., "code": ...}}

Outside production the body also carries the stack trace and request details.
"""

import logging
import traceback
from typing import Any, Dict, Tuple
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import is_production
from ..errors import AppError, DatabaseError, RateLimitError

logger = logging.getLogger(__name__)

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "RATE_LIMIT_EXCEEDED",
}


def to_app_error(exc: Exception) -> Exception:
    """Wrap database and rate limit exceptions in their AppError counterparts."""
    if isinstance(exc, APIError):
        db_code = str(exc.code or "")
        status_code = 400 if db_code.startswith(("PGRST", "23")) else 500
        error: AppError = DatabaseError("Database operation failed", status_code=status_code)
    elif isinstance(exc, RateLimitExceeded):
        error = RateLimitError("Too many requests, please try again later")
    else:
        return exc
    error.__cause__ = exc
    return error


def map_exception(exc: Exception) -> Tuple[int, str, str]:
    """
    Resolve the HTTP status, error code and client-facing message for an exception.

    Args:
        exc: The exception raised while handling a request

    Returns:
        Tuple of (status_code, code, message)
    """
    exc = to_app_error(exc)
    if isinstance(exc, AppError):
        return exc.status_code, exc.code, exc.message

    if isinstance(exc, RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        else:
            message = "Invalid request"
        return 400, "VALIDATION_ERROR", message

    if isinstance(exc, StarletteHTTPException):
        code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
        return exc.status_code, code, str(exc.detail)

    return 500, "INTERNAL_ERROR", "Internal Server Error"


def build_error_body(exc: Exception, request: Request, status_code: int, code: str, message: str) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "error": {
            "message": message,
            "code": code,
        },
    }

    if isinstance(exc, AppError) and exc.extra:
        body.update(exc.extra)

    if not is_production():
        body["error"]["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
        body["error"]["details"] = {
            "originalMessage": str(exc),
            "name": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        }

    return body


async def error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler registered for every exception type the API maps."""
    exc = to_app_error(exc)
    status_code, code, message = map_exception(exc)
    user = getattr(request.state, "user", None) or {}

    log_line = (
        f"Error: {message} - code={code} status={status_code} "
        f"path={request.url.path} method={request.method} "
        f"user={user.get('id', 'anonymous')}"
    )
    if status_code >= 500:
        logger.error(log_line, exc_info=exc)
    elif status_code == 429:
        client = request.client.host if request.client else "unknown"
        logger.warning(f"Rate limit exceeded - ip={client} path={request.url.path}")
    else:
        logger.warning(log_line)

    response = JSONResponse(
        status_code=status_code,
        content=build_error_body(exc, request, status_code, code, message),
    )
    if isinstance(exc, StarletteHTTPException) and exc.headers:
        response.headers.update(exc.headers)
    return response


async def not_found_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle unknown routes and explicit 404s."""
    if exc.detail == "Not Found":
        exc = StarletteHTTPException(status_code=404, detail=f"Route {request.url.path} not found")
    return await error_handler(request, exc)


def register_error_handlers(app: FastAPI) -> None:
    """Attach the error handlers to the application."""
    app.add_exception_handler(AppError, error_handler)
    app.add_exception_handler(APIError, error_handler)
    app.add_exception_handler(RequestValidationError, error_handler)
    app.add_exception_handler(RateLimitExceeded, error_handler)
    app.add_exception_handler(StarletteHTTPException, not_found_handler)
    app.add_exception_handler(Exception, error_handler)
