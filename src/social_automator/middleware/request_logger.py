"""Request logging middleware."""

import time
import logging
from fastapi import Request

from ..config import is_production

logger = logging.getLogger(__name__)

STATIC_PREFIXES = ("/assets", "/static", "/favicon")
STATIC_SUFFIXES = (".js", ".css", ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".woff", ".woff2", ".map")


def is_static_asset(path: str) -> bool:
    return path.startswith(STATIC_PREFIXES) or path.lower().endswith(STATIC_SUFFIXES)


def _log_request(request: Request, status_code: int, process_time: float):
    if is_static_asset(request.url.path):
        return

    user = getattr(request.state, "user", None) or {}
    line = (
        f"{request.method} {request.url.path} {status_code} "
        f"{process_time * 1000:.0f}ms - user:{user.get('id', 'anonymous')}"
    )

    if status_code >= 500:
        logger.error(line)
    elif is_production() and status_code >= 400:
        logger.warning(line)
    else:
        logger.info(line)


async def request_logging_middleware(request: Request, call_next):
    """Log requests and add timing information."""
    start_time = time.time()
    request.state.timestamp = start_time

    try:
        response = await call_next(request)
    except Exception:
        # Unhandled errors are logged as 500 before they propagate
        _log_request(request, 500, time.time() - start_time)
        raise

    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    _log_request(request, response.status_code, process_time)
    return response
