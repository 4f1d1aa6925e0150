"""
Rate limiting for the API.

Limits are applied per client IP in 15 minute windows. Development runs get
more generous limits than production. Webhooks and the health check are not
limited.
"""

import os
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import is_production

logger = logging.getLogger(__name__)

WINDOW = "15 minutes"

# (production, development) requests per window
RATE_LIMITS = {
    "auth": (50, 100),
    "api": (500, 1000),
    "public": (200, 2000),
}


def _tier_limit(tier: str) -> str:
    production, development = RATE_LIMITS[tier]
    count = production if is_production() else development
    return f"{count} per {WINDOW}"


def auth_limit() -> str:
    """Limit for login/OAuth endpoints."""
    return _tier_limit("auth")


def api_limit() -> str:
    """Limit for authenticated API endpoints."""
    return _tier_limit("api")


def public_limit() -> str:
    """Limit for public endpoints such as the plan catalogue."""
    return _tier_limit("public")


limiter = Limiter(
    key_func=get_remote_address,
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
)
