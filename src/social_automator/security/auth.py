import asyncio
import logging
from typing import Any, Dict, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from supabase import Client

from ..config import get_admin_emails
from ..database.client import get_supabase_client
from ..errors import ForbiddenError, TokenExpiredError, UnauthorizedError

logger = logging.getLogger(__name__)

# Missing headers are reported by get_current_user with the API error format
security = HTTPBearer(auto_error=False)

DEV_USER = {"id": "dev-user", "email": "dev@example.com", "user_metadata": {}}


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    supabase: Optional[Client] = Depends(get_supabase_client),
) -> Dict[str, Any]:
    """Get current authenticated user from the Supabase JWT bearer token."""
    if supabase is None:
        # Development mode without Supabase
        request.state.user = DEV_USER
        return DEV_USER

    if not credentials or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise UnauthorizedError("No authorization token provided")

    try:
        response = await asyncio.to_thread(supabase.auth.get_user, credentials.credentials)
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        if "expired" in str(e).lower():
            raise TokenExpiredError("Authentication token expired")
        raise UnauthorizedError("Invalid or expired token")

    if not response or not response.user:
        raise UnauthorizedError("Invalid or expired token")

    user = {
        "id": response.user.id,
        "email": response.user.email,
        "user_metadata": response.user.user_metadata or {},
    }
    request.state.user = user
    return user


def is_admin(email: Optional[str]) -> bool:
    if not email:
        return False
    return email.strip().lower() in get_admin_emails()


async def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """Dependency that only lets ADMIN_EMAILS through."""
    if not is_admin(user.get("email")):
        logger.warning(f"Admin access denied for user {user.get('id')}")
        raise ForbiddenError("Admin access required")
    return user
