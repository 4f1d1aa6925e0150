"""
Supabase clients.

Two clients are created from the environment: the anon client verifies user
JWTs, the admin client (service role) performs server-side reads and writes.
Either one is ``None`` when its credentials are not configured.
"""

import os
import asyncio
import logging
from typing import Any, List, Optional
from supabase import Client, create_client

from ..errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

supabase_url = os.getenv("SUPABASE_URL")
supabase_anon_key = os.getenv("SUPABASE_ANON_KEY")
supabase_service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

if not supabase_url or not supabase_anon_key:
    logger.warning("Supabase credentials not found. Authentication will run in development mode.")
    supabase_client: Optional[Client] = None
else:
    supabase_client = create_client(supabase_url, supabase_anon_key)

if not supabase_url or not supabase_service_key:
    logger.warning("Supabase service role key not found. Database features are disabled.")
    supabase_admin: Optional[Client] = None
else:
    supabase_admin = create_client(supabase_url, supabase_service_key)


def get_supabase_client() -> Optional[Client]:
    """Dependency returning the anon client, or None in development mode."""
    return supabase_client


def get_supabase_admin() -> Client:
    """Dependency returning the service role client."""
    if not supabase_admin:
        raise ServiceUnavailableError("Database not configured. Check environment variables.")
    return supabase_admin


async def execute(query) -> List[Any]:
    """Run a query builder off the event loop and return its rows."""
    response = await asyncio.to_thread(query.execute)
    return response.data or []


async def health_check(client: Optional[Client]) -> bool:
    """Check that the posts table is reachable."""
    if client is None:
        return False
    try:
        await execute(client.table("posts").select("id").limit(1))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
