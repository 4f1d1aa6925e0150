"""
Admin user management.

Users are listed from the Supabase auth admin API (service role client) and
merged with their current plan from the ``subscriptions`` table.
"""

import asyncio
import logging
from typing import Any, Dict, List
from datetime import datetime
from supabase import Client

from ..database.client import execute
from ..database.models import PlanName, SubscriptionStatus
from ..payment.usage import SUBSCRIPTIONS_TABLE, set_user_plan

logger = logging.getLogger(__name__)

USERS_PAGE_SIZE = 1000


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def serialize_user(user: Any) -> Dict[str, Any]:
    app_metadata = getattr(user, "app_metadata", None) or {}
    confirmed_at = getattr(user, "email_confirmed_at", None) or getattr(user, "confirmed_at", None)
    return {
        "id": user.id,
        "email": user.email,
        "created_at": _iso(getattr(user, "created_at", None)),
        "last_sign_in_at": _iso(getattr(user, "last_sign_in_at", None)),
        "provider": app_metadata.get("provider", "email"),
        "is_confirmed": confirmed_at is not None,
    }


async def fetch_all_users(client: Client, page_size: int = USERS_PAGE_SIZE) -> List[Any]:
    """Page through the auth admin API until a short page comes back."""
    users: List[Any] = []
    page = 1
    while True:
        batch = await asyncio.to_thread(client.auth.admin.list_users, page=page, per_page=page_size)
        users.extend(batch)
        if len(batch) < page_size:
            return users
        page += 1


async def list_users(client: Client) -> List[Dict[str, Any]]:
    """All auth users with their plan, newest first."""
    users = await fetch_all_users(client)
    subscriptions = await execute(client.table(SUBSCRIPTIONS_TABLE).select("user_id, plan, status"))
    plans = {row["user_id"]: row for row in subscriptions}

    result = []
    for user in users:
        data = serialize_user(user)
        subscription = plans.get(data["id"]) or {}
        data["plan"] = subscription.get("plan") or PlanName.FREE.value
        data["subscription_status"] = subscription.get("status") or SubscriptionStatus.ACTIVE.value
        result.append(data)

    result.sort(key=lambda u: u["created_at"] or "", reverse=True)
    logger.info(f"Admin listed {len(result)} users")
    return result


async def change_user_plan(client: Client, admin_id: str, user_id: str, plan_name: str) -> Dict[str, Any]:
    """Admin upgrade or downgrade of a user's plan."""
    subscription = await set_user_plan(client, user_id, plan_name)
    logger.warning(f"Admin {admin_id} set plan of user {user_id} to {subscription.get('plan')}")
    return subscription
