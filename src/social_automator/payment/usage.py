"""
Usage tracking and plan enforcement.

Usage is counted per calendar month in the ``usage`` table (one row per user
and month, ``month`` stored as ``YYYY-MM-01``). Plan limits come from
``payment.plans``; the user's plan comes from the ``subscriptions`` table and
defaults to free.

Usage lookups degrade gracefully: when the database cannot be reached the
user is allowed through rather than blocked.
"""

import logging
from typing import Any, Dict, Optional
from datetime import datetime
from postgrest.exceptions import APIError
from supabase import Client

from .plans import UNLIMITED, check_limit_with_grace, get_plan, get_recommended_upgrade
from ..database.client import execute
from ..database.models import PlanName, SubscriptionStatus, UsageResource
from ..database.posts import utc_now
from ..errors import UsageLimitError, ValidationError
from ..oauth.accounts import count_active_accounts

logger = logging.getLogger(__name__)

USAGE_TABLE = "usage"
SUBSCRIPTIONS_TABLE = "subscriptions"

USAGE_COLUMNS = {
    UsageResource.POSTS.value: "posts_count",
    UsageResource.AI.value: "ai_count",
    UsageResource.ACCOUNTS.value: "accounts_count",
}


def current_month(now: Optional[datetime] = None) -> str:
    """First day of the current month, e.g. ``2025-03-01``."""
    return (now or utc_now()).strftime("%Y-%m-01")


def _empty_usage() -> Dict[str, int]:
    return {column: 0 for column in USAGE_COLUMNS.values()}


def _usage_column(resource: str) -> str:
    column = USAGE_COLUMNS.get(resource)
    if column is None:
        raise ValidationError(f"Unknown usage resource: {resource}")
    return column


async def get_usage(client: Client, user_id: str) -> Dict[str, int]:
    """This month's counters for a user. Zeros when nothing was recorded yet."""
    query = (
        client.table(USAGE_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("month", current_month())
    )
    try:
        rows = await execute(query)
    except APIError as e:
        logger.warning(f"Could not load usage for user {user_id}: {e.message}")
        return _empty_usage()

    usage = _empty_usage()
    if rows:
        for column in usage:
            usage[column] = rows[0].get(column) or 0
    return usage


async def increment_usage(client: Client, user_id: str, resource: str, amount: int = 1) -> None:
    """Add ``amount`` to this month's counter of ``resource``."""
    column = _usage_column(resource)
    month = current_month()

    try:
        rows = await execute(
            client.table(USAGE_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("month", month)
        )
        if rows:
            await execute(
                client.table(USAGE_TABLE)
                .update({column: (rows[0].get(column) or 0) + amount})
                .eq("user_id", user_id)
                .eq("month", month)
            )
        else:
            await execute(
                client.table(USAGE_TABLE).insert({"user_id": user_id, "month": month, column: amount})
            )
    except APIError as e:
        # A lost increment must not fail the post that was already published
        logger.error(f"❌ Error incrementing {resource} usage for user {user_id}: {e.message}")


async def get_subscription(client: Client, user_id: str) -> Optional[Dict[str, Any]]:
    rows = await execute(client.table(SUBSCRIPTIONS_TABLE).select("*").eq("user_id", user_id))
    return rows[0] if rows else None


def _plan_of(subscription: Optional[Dict[str, Any]]) -> str:
    return (subscription or {}).get("plan") or PlanName.FREE.value


async def get_user_plan(client: Client, user_id: str) -> str:
    return _plan_of(await get_subscription(client, user_id))


async def check_usage(client: Client, user_id: str, resource: str) -> Dict[str, Any]:
    """
    Check whether the user may consume one more unit of ``resource``.

    Accounts are counted from the active rows of ``user_accounts``; posts and
    AI generations from this month's usage counters.

    Returns:
        Dict with allowed, message and limit details. Blocked results also
        carry hard_block and upgrade_plan.
    """
    column = _usage_column(resource)
    try:
        plan = await get_user_plan(client, user_id)
        if resource == UsageResource.ACCOUNTS.value:
            current = await count_active_accounts(client, user_id)
        else:
            current = (await get_usage(client, user_id))[column]
    except APIError as e:
        logger.warning(f"Usage check unavailable for user {user_id}, allowing request: {e.message}")
        return {"allowed": True, "message": None}

    limit_check = check_limit_with_grace(plan, resource, current)
    if limit_check["allowed"]:
        return {"allowed": True, "message": limit_check["message"], "limit": limit_check}

    upgrade_plan = get_recommended_upgrade(plan)
    upgrade_message = f" Upgrade to {upgrade_plan.upper()} for unlimited access." if upgrade_plan else ""
    logger.info(f"User {user_id} reached the {plan} {resource} limit ({current}/{limit_check['limit']})")
    return {
        "allowed": False,
        "hard_block": limit_check["hard_block"],
        "message": limit_check["message"] + upgrade_message,
        "limit": limit_check,
        "upgrade_plan": upgrade_plan,
    }


async def require_usage(client: Client, user_id: str, resource: str) -> Dict[str, Any]:
    """
    Like ``check_usage`` but raises when the user is blocked.

    Raises:
        UsageLimitError: 402 carrying ``limitReached`` and ``upgradePlan``
    """
    result = await check_usage(client, user_id, resource)
    if not result["allowed"]:
        raise UsageLimitError(
            result["message"],
            extra={"limitReached": True, "upgradePlan": result.get("upgrade_plan")},
        )
    return result


def _remaining(limit: int, used: int) -> Any:
    if limit == UNLIMITED:
        return "Unlimited"
    return max(0, limit - used)


async def get_billing_info(client: Client, user_id: str) -> Dict[str, Any]:
    """Plan, subscription state and this month's usage for the billing page."""
    subscription = await get_subscription(client, user_id)
    plan_name = _plan_of(subscription)
    plan = get_plan(plan_name)
    usage = await get_usage(client, user_id)
    accounts_count = await count_active_accounts(client, user_id)

    return {
        "plan": {
            "name": plan_name,
            "displayName": plan.name,
            "price": plan.price,
            "limits": plan.limits.model_dump(),
        },
        "subscription": {
            "status": (subscription or {}).get("status") or SubscriptionStatus.ACTIVE.value,
            "currentPeriodEnd": (subscription or {}).get("current_period_end"),
            "trialEndsAt": (subscription or {}).get("trial_ends_at"),
        },
        "usage": {
            "posts": {
                "used": usage["posts_count"],
                "limit": plan.limits.posts,
                "remaining": _remaining(plan.limits.posts, usage["posts_count"]),
            },
            "ai": {
                "used": usage["ai_count"],
                "limit": plan.limits.ai,
                "remaining": _remaining(plan.limits.ai, usage["ai_count"]),
            },
            "accounts": {
                "used": accounts_count,
                "limit": plan.limits.accounts,
            },
        },
    }


async def save_subscription(client: Client, user_id: str, **fields: Any) -> Dict[str, Any]:
    """Upsert the subscription row of a user."""
    row = {"user_id": user_id, **fields, "updated_at": utc_now().isoformat()}
    rows = await execute(client.table(SUBSCRIPTIONS_TABLE).upsert(row, on_conflict="user_id"))
    return rows[0] if rows else row


async def set_user_plan(
    client: Client,
    user_id: str,
    plan_name: str,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
) -> Dict[str, Any]:
    """Put a user on a plan directly, without a payment provider."""
    get_plan(plan_name)
    plan_name = plan_name.lower()
    subscription = await save_subscription(client, user_id, plan=plan_name, status=status.value)
    logger.info(f"User {user_id} moved to the {plan_name} plan ({status.value})")
    return subscription
