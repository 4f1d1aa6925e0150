"""
Connected account management.

Accounts live in the ``user_accounts`` table, one row per connected account,
keyed by (user_id, platform, platform_user_id). Token columns never leave
this module except through ``get_credentials_for_posting``.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from supabase import Client
import aiohttp

from .bridge import OAuthBridge, PROVIDERS, needs_refresh
from ..database.client import execute
from ..database.models import AccountStatus
from ..errors import AppError, NotFoundError, ValidationError
from ..platforms.base import PlatformCredentials

logger = logging.getLogger(__name__)

ACCOUNTS_TABLE = "user_accounts"
ACCOUNT_CONFLICT_KEY = "user_id,platform,platform_user_id"
PUBLIC_COLUMNS = (
    "id, platform, platform_name, platform_username, account_label, "
    "is_default, status, connected_at, token_expires_at"
)
MAX_LABEL_LENGTH = 50


async def get_connected_accounts(client: Client, user_id: str) -> List[Dict[str, Any]]:
    """Active accounts of a user without token columns."""
    query = (
        client.table(ACCOUNTS_TABLE)
        .select(PUBLIC_COLUMNS)
        .eq("user_id", user_id)
        .eq("status", AccountStatus.ACTIVE.value)
        .order("platform")
    )
    return await execute(query)


async def count_active_accounts(client: Client, user_id: str) -> int:
    query = (
        client.table(ACCOUNTS_TABLE)
        .select("id")
        .eq("user_id", user_id)
        .eq("status", AccountStatus.ACTIVE.value)
    )
    return len(await execute(query))


async def _get_account(client: Client, user_id: str, account_id: Any) -> Dict[str, Any]:
    query = (
        client.table(ACCOUNTS_TABLE)
        .select("id, platform, status")
        .eq("id", account_id)
        .eq("user_id", user_id)
    )
    rows = await execute(query)
    if not rows:
        raise NotFoundError("Account not found")
    return rows[0]


async def update_account_label(client: Client, user_id: str, account_id: Any, label: str) -> Dict[str, Any]:
    label = (label or "").strip()
    if not label:
        raise ValidationError("Account label cannot be empty")
    if len(label) > MAX_LABEL_LENGTH:
        raise ValidationError(f"Account label must be {MAX_LABEL_LENGTH} characters or less")

    query = (
        client.table(ACCOUNTS_TABLE)
        .update({"account_label": label})
        .eq("id", account_id)
        .eq("user_id", user_id)
    )
    rows = await execute(query)
    if not rows:
        raise NotFoundError("Account not found")
    logger.info(f"Account {account_id} relabelled by user {user_id}")
    return {"id": rows[0]["id"], "account_label": label}


async def set_default_account(client: Client, user_id: str, account_id: Any) -> Dict[str, Any]:
    """Make an account the default for its platform, clearing the previous default."""
    account = await _get_account(client, user_id, account_id)

    await execute(
        client.table(ACCOUNTS_TABLE)
        .update({"is_default": False})
        .eq("user_id", user_id)
        .eq("platform", account["platform"])
    )
    await execute(
        client.table(ACCOUNTS_TABLE)
        .update({"is_default": True})
        .eq("id", account_id)
        .eq("user_id", user_id)
    )
    logger.info(f"Account {account_id} is now the default {account['platform']} account for user {user_id}")
    return {"id": account["id"], "platform": account["platform"], "is_default": True}


async def disconnect_platform(client: Client, user_id: str, platform: str) -> int:
    """Disconnect every account of a platform. Returns how many were disconnected."""
    rows = await execute(
        client.table(ACCOUNTS_TABLE)
        .update({"status": AccountStatus.DISCONNECTED.value})
        .eq("user_id", user_id)
        .eq("platform", platform)
        .eq("status", AccountStatus.ACTIVE.value)
    )
    logger.info(f"Disconnected {len(rows)} {platform} account(s) for user {user_id}")
    return len(rows)


async def disconnect_account(client: Client, user_id: str, account_id: Any) -> Dict[str, Any]:
    rows = await execute(
        client.table(ACCOUNTS_TABLE)
        .update({"status": AccountStatus.DISCONNECTED.value})
        .eq("id", account_id)
        .eq("user_id", user_id)
    )
    if not rows:
        raise NotFoundError("Account not found")
    logger.info(f"Disconnected account {account_id} for user {user_id}")
    return {"id": rows[0]["id"], "platform": rows[0]["platform"]}


async def save_connected_account(
    client: Client,
    user_id: str,
    platform: str,
    platform_user_id: str,
    access_token: str,
    platform_name: Optional[str] = None,
    oauth_provider: Optional[str] = None,
    refresh_token: Optional[str] = None,
    token_expires_at: Optional[datetime] = None,
    platform_username: Optional[str] = None,
    platform_metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Insert or refresh a connected account (upsert on user, platform and platform user ID)."""
    row = {
        "user_id": user_id,
        "platform": platform,
        "platform_name": platform_name or platform.title(),
        "oauth_provider": oauth_provider or platform,
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_expires_at": token_expires_at.isoformat() if token_expires_at else None,
        "platform_user_id": str(platform_user_id),
        "platform_username": platform_username,
        "platform_metadata": platform_metadata or {},
        "status": AccountStatus.ACTIVE.value,
        "connected_at": datetime.now(timezone.utc).isoformat(),
    }
    rows = await execute(client.table(ACCOUNTS_TABLE).upsert(row, on_conflict=ACCOUNT_CONFLICT_KEY))
    saved = rows[0] if rows else row
    logger.info(f"✅ {platform} account {platform_username or platform_user_id} connected for user {user_id}")
    return {key: saved.get(key) for key in ("id", "platform", "platform_username", "status")}


async def _refresh_if_needed(client: Client, bridge: OAuthBridge, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Refresh a token expiring within 24h. Returns None when the account had to be marked expired."""
    platform = row["platform"]
    if platform not in PROVIDERS or not needs_refresh(row.get("token_expires_at")):
        return row

    try:
        tokens = await bridge.refresh_access_token(platform, row.get("refresh_token"))
    except AppError as e:
        logger.warning(f"Token refresh failed for {platform} account {row['id']}: {e.message}")
        await execute(
            client.table(ACCOUNTS_TABLE)
            .update({"status": AccountStatus.EXPIRED.value})
            .eq("id", row["id"])
        )
        return None
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        # Token is still valid for a while, try again on the next post
        logger.warning(f"Token refresh for {platform} account {row['id']} could not reach the provider: {e}")
        return row

    update = {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_expires_at": tokens.expires_at.isoformat() if tokens.expires_at else None,
    }
    await execute(client.table(ACCOUNTS_TABLE).update(update).eq("id", row["id"]))
    return {**row, **update}


async def get_credentials_for_posting(
    client: Client,
    user_id: str,
    account_ids: Optional[Dict[str, Any]] = None,
    bridge: Optional[OAuthBridge] = None,
) -> Dict[str, List[PlatformCredentials]]:
    """
    Load posting credentials of a user's active accounts grouped by platform.

    Args:
        client: Supabase admin client
        user_id: Owner of the accounts
        account_ids: Optional {platform: account_id} selection; other accounts
            of a selected platform are left out
        bridge: OAuth bridge used to refresh expiring tokens

    Returns:
        Mapping of platform to a list of credentials
    """
    query = (
        client.table(ACCOUNTS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("status", AccountStatus.ACTIVE.value)
    )
    rows = await execute(query)

    account_ids = account_ids or {}
    selected = [
        row for row in rows
        if row["platform"] not in account_ids or str(row["id"]) == str(account_ids[row["platform"]])
    ]

    owns_bridge = bridge is None
    bridge = bridge or OAuthBridge()
    credentials: Dict[str, List[PlatformCredentials]] = defaultdict(list)
    try:
        for row in selected:
            row = await _refresh_if_needed(client, bridge, row)
            if row is not None:
                credentials[row["platform"]].append(PlatformCredentials.from_row(row))
    finally:
        if owns_bridge:
            await bridge.close()

    return dict(credentials)
