"""
Account connection flows.

OAuth platforms finish their flow in ``handle_callback``. Telegram, Slack,
Discord and Mastodon are connected manually with credentials the user pastes
in; those are verified against the platform before they are stored.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode
from supabase import Client
import aiohttp

from .accounts import save_connected_account
from .bridge import OAuthBridge, get_provider
from ..config import get_frontend_url
from ..errors import AppError, PlatformError, ValidationError
from ..platforms import get_publisher
from ..platforms.base import PlatformCredentials
from ..security.oauth_state import decrypt_state

logger = logging.getLogger(__name__)

MANUAL_PLATFORMS = ("telegram", "slack", "discord", "mastodon")


def frontend_redirect(path: str, **params: str) -> str:
    query = f"?{urlencode(params)}" if params else ""
    return f"{get_frontend_url()}{path}{query}"


async def handle_callback(
    client: Client,
    provider_name: str,
    code: Optional[str],
    state: Optional[str],
    redirect_uri: str,
    error: Optional[str] = None,
    bridge: Optional[OAuthBridge] = None,
) -> str:
    """
    Finish an OAuth flow and return the dashboard URL to redirect to.

    Failures never raise: they redirect to the dashboard with an error code.
    """
    provider = get_provider(provider_name)
    name = provider.name

    if error:
        logger.warning(f"{provider.platform_name} authorization denied: {error}")
        return frontend_redirect("/dashboard", error=f"{name}_denied")
    if not code or not state:
        return frontend_redirect("/dashboard", error=f"{name}_missing_params")

    try:
        user_id = decrypt_state(state)
    except ValidationError:
        logger.warning(f"{provider.platform_name} callback with invalid state")
        return frontend_redirect("/dashboard", error=f"{name}_invalid_state")

    owns_bridge = bridge is None
    bridge = bridge or OAuthBridge()
    try:
        tokens = await bridge.exchange_code(name, code, redirect_uri)
        profile = await bridge.fetch_profile(name, tokens)
        await save_connected_account(
            client,
            user_id=user_id,
            platform=name,
            platform_user_id=profile.platform_user_id,
            access_token=tokens.access_token,
            platform_name=provider.platform_name,
            oauth_provider=name,
            refresh_token=tokens.refresh_token,
            token_expires_at=tokens.expires_at,
            platform_username=profile.platform_username,
            platform_metadata={**profile.metadata, "scope": tokens.scope},
        )
    except AppError as e:
        logger.error(f"{provider.platform_name} connection failed for user {user_id}: {e.message}")
        return frontend_redirect("/dashboard", error=f"{name}_token_exchange_failed")
    finally:
        if owns_bridge:
            await bridge.close()

    return frontend_redirect("/connect-accounts", connected=name, success="true")


async def _verify(
    platform: str,
    credentials: PlatformCredentials,
    session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, Any]:
    async with get_publisher(platform, session=session) as publisher:
        try:
            return await publisher.verify(credentials)
        except PlatformError as e:
            raise ValidationError(f"Invalid {platform} credentials: {e.message}")
        except aiohttp.ClientError as e:
            raise ValidationError(f"Could not reach {platform}: {e}")


async def connect_telegram(
    client: Client,
    user_id: str,
    bot_token: str,
    chat_id: str,
    session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, Any]:
    if not bot_token or not chat_id:
        raise ValidationError("Bot token and chat ID required")

    bot = await _verify("telegram", PlatformCredentials(platform="telegram", access_token=bot_token), session)
    account = await save_connected_account(
        client,
        user_id=user_id,
        platform="telegram",
        platform_user_id=chat_id,
        access_token=bot_token,
        platform_name=bot.get("username") or "Telegram Bot",
        oauth_provider="manual",
        platform_username=bot.get("username") or "bot",
        platform_metadata={"chat_id": chat_id, "bot_id": bot.get("id")},
    )
    return {"account": account, "bot": bot}


async def connect_webhook(
    client: Client,
    user_id: str,
    platform: str,
    webhook_url: str,
    name: Optional[str] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, Any]:
    """Connect a Slack or Discord incoming webhook."""
    if platform not in ("slack", "discord"):
        raise ValidationError(f"{platform} does not use webhooks")
    if not webhook_url:
        raise ValidationError("Webhook URL required")

    await _verify(platform, PlatformCredentials(platform=platform, access_token=webhook_url), session)
    default_name = "Slack Workspace" if platform == "slack" else "Discord Server"
    account = await save_connected_account(
        client,
        user_id=user_id,
        platform=platform,
        # The webhook URL is the secret, only a prefix identifies the account
        platform_user_id=webhook_url[:50],
        access_token=webhook_url,
        platform_name=name or platform.title(),
        oauth_provider="webhook",
        platform_username=name or default_name,
    )
    return {"account": account}


def normalize_instance_url(instance_url: str) -> str:
    url = instance_url.strip().rstrip("/")
    if not url.startswith("http"):
        url = f"https://{url}"
    return url


async def connect_mastodon(
    client: Client,
    user_id: str,
    access_token: str,
    instance_url: str,
    session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, Any]:
    if not access_token or not instance_url:
        raise ValidationError("Access token and instance URL required")

    instance_url = normalize_instance_url(instance_url)
    profile = await _verify(
        "mastodon",
        PlatformCredentials(platform="mastodon", access_token=access_token, metadata={"instance_url": instance_url}),
        session,
    )
    account = await save_connected_account(
        client,
        user_id=user_id,
        platform="mastodon",
        platform_user_id=profile["id"],
        access_token=access_token,
        platform_name="Mastodon",
        oauth_provider="access_token",
        platform_username=profile.get("acct"),
        platform_metadata={
            "instance_url": instance_url,
            "username": profile.get("username"),
            "display_name": profile.get("display_name"),
            "url": profile.get("url"),
        },
    )
    return {"account": account}
