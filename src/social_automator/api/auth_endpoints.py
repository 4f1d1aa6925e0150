"""
Account connection endpoints.

OAuth platforms (LinkedIn, YouTube, TikTok) go through the consent URL and
the ``/auth/{provider}/callback`` redirect. Telegram, Slack, Discord and
Mastodon are connected with credentials pasted into the dashboard.
"""

import os
import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from supabase import Client

from ..database.client import get_supabase_admin
from ..database.models import UsageResource
from ..middleware.rate_limiter import auth_limit, limiter
from ..oauth.bridge import build_authorization_url, get_provider
from ..oauth.connections import connect_mastodon, connect_telegram, connect_webhook, handle_callback
from ..payment.usage import require_usage
from ..security.auth import get_current_user

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["authentication"])
callback_router = APIRouter(prefix="/auth", tags=["authentication"])


class TelegramConnectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bot_token: str = Field(..., alias="botToken", description="Token from @BotFather")
    chat_id: str = Field(..., alias="chatId", description="Channel or chat to post to")


class WebhookConnectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    webhook_url: str = Field(..., alias="webhookUrl", description="Incoming webhook URL")
    name: Optional[str] = Field(None, max_length=100, description="Workspace or server name")


class MastodonConnectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken", description="Mastodon access token")
    instance_url: str = Field(..., alias="instanceUrl", description="e.g. mastodon.social")


def get_redirect_uri(request: Request, provider: str) -> str:
    """``{PROVIDER}_REDIRECT_URI`` if set, else this server's callback URL."""
    configured = os.getenv(f"{provider.upper()}_REDIRECT_URI")
    if configured:
        return configured
    return str(request.url_for("oauth_callback", provider=provider))


@auth_router.post("/{provider}/url")
@limiter.limit(auth_limit)
async def authorization_url(
    request: Request,
    provider: str,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    """Consent URL the dashboard opens to connect an OAuth account."""
    name = get_provider(provider).name
    await require_usage(supabase, user["id"], UsageResource.ACCOUNTS.value)
    url = build_authorization_url(name, user["id"], get_redirect_uri(request, name))
    logger.info(f"🔑 Generated {name} authorization URL for user {user['id']}")
    return {"success": True, "authUrl": url}


@callback_router.get("/{provider}/callback", name="oauth_callback")
async def oauth_callback(
    request: Request,
    provider: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    supabase: Client = Depends(get_supabase_admin),
) -> RedirectResponse:
    name = get_provider(provider).name
    target = await handle_callback(
        supabase, name, code, state, get_redirect_uri(request, name), error=error
    )
    return RedirectResponse(url=target, status_code=302)


@auth_router.post("/telegram/connect")
@limiter.limit(auth_limit)
async def telegram_connect(
    request: Request,
    body: TelegramConnectRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    await require_usage(supabase, user["id"], UsageResource.ACCOUNTS.value)
    result = await connect_telegram(supabase, user["id"], body.bot_token, body.chat_id)
    return {"success": True, **result}


@auth_router.post("/slack/connect")
@limiter.limit(auth_limit)
async def slack_connect(
    request: Request,
    body: WebhookConnectRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    await require_usage(supabase, user["id"], UsageResource.ACCOUNTS.value)
    result = await connect_webhook(supabase, user["id"], "slack", body.webhook_url, body.name)
    return {"success": True, **result}


@auth_router.post("/discord/connect")
@limiter.limit(auth_limit)
async def discord_connect(
    request: Request,
    body: WebhookConnectRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    await require_usage(supabase, user["id"], UsageResource.ACCOUNTS.value)
    result = await connect_webhook(supabase, user["id"], "discord", body.webhook_url, body.name)
    return {"success": True, **result}


@auth_router.post("/mastodon/connect")
@limiter.limit(auth_limit)
async def mastodon_connect(
    request: Request,
    body: MastodonConnectRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    await require_usage(supabase, user["id"], UsageResource.ACCOUNTS.value)
    result = await connect_mastodon(supabase, user["id"], body.access_token, body.instance_url)
    return {"success": True, **result}
