"""Connected account endpoints."""

import logging
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from supabase import Client

from ..database.client import get_supabase_admin
from ..middleware.rate_limiter import api_limit, limiter
from ..oauth.accounts import (
    disconnect_account,
    disconnect_platform,
    get_connected_accounts,
    set_default_account,
    update_account_label,
)
from ..security.auth import get_current_user

logger = logging.getLogger(__name__)

accounts_router = APIRouter(prefix="/api", tags=["accounts"])


class LabelRequest(BaseModel):
    label: str = Field(..., description="Display label for the account")


@accounts_router.get("/accounts")
@limiter.limit(api_limit)
async def list_accounts(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    accounts = await get_connected_accounts(supabase, user["id"])
    return {"success": True, "accounts": accounts, "count": len(accounts)}


@accounts_router.put("/user/accounts/{account_id}/label")
@limiter.limit(api_limit)
async def label_account(
    request: Request,
    account_id: int,
    body: LabelRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    account = await update_account_label(supabase, user["id"], account_id, body.label)
    return {"success": True, "account": account}


@accounts_router.put("/user/accounts/{account_id}/set-default")
@limiter.limit(api_limit)
async def make_default(
    request: Request,
    account_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    account = await set_default_account(supabase, user["id"], account_id)
    return {"success": True, "account": account}


@accounts_router.delete("/user/accounts/{platform}")
@limiter.limit(api_limit)
async def disconnect(
    request: Request,
    platform: str,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    """Disconnect every account of a platform."""
    count = await disconnect_platform(supabase, user["id"], platform.lower())
    return {"success": True, "platform": platform.lower(), "disconnected": count}


@accounts_router.delete("/user/accounts/id/{account_id}")
@limiter.limit(api_limit)
async def disconnect_one(
    request: Request,
    account_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    account = await disconnect_account(supabase, user["id"], account_id)
    return {"success": True, "account": account}
