"""
Posting, scheduling, queue and history endpoints.

``/api/post/now`` and ``/api/schedule`` are kept next to the newer paths for
the browser extension.
"""

import logging
from typing import Any, Dict, List, Optional, Union
from datetime import datetime
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from supabase import Client

from ..database.client import get_supabase_admin
from ..database.models import UsageResource
from ..database.posts import delete_from_queue, get_platform_stats, get_post_history, get_queue
from ..middleware.rate_limiter import api_limit, limiter
from ..payment.usage import increment_usage, require_usage
from ..scheduler.queue import publish_now, schedule_post
from ..security.auth import get_current_user

logger = logging.getLogger(__name__)

posts_router = APIRouter(prefix="/api", tags=["posts"])


class PublishRequest(BaseModel):
    """Immediate post request. Accepts the camelCase keys the extension sends."""
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., description="Post caption")
    platforms: Union[List[str], str] = Field(..., description="Target platforms")
    image_url: Optional[str] = Field(None, alias="imageUrl", description="Image or video URL")
    account_ids: Optional[Dict[str, Any]] = Field(
        None, alias="accountIds", description="Selected account per platform"
    )


class ScheduleRequest(PublishRequest):
    """Scheduled post request."""
    schedule_time: datetime = Field(..., alias="scheduleTime", description="When to publish (UTC if no offset)")


async def _post_now(body: PublishRequest, user: Dict[str, Any], supabase: Client) -> Dict[str, Any]:
    return await publish_now(
        supabase,
        user["id"],
        body.text,
        body.platforms,
        image_url=body.image_url,
        account_ids=body.account_ids,
    )


async def _schedule(body: ScheduleRequest, user: Dict[str, Any], supabase: Client) -> Dict[str, Any]:
    await require_usage(supabase, user["id"], UsageResource.POSTS.value)
    post = await schedule_post(
        supabase, user["id"], body.text, body.platforms, body.schedule_time, image_url=body.image_url
    )
    await increment_usage(supabase, user["id"], UsageResource.POSTS.value)
    return {"success": True, "post": post}


@posts_router.post("/posts/now")
@limiter.limit(api_limit)
async def post_now(
    request: Request,
    body: PublishRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    """Publish to the selected platforms right away."""
    return await _post_now(body, user, supabase)


@posts_router.post("/post/now", include_in_schema=False)
@limiter.limit(api_limit)
async def post_now_legacy(
    request: Request,
    body: PublishRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    return await _post_now(body, user, supabase)


@posts_router.post("/posts/schedule")
@limiter.limit(api_limit)
async def schedule(
    request: Request,
    body: ScheduleRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    """Queue a post; the scheduler publishes it once its time has passed."""
    return await _schedule(body, user, supabase)


@posts_router.post("/schedule", include_in_schema=False)
@limiter.limit(api_limit)
async def schedule_legacy(
    request: Request,
    body: ScheduleRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    return await _schedule(body, user, supabase)


@posts_router.get("/queue")
@limiter.limit(api_limit)
async def queue(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    return {"success": True, "queue": await get_queue(supabase, user["id"])}


@posts_router.delete("/queue/{post_id}")
@limiter.limit(api_limit)
async def remove_from_queue(
    request: Request,
    post_id: int,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    post = await delete_from_queue(supabase, post_id, user["id"])
    return {"success": True, "deleted": post.get("id")}


@posts_router.get("/history")
@limiter.limit(api_limit)
async def history(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    return {"success": True, "history": await get_post_history(supabase, user["id"], limit, offset)}


@posts_router.get("/analytics/platforms")
@limiter.limit(api_limit)
async def platform_analytics(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    """Success rates per platform."""
    return {"success": True, "stats": await get_platform_stats(supabase, user["id"])}
