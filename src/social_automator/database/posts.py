"""
Post repository.

Reads and writes rows of the ``posts`` table. Every function takes the
Supabase client explicitly so the scheduler job and request handlers can share
them.
"""

import logging
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta, timezone
from supabase import Client

from .client import execute
from .models import PostStatus
from ..errors import NotFoundError

logger = logging.getLogger(__name__)

POSTS_TABLE = "posts"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_iso(value: datetime) -> str:
    """Serialize a datetime as an ISO string in UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


async def add_post(
    client: Client,
    user_id: str,
    text: str,
    platforms: List[str],
    schedule_time: datetime,
    image_url: Optional[str] = None,
    status: PostStatus = PostStatus.QUEUED,
    results: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Insert a post row and return it."""
    now = utc_now().isoformat()
    row = {
        "user_id": user_id,
        "text": text,
        "image_url": image_url,
        "platforms": platforms,
        "schedule_time": to_utc_iso(schedule_time),
        "status": status.value,
        "results": results,
        "created_at": now,
        "updated_at": now,
    }
    if status != PostStatus.QUEUED:
        row["posted_at"] = now

    data = await execute(client.table(POSTS_TABLE).insert(row))
    post = data[0] if data else row
    logger.info(f"Post {post.get('id')} saved for user {user_id} with status {status.value}")
    return post


async def get_due_posts(client: Client, limit: int = 10) -> List[Dict[str, Any]]:
    """Queued posts whose schedule time has passed, oldest first."""
    query = (
        client.table(POSTS_TABLE)
        .select("*")
        .eq("status", PostStatus.QUEUED.value)
        .lte("schedule_time", utc_now().isoformat())
        .order("schedule_time")
        .limit(limit)
    )
    return await execute(query)


async def get_queue(client: Client, user_id: str) -> List[Dict[str, Any]]:
    query = (
        client.table(POSTS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("status", PostStatus.QUEUED.value)
        .order("schedule_time")
    )
    return await execute(query)


async def get_all_queued(client: Client) -> List[Dict[str, Any]]:
    query = (
        client.table(POSTS_TABLE)
        .select("*")
        .eq("status", PostStatus.QUEUED.value)
        .order("schedule_time")
    )
    return await execute(query)


async def delete_from_queue(client: Client, post_id: Any, user_id: str) -> Dict[str, Any]:
    """
    Delete a queued post owned by the user.

    Raises:
        NotFoundError: If the user has no queued post with this ID
    """
    query = (
        client.table(POSTS_TABLE)
        .delete()
        .eq("id", post_id)
        .eq("user_id", user_id)
        .eq("status", PostStatus.QUEUED.value)
    )
    data = await execute(query)
    if not data:
        raise NotFoundError("Post not found in queue")
    logger.info(f"Post {post_id} removed from queue by user {user_id}")
    return data[0]


async def update_post_status(
    client: Client,
    post_id: Any,
    status: PostStatus,
    results: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    now = utc_now().isoformat()
    update: Dict[str, Any] = {"status": status.value, "updated_at": now}
    if results is not None:
        update["results"] = results
    if status != PostStatus.QUEUED:
        update["posted_at"] = now

    data = await execute(client.table(POSTS_TABLE).update(update).eq("id", post_id))
    return data[0] if data else None


async def get_post_history(
    client: Client,
    user_id: str,
    limit: int = 50,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    """Published, failed and partial posts, newest first."""
    query = (
        client.table(POSTS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .in_("status", [PostStatus.POSTED.value, PostStatus.FAILED.value, PostStatus.PARTIAL.value])
        .order("created_at", desc=True)
        .range(offset, offset + limit - 1)
    )
    return await execute(query)


def _platform_succeeded(result: Any) -> bool:
    entries = result if isinstance(result, list) else [result]
    return any(isinstance(entry, dict) and entry.get("success") for entry in entries)


async def get_platform_stats(client: Client, user_id: str) -> Dict[str, Dict[str, int]]:
    """
    Per-platform totals computed from stored publish results.

    Returns:
        Mapping of platform to total, successful, failed and success_rate (percent)
    """
    try:
        query = (
            client.table(POSTS_TABLE)
            .select("platforms, status, results")
            .eq("user_id", user_id)
            .in_("status", [PostStatus.POSTED.value, PostStatus.FAILED.value, PostStatus.PARTIAL.value])
        )
        posts = await execute(query)
    except Exception as e:
        logger.error(f"Error loading platform stats for user {user_id}: {e}")
        return {}

    stats: Dict[str, Dict[str, int]] = {}
    for post in posts:
        results = post.get("results") or {}
        for platform in post.get("platforms") or []:
            entry = stats.setdefault(platform, {"total": 0, "successful": 0, "failed": 0})
            entry["total"] += 1
            if platform not in results:
                continue
            if _platform_succeeded(results[platform]):
                entry["successful"] += 1
            else:
                entry["failed"] += 1

    for entry in stats.values():
        entry["success_rate"] = round(entry["successful"] / entry["total"] * 100) if entry["total"] else 0

    return stats


async def cleanup_old_posts(client: Client, days: int = 7) -> int:
    """Delete published or failed posts older than ``days``. Returns the number removed."""
    cutoff = (utc_now() - timedelta(days=days)).isoformat()
    try:
        query = (
            client.table(POSTS_TABLE)
            .delete()
            .neq("status", PostStatus.QUEUED.value)
            .lt("posted_at", cutoff)
        )
        removed = await execute(query)
    except Exception as e:
        logger.error(f"Error cleaning up old posts: {e}")
        return 0

    if removed:
        logger.info(f"🧹 Cleaned up {len(removed)} old post(s)")
    return len(removed)
