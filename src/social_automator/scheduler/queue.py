"""
Post queue service.

Publishes posts to every connected account of each requested platform,
either immediately (``publish_now``) or when the scheduler picks up a due
queued post (``process_due_queue``). Per-platform results are stored on the
post as ``{platform: [result, ...]}`` and summarized into its status.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union
from datetime import datetime
from supabase import Client
import aiohttp

from ..database.models import PostStatus, UsageResource
from ..database.posts import add_post, get_due_posts, update_post_status, utc_now
from ..errors import ValidationError
from ..oauth.accounts import get_credentials_for_posting
from ..oauth.bridge import OAuthBridge
from ..payment.usage import increment_usage, require_usage
from ..platforms import get_publisher
from ..platforms.base import DEFAULT_TIMEOUT, PlatformCredentials, PublishResult

logger = logging.getLogger(__name__)

MAX_BATCH = 10

PostResults = Dict[str, List[Dict[str, Any]]]

_processing = False


def normalize_platforms(platforms: Union[str, List[str], None]) -> List[str]:
    """Accept a list, a JSON array string or a comma separated string."""
    if platforms is None:
        return []
    if isinstance(platforms, str):
        raw = platforms.strip()
        if raw.startswith("["):
            try:
                platforms = json.loads(raw)
            except ValueError:
                raise ValidationError("Platforms must be a list")
        else:
            platforms = raw.split(",")

    normalized: List[str] = []
    for platform in platforms:
        name = str(platform).strip().lower()
        if name and name not in normalized:
            normalized.append(name)
    return normalized


def _validate_post(text: Optional[str], platforms: List[str]):
    if not text or not text.strip():
        raise ValidationError("Post text is required")
    if not platforms:
        raise ValidationError("At least one platform is required")


async def schedule_post(
    client: Client,
    user_id: str,
    text: str,
    platforms: Union[str, List[str]],
    schedule_time: datetime,
    image_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Queue a post for the scheduler."""
    platforms = normalize_platforms(platforms)
    _validate_post(text, platforms)

    post = await add_post(client, user_id, text, platforms, schedule_time, image_url=image_url)
    logger.info(f"📅 Post {post.get('id')} scheduled for {post.get('schedule_time')} on {', '.join(platforms)}")
    return post


def _failed(platform: str, error: str) -> Dict[str, Any]:
    return PublishResult(success=False, platform=platform, error=error).to_dict()


def _failure_results(post: Dict[str, Any], error: str) -> PostResults:
    try:
        platforms = normalize_platforms(post.get("platforms"))
    except (ValidationError, TypeError):
        platforms = []
    return {platform: [_failed(platform, error)] for platform in platforms}


async def _mark_failed(client: Client, post: Dict[str, Any], error: str):
    try:
        await update_post_status(client, post["id"], PostStatus.FAILED, _failure_results(post, error))
    except Exception as e:
        logger.error(f"❌ Could not mark post {post.get('id')} as failed: {e}", exc_info=True)


async def dispatch(
    text: str,
    media_url: Optional[str],
    platforms: List[str],
    credentials: Dict[str, List[PlatformCredentials]],
    session: Optional[aiohttp.ClientSession] = None,
) -> PostResults:
    """
    Publish to every connected account of each platform.

    Never raises for a platform failure: unsupported platforms and platforms
    without a connected account get an error entry of their own.
    """
    owns_session = session is None
    session = session or aiohttp.ClientSession(timeout=DEFAULT_TIMEOUT)
    results: PostResults = {}

    logger.info(f"📤 Posting to: {', '.join(platforms)}")
    try:
        for platform in platforms:
            publisher = get_publisher(platform, session=session)
            if publisher is None:
                results[platform] = [_failed(platform, f"Publishing to {platform} is not supported")]
                continue

            accounts = credentials.get(platform) or []
            if not accounts:
                logger.warning(f"⚠️ No {platform} credentials found")
                results[platform] = [_failed(platform, f"No connected {platform} account")]
                continue

            results[platform] = [
                (await publisher.publish(text, media_url, account)).to_dict()
                for account in accounts
            ]
    finally:
        if owns_session:
            await session.close()

    return results


def summarize(results: PostResults) -> PostStatus:
    """``posted`` when every account succeeded, ``partial`` when some did, else ``failed``."""
    outcomes = [bool(entry.get("success")) for entries in results.values() for entry in entries]
    if outcomes and all(outcomes):
        return PostStatus.POSTED
    if any(outcomes):
        return PostStatus.PARTIAL
    return PostStatus.FAILED


async def publish_now(
    client: Client,
    user_id: str,
    text: str,
    platforms: Union[str, List[str]],
    image_url: Optional[str] = None,
    account_ids: Optional[Dict[str, Any]] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, Any]:
    """
    Publish a post immediately and record it in the post history.

    Raises:
        ValidationError: If text or platforms are missing
        UsageLimitError: If the user's plan does not allow another post
    """
    platforms = normalize_platforms(platforms)
    _validate_post(text, platforms)
    await require_usage(client, user_id, UsageResource.POSTS.value)

    bridge = OAuthBridge(session=session) if session is not None else None
    credentials = await get_credentials_for_posting(client, user_id, account_ids=account_ids, bridge=bridge)
    results = await dispatch(text, image_url, platforms, credentials, session=session)
    status = summarize(results)

    post = await add_post(
        client, user_id, text, platforms, utc_now(), image_url=image_url, status=status, results=results
    )
    if status != PostStatus.FAILED:
        await increment_usage(client, user_id, UsageResource.POSTS.value)

    logger.info(f"Post {post.get('id')} for user {user_id} finished with status {status.value}")
    return {
        "success": status == PostStatus.POSTED,
        "partial": status == PostStatus.PARTIAL,
        "status": status.value,
        "post_id": post.get("id"),
        "results": results,
    }


async def publish_queued_post(
    client: Client,
    post: Dict[str, Any],
    session: aiohttp.ClientSession,
    bridge: OAuthBridge,
) -> PostStatus:
    credentials = await get_credentials_for_posting(client, post["user_id"], bridge=bridge)
    platforms = normalize_platforms(post.get("platforms"))
    results = await dispatch(post["text"], post.get("image_url"), platforms, credentials, session=session)
    status = summarize(results)
    await update_post_status(client, post["id"], status, results)
    return status


async def process_due_queue(
    client: Client,
    limit: int = MAX_BATCH,
    session: Optional[aiohttp.ClientSession] = None,
) -> Dict[str, Any]:
    """
    Publish queued posts whose schedule time has passed.

    Runs are not reentrant: a call made while another is still processing
    returns immediately. A post that raises is marked failed and the rest of
    the batch continues.

    Returns:
        Counts of processed posts per resulting status
    """
    global _processing
    if _processing:
        logger.info("Queue processing already running, skipping this tick")
        return {"skipped": True, "processed": 0}

    _processing = True
    owns_session = session is None
    session = session or aiohttp.ClientSession(timeout=DEFAULT_TIMEOUT)
    bridge = OAuthBridge(session=session)
    summary: Dict[str, Any] = {"skipped": False, "processed": 0}
    try:
        due = await get_due_posts(client, limit=limit)
        if not due:
            return summary

        logger.info(f"📋 Processing {len(due)} due posts...")
        for post in due:
            try:
                status = await publish_queued_post(client, post, session, bridge)
            except Exception as e:
                logger.error(f"❌ Post {post.get('id')} failed: {e}", exc_info=True)
                status = PostStatus.FAILED
                await _mark_failed(client, post, str(e))
            summary["processed"] += 1
            summary[status.value] = summary.get(status.value, 0) + 1
            logger.info(f"✅ Post [{post.get('id')}] completed - Status: {status.value}")
        return summary
    finally:
        if owns_session:
            await session.close()
        _processing = False
