"""Tests for the post queue service and the background scheduler."""

from datetime import datetime, timedelta, timezone

import pytest

from . import queue
from .runner import CLEANUP_JOB_ID, QUEUE_JOB_ID, QueueScheduler
from ..conftest import FakeResponse, FakeSession
from ..database.models import PostStatus
from ..errors import UsageLimitError, ValidationError
from ..payment.usage import current_month
from ..platforms.base import PlatformCredentials

TELEGRAM_OK = FakeResponse(200, {"ok": True, "result": {"message_id": 5, "chat": {"id": -100777}}})


def _telegram_account(db, user_id="user-1"):
    return db.add_row("user_accounts", {
        "user_id": user_id, "platform": "telegram", "status": "active",
        "access_token": "123:abc", "platform_user_id": "-100777", "platform_username": "my_bot",
    })


def _past(minutes=5):
    return (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()


def test_normalize_platforms():
    assert queue.normalize_platforms(["Telegram", " slack ", "telegram"]) == ["telegram", "slack"]
    assert queue.normalize_platforms('["discord", "mastodon"]') == ["discord", "mastodon"]
    assert queue.normalize_platforms("slack,discord") == ["slack", "discord"]
    assert queue.normalize_platforms(None) == []


def test_summarize():
    ok = {"success": True}
    bad = {"success": False, "error": "boom"}
    assert queue.summarize({"slack": [ok], "discord": [ok]}) == PostStatus.POSTED
    assert queue.summarize({"slack": [ok, bad]}) == PostStatus.PARTIAL
    assert queue.summarize({"slack": [bad]}) == PostStatus.FAILED
    assert queue.summarize({}) == PostStatus.FAILED


async def test_schedule_post(fake_supabase):
    when = datetime(2030, 5, 1, 9, 30)
    post = await queue.schedule_post(fake_supabase, "user-1", "Launch day", "slack,discord", when)

    assert post["status"] == "queued"
    assert post["platforms"] == ["slack", "discord"]
    assert post["schedule_time"] == "2030-05-01T09:30:00+00:00"


async def test_schedule_post_validation(fake_supabase):
    with pytest.raises(ValidationError):
        await queue.schedule_post(fake_supabase, "user-1", "  ", ["slack"], datetime.now(timezone.utc))
    with pytest.raises(ValidationError):
        await queue.schedule_post(fake_supabase, "user-1", "hello", [], datetime.now(timezone.utc))


async def test_dispatch_reports_each_platform():
    session = FakeSession({"/sendMessage": TELEGRAM_OK})
    credentials = {
        "telegram": [PlatformCredentials(platform="telegram", access_token="123:abc", platform_user_id="-100777")],
    }

    results = await queue.dispatch("hello", None, ["telegram", "youtube", "slack"], credentials, session=session)

    assert results["telegram"][0]["success"] is True
    assert results["telegram"][0]["url"] == "https://t.me/c/100777/5"
    assert results["youtube"][0]["success"] is False
    assert "not supported" in results["youtube"][0]["error"]
    assert results["slack"][0]["error"] == "No connected slack account"
    assert session.closed is False


async def test_publish_now_records_post_and_usage(fake_supabase):
    _telegram_account(fake_supabase)
    session = FakeSession({"/sendMessage": TELEGRAM_OK})

    result = await queue.publish_now(fake_supabase, "user-1", "hello", ["telegram"], session=session)

    assert result["success"] is True
    assert result["status"] == "posted"
    saved = fake_supabase.rows("posts")[0]
    assert saved["status"] == "posted"
    assert saved["results"]["telegram"][0]["post_id"] == "5"
    usage = fake_supabase.rows("usage")[0]
    assert usage["posts_count"] == 1
    assert usage["month"] == current_month()


async def test_publish_now_failure_does_not_count(fake_supabase):
    _telegram_account(fake_supabase)
    session = FakeSession({"/sendMessage": FakeResponse(400, {"ok": False, "description": "chat not found"})})

    result = await queue.publish_now(fake_supabase, "user-1", "hello", ["telegram"], session=session)

    assert result["status"] == "failed"
    assert result["results"]["telegram"][0]["error"] == "chat not found"
    assert fake_supabase.rows("usage") == []


async def test_publish_now_blocked_by_plan(fake_supabase):
    fake_supabase.add_row("usage", {"user_id": "user-1", "month": current_month(), "posts_count": 12})

    with pytest.raises(UsageLimitError) as exc_info:
        await queue.publish_now(fake_supabase, "user-1", "hello", ["telegram"], session=FakeSession())

    assert exc_info.value.status_code == 402
    assert exc_info.value.extra == {"limitReached": True, "upgradePlan": "pro"}
    assert fake_supabase.rows("posts") == []


async def test_process_due_queue(fake_supabase):
    _telegram_account(fake_supabase)
    due = fake_supabase.add_row("posts", {
        "user_id": "user-1", "text": "due", "platforms": ["telegram"], "status": "queued", "schedule_time": _past(),
    })
    broken = fake_supabase.add_row("posts", {
        "user_id": "user-1", "platforms": ["telegram"], "status": "queued", "schedule_time": _past(2),
    })
    later = fake_supabase.add_row("posts", {
        "user_id": "user-1", "text": "later", "platforms": ["telegram"], "status": "queued",
        "schedule_time": (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
    })
    session = FakeSession({"/sendMessage": TELEGRAM_OK})

    summary = await queue.process_due_queue(fake_supabase, session=session)

    assert summary == {"skipped": False, "processed": 2, "posted": 1, "failed": 1}
    rows = {r["id"]: r for r in fake_supabase.rows("posts")}
    assert rows[due["id"]]["status"] == "posted"
    assert rows[broken["id"]]["status"] == "failed"
    assert rows[broken["id"]]["results"]["telegram"][0]["success"] is False
    assert rows[later["id"]]["status"] == "queued"


async def test_process_due_queue_continues_after_malformed_row(fake_supabase):
    _telegram_account(fake_supabase)
    bad = fake_supabase.add_row("posts", {
        "user_id": "user-1", "text": "bad", "platforms": "[telegram", "status": "queued", "schedule_time": _past(10),
    })
    good = fake_supabase.add_row("posts", {
        "user_id": "user-1", "text": "good", "platforms": ["telegram"], "status": "queued", "schedule_time": _past(),
    })
    session = FakeSession({"/sendMessage": TELEGRAM_OK})

    summary = await queue.process_due_queue(fake_supabase, session=session)

    assert summary == {"skipped": False, "processed": 2, "failed": 1, "posted": 1}
    rows = {r["id"]: r for r in fake_supabase.rows("posts")}
    assert rows[bad["id"]]["status"] == "failed"
    assert rows[bad["id"]]["results"] == {}
    assert rows[good["id"]]["status"] == "posted"


async def test_process_due_queue_survives_failed_status_update(fake_supabase, monkeypatch):
    _telegram_account(fake_supabase)
    bad = fake_supabase.add_row("posts", {
        "user_id": "user-1", "platforms": ["telegram"], "status": "queued", "schedule_time": _past(10),
    })
    good = fake_supabase.add_row("posts", {
        "user_id": "user-1", "text": "good", "platforms": ["telegram"], "status": "queued", "schedule_time": _past(),
    })
    update_post_status = queue.update_post_status

    async def flaky_update(client, post_id, status, results=None):
        if post_id == bad["id"]:
            raise RuntimeError("connection reset")
        return await update_post_status(client, post_id, status, results)

    monkeypatch.setattr(queue, "update_post_status", flaky_update)
    session = FakeSession({"/sendMessage": TELEGRAM_OK})

    summary = await queue.process_due_queue(fake_supabase, session=session)

    assert summary["processed"] == 2
    rows = {r["id"]: r for r in fake_supabase.rows("posts")}
    assert rows[good["id"]]["status"] == "posted"
    assert queue._processing is False


async def test_process_due_queue_is_not_reentrant(fake_supabase, monkeypatch):
    monkeypatch.setattr(queue, "_processing", True)
    summary = await queue.process_due_queue(fake_supabase, session=FakeSession())
    assert summary == {"skipped": True, "processed": 0}
    assert fake_supabase.queries == []


async def test_queue_scheduler_jobs(fake_supabase):
    scheduler = QueueScheduler(fake_supabase)
    scheduler.start()
    try:
        assert scheduler.running
        assert sorted(scheduler.get_job_ids()) == sorted([QUEUE_JOB_ID, CLEANUP_JOB_ID])
    finally:
        scheduler.shutdown()


async def test_run_cleanup_removes_old_posts(fake_supabase):
    old = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()
    fake_supabase.add_row("posts", {"user_id": "u", "status": "posted", "posted_at": old})
    fake_supabase.add_row("posts", {"user_id": "u", "status": "queued", "posted_at": None})

    await QueueScheduler(fake_supabase).run_cleanup()

    assert [r["status"] for r in fake_supabase.rows("posts")] == ["queued"]
