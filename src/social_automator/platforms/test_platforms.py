"""Tests for the platform publishers using a fake HTTP session."""

import asyncio

import pytest

from . import get_publisher, register_publisher, supported_platforms, PUBLISHER_REGISTRY
from . import mastodon
from .base import PlatformCredentials, PlatformPublisher, PublishResult
from .discord import validate_webhook_url as validate_discord_url
from .slack import build_payload, validate_webhook_url as validate_slack_url
from .telegram import build_message_url
from ..conftest import FakeResponse, FakeSession
from ..errors import ValidationError


def test_registry_lists_manual_platforms():
    assert supported_platforms() == ["discord", "mastodon", "slack", "telegram"]
    assert get_publisher("TELEGRAM").platform == "telegram"
    assert get_publisher("myspace") is None


def test_register_publisher(monkeypatch):
    monkeypatch.setattr("social_automator.platforms.PUBLISHER_REGISTRY", dict(PUBLISHER_REGISTRY))

    @register_publisher
    class EchoPublisher(PlatformPublisher):
        platform = "echo"

        async def send(self, text, media_url, credentials):
            return PublishResult(success=True, platform=self.platform, post_id=text)

        async def verify(self, credentials):
            return {}

    assert isinstance(get_publisher("echo"), EchoPublisher)


def test_telegram_message_url():
    assert build_message_url(-1001234567890, 42) == "https://t.me/c/1001234567890/42"


async def test_telegram_send_message():
    session = FakeSession({
        "/sendMessage": FakeResponse(200, {"ok": True, "result": {"message_id": 7, "chat": {"id": -100555}}}),
    })
    publisher = get_publisher("telegram", session=session)
    creds = PlatformCredentials(platform="telegram", access_token="123:abc", platform_user_id="-100555")

    result = await publisher.publish("Hello <b>world</b>", None, creds)

    assert result.success is True
    assert result.post_id == "7"
    assert result.url == "https://t.me/c/100555/7"
    assert session.calls[0]["url"] == "https://api.telegram.org/bot123:abc/sendMessage"
    assert session.calls[0]["json"]["parse_mode"] == "HTML"


async def test_telegram_uses_photo_and_video_methods():
    ok = FakeResponse(200, {"ok": True, "result": {"message_id": 1, "chat": {"id": 5}}})
    session = FakeSession({"/sendPhoto": ok, "/sendVideo": ok})
    publisher = get_publisher("telegram", session=session)
    creds = PlatformCredentials(platform="telegram", access_token="t", platform_user_id="5")

    await publisher.publish("pic", "https://cdn.example.com/a.jpg", creds)
    await publisher.publish("clip", "https://cdn.example.com/a.mp4", creds)

    assert session.calls[0]["json"]["photo"] == "https://cdn.example.com/a.jpg"
    assert session.calls[1]["json"]["video"] == "https://cdn.example.com/a.mp4"


async def test_telegram_error_becomes_failed_result():
    session = FakeSession({
        "/sendMessage": FakeResponse(400, {"ok": False, "description": "Bad Request: chat not found"}),
    })
    publisher = get_publisher("telegram", session=session)
    creds = PlatformCredentials(platform="telegram", access_token="t", platform_user_id="1", platform_username="mybot")

    result = await publisher.publish("Hello", None, creds)

    assert result.success is False
    assert result.error == "Bad Request: chat not found"
    assert result.account == "mybot"


async def test_rate_limited_response():
    session = FakeSession({"hooks.slack.com": FakeResponse(429, text="rate_limited")})
    publisher = get_publisher("slack", session=session)
    creds = PlatformCredentials(platform="slack", access_token="https://hooks.slack.com/services/T/B/X")

    result = await publisher.publish("Hello", None, creds)

    assert result.success is False
    assert "rate limited" in result.error


async def test_slack_send_with_image():
    session = FakeSession({"hooks.slack.com": FakeResponse(200, text="ok")})
    publisher = get_publisher("slack", session=session)
    creds = PlatformCredentials(platform="slack", access_token="https://hooks.slack.com/services/T/B/X")

    result = await publisher.publish("Launch day", "https://cdn.example.com/a.png", creds)

    assert result.success is True
    blocks = session.calls[0]["json"]["blocks"]
    assert blocks[0]["text"]["type"] == "mrkdwn"
    assert blocks[1]["image_url"] == "https://cdn.example.com/a.png"


def test_slack_video_becomes_link():
    payload = build_payload("Watch", "https://cdn.example.com/video/1")
    assert len(payload["blocks"]) == 1
    assert "🎥 Video: https://cdn.example.com/video/1" in payload["text"]


def test_webhook_url_prefixes():
    with pytest.raises(ValidationError):
        validate_slack_url("https://example.com/hook")
    with pytest.raises(ValidationError):
        validate_discord_url("https://discord.com/not-a-webhook")
    assert validate_discord_url("https://discordapp.com/api/webhooks/1/abc")


async def test_discord_accepts_no_content():
    session = FakeSession({"discord.com/api/webhooks": FakeResponse(204, text="")})
    publisher = get_publisher("discord", session=session)
    creds = PlatformCredentials(platform="discord", access_token="https://discord.com/api/webhooks/1/abc")

    result = await publisher.publish("Hi", "https://cdn.example.com/a.png", creds)

    assert result.success is True
    assert session.calls[0]["json"]["embeds"][0]["image"]["url"] == "https://cdn.example.com/a.png"


async def test_mastodon_uploads_media_then_posts(monkeypatch):
    monkeypatch.setattr(mastodon, "MEDIA_PROCESSING_DELAY", 0)
    session = FakeSession({
        "cdn.example.com": FakeResponse(200, body=b"\x89PNG", headers={"Content-Type": "image/png"}),
        "/api/v2/media": FakeResponse(200, {"id": "m1"}),
        "/api/v1/statuses": FakeResponse(200, {"id": "s1", "url": "https://mastodon.social/@me/s1"}),
    })
    publisher = get_publisher("mastodon", session=session)
    creds = PlatformCredentials(
        platform="mastodon",
        access_token="tok",
        platform_username="me",
        metadata={"instance_url": "https://mastodon.social/"},
    )

    result = await publisher.publish("Toot", "https://cdn.example.com/a.png", creds)

    assert result.success is True
    assert result.url == "https://mastodon.social/@me/s1"
    status_call = session.calls[-1]
    assert status_call["url"] == "https://mastodon.social/api/v1/statuses"
    assert status_call["json"]["media_ids"] == ["m1"]
    assert status_call["headers"]["Authorization"] == "Bearer tok"


async def test_mastodon_media_failure_posts_text_only():
    session = FakeSession({
        "cdn.example.com": FakeResponse(404),
        "/api/v1/statuses": FakeResponse(200, {"id": "s2", "url": "https://mastodon.social/@me/s2"}),
    })
    publisher = get_publisher("mastodon", session=session)
    creds = PlatformCredentials(
        platform="mastodon", access_token="tok", metadata={"instance_url": "https://mastodon.social"}
    )

    result = await publisher.publish("Toot", "https://cdn.example.com/a.png", creds)

    assert result.success is True
    assert "media_ids" not in session.calls[-1]["json"]


class StalledDownload(FakeResponse):
    async def __aenter__(self):
        raise asyncio.TimeoutError()


async def test_mastodon_media_timeout_posts_text_only():
    session = FakeSession({
        "cdn.example.com": StalledDownload(),
        "/api/v1/statuses": FakeResponse(200, {"id": "s3", "url": "https://mastodon.social/@me/s3"}),
    })
    publisher = get_publisher("mastodon", session=session)
    creds = PlatformCredentials(
        platform="mastodon", access_token="tok", metadata={"instance_url": "https://mastodon.social"}
    )

    result = await publisher.publish("Toot", "https://cdn.example.com/slow.png", creds)

    assert result.success is True
    assert result.post_id == "s3"
    assert "media_ids" not in session.calls[-1]["json"]


def test_mastodon_status_is_truncated():
    assert len(mastodon.format_status("x" * 600)) == 500


async def test_publisher_owns_its_session_only_when_created():
    session = FakeSession()
    publisher = get_publisher("slack", session=session)
    await publisher.close()
    assert session.closed is False
