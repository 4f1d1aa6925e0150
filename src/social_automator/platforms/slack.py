"""Slack incoming webhook publisher."""

from typing import Any, Dict, Optional

from .base import PlatformCredentials, PlatformPublisher, PublishResult, is_video_url
from ..errors import PlatformError, ValidationError

SLACK_WEBHOOK_PREFIX = "https://hooks.slack.com/services/"
TEST_MESSAGE = "✅ Slack webhook connected successfully! You can now post to this channel from Social Media Automator."


def validate_webhook_url(url: Optional[str]) -> str:
    if not url or not url.startswith(SLACK_WEBHOOK_PREFIX):
        raise ValidationError(f"Invalid Slack webhook URL. Must start with {SLACK_WEBHOOK_PREFIX}")
    return url


def build_payload(text: str, media_url: Optional[str] = None) -> Dict[str, Any]:
    if media_url and is_video_url(media_url):
        text = f"{text}\n\n🎥 Video: {media_url}"
        media_url = None

    blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]
    if media_url:
        blocks.append({"type": "image", "image_url": media_url, "alt_text": "Post image"})
    return {"text": text, "blocks": blocks}


class SlackPublisher(PlatformPublisher):
    platform = "slack"

    async def _post(self, webhook_url: str, payload: Dict[str, Any]):
        async with self.session.post(webhook_url, json=payload) as response:
            body = await self.read_body(response)
            self.check_status(response.status, body, "Slack webhook request failed")
        if body != "ok":
            raise PlatformError("Slack API returned unexpected response", self.platform)

    async def send(self, text: str, media_url: Optional[str], credentials: PlatformCredentials) -> PublishResult:
        webhook_url = credentials.access_token or credentials.metadata.get("webhook_url")
        if not webhook_url:
            raise PlatformError("Missing Slack webhook URL", self.platform)

        await self._post(webhook_url, build_payload(text, media_url))
        return PublishResult(success=True, platform=self.platform)

    async def verify(self, credentials: PlatformCredentials) -> Dict[str, Any]:
        webhook_url = validate_webhook_url(credentials.access_token)
        await self._post(webhook_url, {"text": TEST_MESSAGE})
        return {"webhook_url": webhook_url}
