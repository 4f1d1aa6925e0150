"""Discord incoming webhook publisher."""

from typing import Any, Dict, Optional

from .base import PlatformCredentials, PlatformPublisher, PublishResult, is_video_url
from ..errors import PlatformError, ValidationError

DISCORD_WEBHOOK_PREFIXES = (
    "https://discord.com/api/webhooks/",
    "https://discordapp.com/api/webhooks/",
)
TEST_MESSAGE = "✅ Discord webhook connected successfully! You can now post to this channel from Social Media Automator."
DISCORD_BLUE = 5814783


def validate_webhook_url(url: Optional[str]) -> str:
    if not url or not url.startswith(DISCORD_WEBHOOK_PREFIXES):
        raise ValidationError(
            "Invalid Discord webhook URL. Must start with "
            "https://discord.com/api/webhooks/ or https://discordapp.com/api/webhooks/"
        )
    return url


def build_payload(text: str, media_url: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"content": text}
    if media_url and is_video_url(media_url):
        payload["embeds"] = [{
            "title": "🎥 Video Content",
            "description": f"[Click here to watch the video]({media_url})",
            "color": DISCORD_BLUE,
            "fields": [{"name": "Video URL", "value": media_url}],
        }]
    elif media_url:
        payload["embeds"] = [{"image": {"url": media_url}}]
    return payload


class DiscordPublisher(PlatformPublisher):
    platform = "discord"

    async def _post(self, webhook_url: str, payload: Dict[str, Any]):
        async with self.session.post(webhook_url, json=payload) as response:
            body = await self.read_body(response)
            self.check_status(response.status, body, "Discord webhook request failed")
            if response.status not in (200, 204):
                raise PlatformError("Discord API returned unexpected response", self.platform, response.status)
        return body

    async def send(self, text: str, media_url: Optional[str], credentials: PlatformCredentials) -> PublishResult:
        webhook_url = credentials.access_token or credentials.metadata.get("webhook_url")
        if not webhook_url:
            raise PlatformError("Missing Discord webhook URL", self.platform)

        body = await self._post(webhook_url, build_payload(text, media_url))
        post_id = str(body["id"]) if isinstance(body, dict) and body.get("id") else None
        return PublishResult(success=True, platform=self.platform, post_id=post_id)

    async def verify(self, credentials: PlatformCredentials) -> Dict[str, Any]:
        webhook_url = validate_webhook_url(credentials.access_token)
        await self._post(webhook_url, {"content": TEST_MESSAGE})
        return {"webhook_url": webhook_url}
