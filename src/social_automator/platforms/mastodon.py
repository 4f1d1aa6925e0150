"""Mastodon publisher. Works with any instance given its URL and an access token."""

import asyncio
import logging
from typing import Any, Dict, Optional
import aiohttp

from .base import PlatformCredentials, PlatformPublisher, PublishResult
from ..errors import PlatformError

logger = logging.getLogger(__name__)

MAX_STATUS_LENGTH = 500
MEDIA_PROCESSING_DELAY = 1


def format_status(text: str, max_length: int = MAX_STATUS_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


class MastodonPublisher(PlatformPublisher):
    platform = "mastodon"

    def _api_base(self, credentials: PlatformCredentials) -> str:
        instance_url = credentials.metadata.get("instance_url")
        if not credentials.access_token or not instance_url:
            raise PlatformError("Missing Mastodon credentials", self.platform)
        return instance_url.rstrip("/")

    def _headers(self, credentials: PlatformCredentials) -> Dict[str, str]:
        return {"Authorization": f"Bearer {credentials.access_token}"}

    async def upload_media(self, api_base: str, media_url: str, credentials: PlatformCredentials) -> str:
        async with self.session.get(media_url) as response:
            self.check_status(response.status, None, "Could not download media")
            content = await response.read()
            content_type = response.headers.get("Content-Type", "image/jpeg")

        form = aiohttp.FormData()
        form.add_field("file", content, filename="image.jpg", content_type=content_type)

        async with self.session.post(
            f"{api_base}/api/v2/media", data=form, headers=self._headers(credentials)
        ) as response:
            body = await self.read_body(response)
            self.check_status(response.status, body, "Media upload failed")
        return str(body["id"])

    async def send(self, text: str, media_url: Optional[str], credentials: PlatformCredentials) -> PublishResult:
        api_base = self._api_base(credentials)
        payload: Dict[str, Any] = {
            "status": format_status(text),
            "visibility": credentials.metadata.get("visibility", "public"),
        }

        if media_url:
            try:
                payload["media_ids"] = [await self.upload_media(api_base, media_url, credentials)]
                # Give the instance a moment to process the attachment
                await asyncio.sleep(MEDIA_PROCESSING_DELAY)
            except (PlatformError, aiohttp.ClientError, asyncio.TimeoutError, KeyError, TypeError) as e:
                logger.warning(f"Mastodon media upload failed, posting text only: {e}")

        async with self.session.post(
            f"{api_base}/api/v1/statuses", json=payload, headers=self._headers(credentials)
        ) as response:
            body = await self.read_body(response)
            self.check_status(response.status, body, "Failed to post to Mastodon")

        if not isinstance(body, dict):
            raise PlatformError("Unexpected response from Mastodon", self.platform)

        return PublishResult(
            success=True,
            platform=self.platform,
            post_id=str(body.get("id")),
            url=body.get("url"),
            account=credentials.platform_username or credentials.metadata.get("instance_url"),
        )

    async def verify(self, credentials: PlatformCredentials) -> Dict[str, Any]:
        api_base = self._api_base(credentials)
        async with self.session.get(
            f"{api_base}/api/v1/accounts/verify_credentials", headers=self._headers(credentials)
        ) as response:
            body = await self.read_body(response)
            self.check_status(response.status, body, "Invalid Mastodon credentials")

        if not isinstance(body, dict):
            raise PlatformError("Invalid Mastodon credentials", self.platform)

        return {
            "id": str(body.get("id")),
            "username": body.get("username"),
            "display_name": body.get("display_name"),
            "acct": body.get("acct"),
            "url": body.get("url"),
            "avatar": body.get("avatar"),
        }
