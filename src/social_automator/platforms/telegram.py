"""Telegram Bot API publisher. Users connect their own bot token and chat ID."""

import logging
from typing import Any, Dict, Optional

from .base import PlatformCredentials, PlatformPublisher, PublishResult, is_video_url
from ..errors import PlatformError

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


def build_message_url(chat_id: Any, message_id: Any) -> str:
    """Public link to a channel message; the leading minus of the chat ID is dropped."""
    return f"https://t.me/c/{str(chat_id).lstrip('-')}/{message_id}"


class TelegramPublisher(PlatformPublisher):
    platform = "telegram"

    def _method_url(self, token: str, method: str) -> str:
        return f"{TELEGRAM_API}/bot{token}/{method}"

    async def _call(self, token: str, method: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self._method_url(token, method)
        if payload is None:
            request = self.session.get(url)
        else:
            request = self.session.post(url, json=payload)

        async with request as response:
            body = await self.read_body(response)
            self.check_status(response.status, body, f"Telegram {method} failed")

        if not isinstance(body, dict) or not body.get("ok"):
            raise PlatformError(self.error_message(body) or f"Telegram {method} failed", self.platform)
        return body["result"]

    async def send(self, text: str, media_url: Optional[str], credentials: PlatformCredentials) -> PublishResult:
        chat_id = credentials.platform_user_id or credentials.metadata.get("chat_id")
        if not credentials.access_token or not chat_id:
            raise PlatformError("Missing Telegram bot token or chat ID", self.platform)

        if media_url and is_video_url(media_url):
            method = "sendVideo"
            payload = {"chat_id": chat_id, "video": media_url, "caption": text or "", "supports_streaming": True}
        elif media_url:
            method = "sendPhoto"
            payload = {"chat_id": chat_id, "photo": media_url, "caption": text or ""}
        else:
            method = "sendMessage"
            payload = {"chat_id": chat_id, "text": text}
        payload["parse_mode"] = "HTML"

        message = await self._call(credentials.access_token, method, payload)
        message_id = message["message_id"]
        return PublishResult(
            success=True,
            platform=self.platform,
            post_id=str(message_id),
            url=build_message_url(message["chat"]["id"], message_id),
        )

    async def verify(self, credentials: PlatformCredentials) -> Dict[str, Any]:
        bot = await self._call(credentials.access_token or "", "getMe")
        return {
            "id": str(bot.get("id")),
            "username": bot.get("username"),
            "name": bot.get("first_name"),
        }
