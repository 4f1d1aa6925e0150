"""
Base class for platform publishers.

A publisher posts text with an optional media URL to one connected account
and always answers with a ``PublishResult``. Vendor errors, rate limiting and
network failures become failed results instead of exceptions so that one
platform can never break a multi-platform post.
"""

import json
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
import aiohttp

from ..errors import PlatformError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)
VIDEO_MARKERS = ("/video/", ".mp4", ".mov", "video")


def is_video_url(url: str) -> bool:
    return any(marker in url.lower() for marker in VIDEO_MARKERS)


@dataclass
class PlatformCredentials:
    """Credentials of one connected account, as stored in user_accounts."""
    platform: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[str] = None
    platform_user_id: Optional[str] = None
    platform_username: Optional[str] = None
    account_id: Any = None
    account_label: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PlatformCredentials":
        return cls(
            platform=row["platform"],
            access_token=row.get("access_token"),
            refresh_token=row.get("refresh_token"),
            token_expires_at=row.get("token_expires_at"),
            platform_user_id=row.get("platform_user_id"),
            platform_username=row.get("platform_username"),
            account_id=row.get("id"),
            account_label=row.get("account_label"),
            metadata=row.get("platform_metadata") or {},
        )

    @property
    def display_name(self) -> str:
        return self.account_label or self.platform_username or self.platform_user_id or self.platform


@dataclass
class PublishResult:
    """Normalized outcome of publishing to one account."""
    success: bool
    platform: str
    post_id: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None
    account: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PlatformPublisher(ABC):
    """Posts to a single platform over HTTP."""

    platform: str = ""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=DEFAULT_TIMEOUT)
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def publish(
        self,
        text: str,
        media_url: Optional[str],
        credentials: PlatformCredentials,
    ) -> PublishResult:
        """Publish a post, converting every vendor failure into a failed result."""
        account = credentials.display_name
        try:
            result = await self.send(text, media_url, credentials)
        except PlatformError as e:
            logger.error(f"❌ {self.platform} publish failed for {account}: {e.message}")
            return PublishResult(success=False, platform=self.platform, error=e.message, account=account)
        except asyncio.TimeoutError:
            logger.error(f"❌ {self.platform} publish timed out for {account}")
            return PublishResult(success=False, platform=self.platform, error="Request timed out", account=account)
        except aiohttp.ClientError as e:
            logger.error(f"❌ {self.platform} network error for {account}: {e}")
            return PublishResult(success=False, platform=self.platform, error=f"Network error: {e}", account=account)

        if result.account is None:
            result.account = account
        logger.info(f"✅ Published to {self.platform} ({account})")
        return result

    @abstractmethod
    async def send(
        self,
        text: str,
        media_url: Optional[str],
        credentials: PlatformCredentials,
    ) -> PublishResult:
        """Perform the vendor call. May raise PlatformError."""

    @abstractmethod
    async def verify(self, credentials: PlatformCredentials) -> Dict[str, Any]:
        """Check credentials before an account is saved. Returns profile details."""

    async def read_body(self, response) -> Any:
        text = await response.text()
        try:
            return json.loads(text)
        except ValueError:
            return text

    def error_message(self, body: Any) -> Optional[str]:
        if isinstance(body, dict):
            return body.get("error") or body.get("message") or body.get("description")
        if isinstance(body, str) and body:
            return body
        return None

    def check_status(self, status: int, body: Any, default_message: str):
        """Raise PlatformError for rate limiting and HTTP errors."""
        if status == 429:
            raise PlatformError(f"{self.platform} rate limited, try again later", self.platform, status)
        if status >= 400:
            message = self.error_message(body) or default_message
            raise PlatformError(str(message), self.platform, status)
