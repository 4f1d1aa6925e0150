"""
Platform publishers.

Each publisher posts to one third-party platform. Publishers are looked up by
platform name through the registry below.
"""

from typing import Dict, List, Optional, Type
import aiohttp

from .base import PlatformCredentials, PlatformPublisher, PublishResult
from .telegram import TelegramPublisher
from .slack import SlackPublisher
from .discord import DiscordPublisher
from .mastodon import MastodonPublisher

__all__ = [
    "PlatformCredentials",
    "PlatformPublisher",
    "PublishResult",
    "TelegramPublisher",
    "SlackPublisher",
    "DiscordPublisher",
    "MastodonPublisher",
    "register_publisher",
    "get_publisher",
    "supported_platforms",
]

# Platform publisher registry (for dynamic lookups)
PUBLISHER_REGISTRY: Dict[str, Type[PlatformPublisher]] = {}


def register_publisher(publisher_class: Type[PlatformPublisher]) -> Type[PlatformPublisher]:
    """Register a publisher class under its ``platform`` name. Usable as a decorator."""
    if not publisher_class.platform:
        raise ValueError(f"{publisher_class.__name__} does not declare a platform")
    PUBLISHER_REGISTRY[publisher_class.platform.lower()] = publisher_class
    return publisher_class


def get_publisher(
    platform_name: str,
    session: Optional[aiohttp.ClientSession] = None,
) -> Optional[PlatformPublisher]:
    """
    Get a publisher for a platform.

    Args:
        platform_name: Platform name (case-insensitive)
        session: Shared HTTP session; the publisher creates its own when omitted

    Returns:
        Publisher instance or None when the platform is not supported
    """
    publisher_class = PUBLISHER_REGISTRY.get((platform_name or "").lower())
    if publisher_class is None:
        return None
    return publisher_class(session=session)


def supported_platforms() -> List[str]:
    return sorted(PUBLISHER_REGISTRY)


for _publisher in (TelegramPublisher, SlackPublisher, DiscordPublisher, MastodonPublisher):
    register_publisher(_publisher)
