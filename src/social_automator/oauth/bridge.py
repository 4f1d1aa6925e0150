"""
OAuth bridge for platforms that connect through an OAuth 2.0 authorization code flow.

Covers building the provider authorization URL (with the encrypted user ID as
``state``), exchanging the returned code for tokens, refreshing access tokens
and reading the connected profile.
"""

import os
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlencode
import aiohttp

from ..errors import PlatformError, ValidationError
from ..security.oauth_state import encrypt_state

logger = logging.getLogger(__name__)

REFRESH_THRESHOLD = timedelta(hours=24)
DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)


@dataclass
class OAuthTokens:
    """Tokens returned by a provider token endpoint."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    platform_user_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OAuthProfile:
    """The account a set of tokens belongs to."""
    platform_user_id: str
    platform_username: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _youtube_profile(body: Dict[str, Any]) -> OAuthProfile:
    items = body.get("items") or []
    if not items:
        raise PlatformError("No YouTube channel found for this Google account", "youtube")
    channel = items[0]
    snippet = channel.get("snippet") or {}
    return OAuthProfile(
        platform_user_id=channel["id"],
        platform_username=snippet.get("title"),
        metadata={"thumbnail": (snippet.get("thumbnails") or {}).get("default", {}).get("url")},
    )


def _linkedin_profile(body: Dict[str, Any]) -> OAuthProfile:
    return OAuthProfile(
        platform_user_id=body["sub"],
        platform_username=body.get("name"),
        metadata={"email": body.get("email"), "picture": body.get("picture")},
    )


def _tiktok_profile(body: Dict[str, Any]) -> OAuthProfile:
    user = (body.get("data") or {}).get("user") or {}
    return OAuthProfile(
        platform_user_id=user["open_id"],
        platform_username=user.get("display_name"),
        metadata={"avatar_url": user.get("avatar_url")},
    )


@dataclass
class OAuthProvider:
    """Static configuration of an OAuth provider."""
    name: str
    platform_name: str
    authorize_url: str
    token_url: str
    profile_url: str
    scopes: List[str]
    client_id_env: str
    client_secret_env: str
    parse_profile: Callable[[Dict[str, Any]], OAuthProfile]
    client_id_param: str = "client_id"
    scope_separator: str = " "
    extra_auth_params: Dict[str, str] = field(default_factory=dict)

    @property
    def client_id(self) -> Optional[str]:
        return os.getenv(self.client_id_env)

    @property
    def client_secret(self) -> Optional[str]:
        return os.getenv(self.client_secret_env)

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


PROVIDERS: Dict[str, OAuthProvider] = {
    "youtube": OAuthProvider(
        name="youtube",
        platform_name="YouTube",
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        profile_url="https://www.googleapis.com/youtube/v3/channels?part=id,snippet&mine=true",
        scopes=[
            "https://www.googleapis.com/auth/youtube.upload",
            "https://www.googleapis.com/auth/youtube",
            "https://www.googleapis.com/auth/youtube.readonly",
        ],
        client_id_env="YOUTUBE_CLIENT_ID",
        client_secret_env="YOUTUBE_CLIENT_SECRET",
        parse_profile=_youtube_profile,
        extra_auth_params={"access_type": "offline", "prompt": "consent"},
    ),
    "linkedin": OAuthProvider(
        name="linkedin",
        platform_name="LinkedIn",
        authorize_url="https://www.linkedin.com/oauth/v2/authorization",
        token_url="https://www.linkedin.com/oauth/v2/accessToken",
        profile_url="https://api.linkedin.com/v2/userinfo",
        scopes=["openid", "profile", "email", "w_member_social"],
        client_id_env="LINKEDIN_CLIENT_ID",
        client_secret_env="LINKEDIN_CLIENT_SECRET",
        parse_profile=_linkedin_profile,
    ),
    "tiktok": OAuthProvider(
        name="tiktok",
        platform_name="TikTok",
        authorize_url="https://www.tiktok.com/v2/auth/authorize/",
        token_url="https://open.tiktokapis.com/v2/oauth/token/",
        profile_url="https://open.tiktokapis.com/v2/user/info/?fields=open_id,display_name,avatar_url",
        scopes=["user.info.basic", "user.info.profile", "video.publish", "video.upload"],
        client_id_env="TIKTOK_CLIENT_KEY",
        client_secret_env="TIKTOK_CLIENT_SECRET",
        parse_profile=_tiktok_profile,
        client_id_param="client_key",
        scope_separator=",",
    ),
}


def get_provider(name: str) -> OAuthProvider:
    provider = PROVIDERS.get((name or "").lower())
    if provider is None:
        raise ValidationError(f"Unsupported OAuth provider: {name}")
    return provider


def _parse_expiry(value: Union[str, datetime, None]) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def needs_refresh(
    expires_at: Union[str, datetime, None],
    threshold: timedelta = REFRESH_THRESHOLD,
    now: Optional[datetime] = None,
) -> bool:
    """True when a token expires within ``threshold``. Tokens without an expiry never need it."""
    expiry = _parse_expiry(expires_at)
    if expiry is None:
        return False
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return expiry - now <= threshold


def build_authorization_url(provider_name: str, user_id: str, redirect_uri: str) -> str:
    """
    Build the provider consent URL for a user.

    Raises:
        ValidationError: If the provider is unknown or its client is not configured
    """
    provider = get_provider(provider_name)
    if not provider.client_id:
        raise ValidationError(f"{provider.platform_name} OAuth not configured")

    params = {
        provider.client_id_param: provider.client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": provider.scope_separator.join(provider.scopes),
        "state": encrypt_state(user_id),
    }
    params.update(provider.extra_auth_params)
    return f"{provider.authorize_url}?{urlencode(params)}"


class OAuthBridge:
    """Talks to provider token and profile endpoints."""

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

    async def _token_request(self, provider: OAuthProvider, data: Dict[str, str]) -> Dict[str, Any]:
        if not provider.configured:
            raise ValidationError(f"{provider.platform_name} OAuth not configured")

        form = {
            provider.client_id_param: provider.client_id,
            "client_secret": provider.client_secret,
            **data,
        }
        async with self.session.post(
            provider.token_url,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded", "Cache-Control": "no-cache"},
        ) as response:
            status = response.status
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = None

        if status >= 400 or not isinstance(body, dict) or "access_token" not in body:
            error = body.get("error_description") or body.get("error") if isinstance(body, dict) else None
            logger.error(f"{provider.platform_name} token request failed ({status}): {error}")
            raise PlatformError(f"{provider.platform_name} token request failed: {error or status}", provider.name, status)
        return body

    def _to_tokens(self, body: Dict[str, Any], fallback_refresh: Optional[str] = None) -> OAuthTokens:
        expires_in = body.get("expires_in")
        expires_at = (
            datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            if expires_in is not None else None
        )
        return OAuthTokens(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token") or fallback_refresh,
            expires_at=expires_at,
            scope=body.get("scope"),
            platform_user_id=body.get("open_id"),
            raw=body,
        )

    async def exchange_code(self, provider_name: str, code: str, redirect_uri: str) -> OAuthTokens:
        """Exchange an authorization code for tokens."""
        provider = get_provider(provider_name)
        body = await self._token_request(provider, {
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        })
        logger.info(f"🔑 {provider.platform_name} authorization code exchanged")
        return self._to_tokens(body)

    async def refresh_access_token(self, provider_name: str, refresh_token: str) -> OAuthTokens:
        """
        Get a new access token. Providers that do not rotate refresh tokens
        keep the one passed in.
        """
        provider = get_provider(provider_name)
        if not refresh_token:
            raise ValidationError(f"No refresh token stored for {provider.platform_name}")
        body = await self._token_request(provider, {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })
        logger.info(f"🔄 {provider.platform_name} access token refreshed")
        return self._to_tokens(body, fallback_refresh=refresh_token)

    async def fetch_profile(self, provider_name: str, tokens: OAuthTokens) -> OAuthProfile:
        provider = get_provider(provider_name)
        async with self.session.get(
            provider.profile_url,
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        ) as response:
            status = response.status
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = None

        if status >= 400 or not isinstance(body, dict):
            raise PlatformError(f"Could not load {provider.platform_name} profile", provider.name, status)
        try:
            return provider.parse_profile(body)
        except KeyError:
            raise PlatformError(f"Unexpected {provider.platform_name} profile response", provider.name)
