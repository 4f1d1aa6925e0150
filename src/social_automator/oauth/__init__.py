"""Connected accounts, the OAuth bridge and manual account connections."""

from .bridge import OAuthBridge, OAuthTokens, PROVIDERS, build_authorization_url, needs_refresh
from .accounts import get_connected_accounts, get_credentials_for_posting, save_connected_account
from .connections import MANUAL_PLATFORMS, handle_callback

__all__ = [
    "OAuthBridge",
    "OAuthTokens",
    "PROVIDERS",
    "build_authorization_url",
    "needs_refresh",
    "get_connected_accounts",
    "get_credentials_for_posting",
    "save_connected_account",
    "MANUAL_PLATFORMS",
    "handle_callback",
]
