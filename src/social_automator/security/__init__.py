"""Authentication and OAuth state helpers."""

from .auth import get_current_user, require_admin, is_admin
from .oauth_state import encrypt_state, decrypt_state

__all__ = ["get_current_user", "require_admin", "is_admin", "encrypt_state", "decrypt_state"]
