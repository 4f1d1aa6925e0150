"""
Encrypted OAuth ``state`` parameter.

The state carries the user ID through the provider redirect. It is encrypted
with AES-256-GCM using the hex key in OAUTH_STATE_SECRET and encoded as
``base64url(iv + ciphertext + tag)`` with a 16 byte IV.
"""

import os
import base64
import binascii
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import ValidationError

IV_LENGTH = 16
TAG_LENGTH = 16


def _get_key() -> bytes:
    secret = os.getenv("OAUTH_STATE_SECRET")
    if not secret:
        raise ValidationError("OAuth is not configured: OAUTH_STATE_SECRET is missing")
    try:
        key = bytes.fromhex(secret)
    except ValueError:
        raise ValidationError("OAUTH_STATE_SECRET must be a hex string")
    if len(key) != 32:
        raise ValidationError("OAUTH_STATE_SECRET must be 32 bytes (64 hex characters)")
    return key


def encrypt_state(user_id: str) -> str:
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_get_key()).encrypt(iv, user_id.encode("utf-8"), None)
    return base64.urlsafe_b64encode(iv + sealed).rstrip(b"=").decode("ascii")


def decrypt_state(state: str) -> str:
    """
    Recover the user ID from an OAuth state value.

    Raises:
        ValidationError: If the state is malformed or was tampered with
    """
    key = _get_key()
    try:
        raw = base64.urlsafe_b64decode(state + "=" * (-len(state) % 4))
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid OAuth state")

    if len(raw) <= IV_LENGTH + TAG_LENGTH:
        raise ValidationError("Invalid OAuth state")

    try:
        plaintext = AESGCM(key).decrypt(raw[:IV_LENGTH], raw[IV_LENGTH:], None)
    except InvalidTag:
        raise ValidationError("Invalid OAuth state")
    return plaintext.decode("utf-8")
