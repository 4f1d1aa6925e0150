import base64

import pytest

from .oauth_state import decrypt_state, encrypt_state
from ..errors import ValidationError


def test_state_round_trip():
    state = encrypt_state("user-123")
    assert "=" not in state
    assert decrypt_state(state) == "user-123"


def test_states_use_fresh_iv():
    assert encrypt_state("user-123") != encrypt_state("user-123")


def test_tampered_state_is_rejected():
    raw = bytearray(base64.urlsafe_b64decode(encrypt_state("user-123") + "=="))
    raw[20] ^= 0x01
    tampered = base64.urlsafe_b64encode(bytes(raw)).rstrip(b"=").decode()
    with pytest.raises(ValidationError):
        decrypt_state(tampered)


def test_short_state_is_rejected():
    with pytest.raises(ValidationError):
        decrypt_state("abc")


def test_missing_secret(monkeypatch):
    monkeypatch.delenv("OAUTH_STATE_SECRET")
    with pytest.raises(ValidationError):
        encrypt_state("user-123")


def test_secret_must_be_32_bytes(monkeypatch):
    monkeypatch.setenv("OAUTH_STATE_SECRET", "abcd")
    with pytest.raises(ValidationError):
        encrypt_state("user-123")
