from __future__ import annotations

from datetime import timedelta

from app.auth_utils import viewer_id_from_headers
from app.config import Settings
from app.security import create_access_token, decode_access_token, get_password_hash, verify_password

SETTINGS = Settings(secret_key="unit-test-secret")


def test_token_round_trip() -> None:
    token = create_access_token(7, SETTINGS)
    assert decode_access_token(token, SETTINGS) == 7


def test_expired_or_foreign_tokens_are_rejected() -> None:
    expired = create_access_token(7, SETTINGS, expires_delta=timedelta(seconds=-5))
    assert decode_access_token(expired, SETTINGS) is None

    foreign = create_access_token(7, Settings(secret_key="someone-else"))
    assert decode_access_token(foreign, SETTINGS) is None


def test_viewer_header_resolution() -> None:
    token = create_access_token(3, SETTINGS)

    assert viewer_id_from_headers(f"Bearer {token}", None, SETTINGS) == 3
    # the bearer token takes precedence over X-User-Id
    assert viewer_id_from_headers(f"Bearer {token}", "9", SETTINGS) == 3
    assert viewer_id_from_headers(None, "9", SETTINGS) == 9
    assert viewer_id_from_headers(None, "nine", SETTINGS) is None
    assert viewer_id_from_headers("Basic abc", None, SETTINGS) is None
    assert viewer_id_from_headers(None, None, SETTINGS) is None


def test_password_hashing() -> None:
    hashed = get_password_hash("password123")
    assert hashed != "password123"
    assert verify_password("password123", hashed)
    assert not verify_password("password124", hashed)
