from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from src.api.auth import (
    ALGORITHM,
    InvalidToken,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)


def test_issued_token_carries_user_id() -> None:
    token = create_access_token(42)
    assert decode_access_token(token) == 42


def test_token_expires_after_one_hour_by_default() -> None:
    before = datetime.now(tz=timezone.utc)
    claims = jwt.get_unverified_claims(create_access_token(7))
    exp = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
    assert timedelta(minutes=59) < exp - before <= timedelta(minutes=60, seconds=5)
    assert claims["id"] == 7


def test_expired_token_is_rejected() -> None:
    token = create_access_token(1, expires_delta=timedelta(seconds=-5))
    with pytest.raises(InvalidToken):
        decode_access_token(token)


def test_token_signed_with_other_secret_is_rejected() -> None:
    forged = jwt.encode(
        {"id": 1, "exp": datetime.now(tz=timezone.utc) + timedelta(hours=1)},
        "not-the-secret",
        algorithm=ALGORITHM,
    )
    with pytest.raises(InvalidToken):
        decode_access_token(forged)


def test_tampered_payload_is_rejected() -> None:
    header, payload, signature = create_access_token(1).split(".")
    other_payload = create_access_token(2).split(".")[1]
    with pytest.raises(InvalidToken):
        decode_access_token(f"{header}.{other_payload}.{signature}")


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_malformed_token_is_rejected(token: str) -> None:
    with pytest.raises(InvalidToken):
        decode_access_token(token)


@pytest.mark.parametrize("claims", [{}, {"id": "1"}, {"id": True}])
def test_token_without_integer_id_is_rejected(claims: dict) -> None:
    body = dict(claims, exp=datetime.now(tz=timezone.utc) + timedelta(hours=1))
    token = jwt.encode(body, "test-secret", algorithm=ALGORITHM)
    with pytest.raises(InvalidToken):
        decode_access_token(token)


def test_password_hash_is_salted_and_verifiable() -> None:
    h1 = get_password_hash("secret123")
    h2 = get_password_hash("secret123")
    assert h1 != h2
    assert "secret123" not in h1
    assert verify_password("secret123", h1)
    assert not verify_password("wrong", h1)
