from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from jose import jwt

from routes.auth_routes import (
    ALGORITHM,
    check_password_length,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from settings import AppSettings, app_settings


def test_password_hash_round_trip():
    hashed = get_password_hash("123456")

    assert hashed != "123456"
    assert verify_password("123456", hashed) is True
    assert verify_password("654321", hashed) is False


def test_access_token_carries_user_id():
    token = create_access_token({"sub": "user-42"})

    assert decode_access_token(token) == "user-42"


def test_access_token_expires_after_configured_days():
    token = create_access_token({"sub": "user-42"})
    payload = jwt.decode(token, app_settings.secret_key, algorithms=[ALGORITHM])

    expires = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    expected = datetime.now(timezone.utc) + timedelta(days=app_settings.access_token_expire_days)
    assert abs((expires - expected).total_seconds()) < 60


def test_decode_rejects_foreign_and_expired_tokens():
    foreign = jwt.encode({"sub": "user-42"}, "another-secret", algorithm=ALGORITHM)
    expired = jwt.encode(
        {"sub": "user-42", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        app_settings.secret_key,
        algorithm=ALGORITHM,
    )

    assert decode_access_token(foreign) is None
    assert decode_access_token(expired) is None
    assert decode_access_token("not-a-token") is None


def test_password_length_check():
    check_password_length("x" * app_settings.min_password_length)

    with pytest.raises(HTTPException) as exc_info:
        check_password_length("x" * (app_settings.min_password_length - 1))
    assert exc_info.value.status_code == 400


def test_cors_origin_list_splits_and_trims(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example ,")

    assert AppSettings().cors_origin_list == ["https://a.example", "https://b.example"]
