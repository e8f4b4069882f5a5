"""
Unit tests for the token service, password hashing and UserRepository
"""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from auth_utils import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    TokenConfig,
    TokenService,
    hash_password,
    parse_duration,
    verify_password,
)
from crud.user import UserRepository
from tests.conftest import TEST_SECRET, make_settings


def test_access_token_round_trip(token_service):
    """A fresh access token verifies to the same user and kind"""
    token = token_service.issue_access_token("user-123")

    payload = token_service.verify(token)

    assert payload is not None
    assert payload.user_id == "user-123"
    assert payload.kind == ACCESS_TOKEN
    assert payload.expires_at - payload.issued_at == timedelta(days=7)


def test_refresh_token_kind_and_lifetime(token_service):
    payload = token_service.verify(token_service.issue_refresh_token("user-123"))

    assert payload.kind == REFRESH_TOKEN
    assert payload.expires_at - payload.issued_at == timedelta(days=30)


def test_expired_token_is_invalid(token_service):
    """A token past its configured lifetime verifies to None"""
    issued = datetime.now(timezone.utc) - timedelta(days=8)
    token = token_service.issue_access_token("user-123", now=issued)

    assert token_service.verify(token) is None


def test_configured_access_lifetime_is_honoured():
    service = TokenService(TokenConfig.from_settings(make_settings(JWT_EXPIRES_IN="1h")))
    issued = datetime.now(timezone.utc) - timedelta(hours=2)

    assert service.verify(service.issue_access_token("u1", now=issued)) is None
    assert service.verify(service.issue_access_token("u1")) is not None


@pytest.mark.parametrize("token", [
    "",
    "not-a-token",
    "a.b.c",
])
def test_malformed_tokens_are_invalid(token_service, token):
    assert token_service.verify(token) is None


def test_token_signed_with_other_secret_is_invalid(token_service):
    forged = TokenService(TokenConfig(secret="another-secret")).issue_access_token("user-123")

    assert token_service.verify(forged) is None


def test_token_without_kind_is_invalid(token_service):
    token = jwt.encode(
        {"sub": "user-123", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        TEST_SECRET,
        algorithm="HS256",
    )

    assert token_service.verify(token) is None


def test_missing_secret_refuses_to_start():
    """Building the token config without JWT_SECRET fails loudly"""
    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        TokenConfig.from_settings(make_settings(JWT_SECRET=None))

    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        TokenConfig.from_settings(make_settings(JWT_SECRET=""))


def test_create_app_without_secret_fails():
    from main import create_app

    with pytest.raises(RuntimeError):
        create_app(make_settings(JWT_SECRET=None))


@pytest.mark.parametrize("value, expected", [
    ("7d", timedelta(days=7)),
    ("30d", timedelta(days=30)),
    ("12h", timedelta(hours=12)),
    ("15m", timedelta(minutes=15)),
    ("2w", timedelta(weeks=2)),
    ("3600", timedelta(seconds=3600)),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        parse_duration("soon")


def test_password_hashing():
    hashed = hash_password("secure_password_456")

    assert hashed != "secure_password_456"
    assert verify_password("secure_password_456", hashed) is True
    assert verify_password("wrong_password", hashed) is False
    assert verify_password("", hashed) is False


@pytest.mark.asyncio
async def test_create_and_get_user(test_db):
    """
    Test creating a new user and retrieving it by email and id.
    New users start on the free tier with an active status.
    """
    user_repo = UserRepository(test_db)

    created_user = await user_repo.create_user({
        "email": "Test@Example.com",
        "password_hash": hash_password("test_password_123"),
        "username": "tester",
    })
    await test_db.commit()

    assert created_user.id
    assert created_user.email == "test@example.com"
    assert created_user.subscription_tier == "free"
    assert created_user.subscription_status == "active"

    by_email = await user_repo.get_user_by_email("test@example.com")
    by_id = await user_repo.get_user_by_id(created_user.id)

    assert by_email is not None and by_email.id == created_user.id
    assert by_id is not None and by_id.username == "tester"
    assert await user_repo.email_or_username_taken("other@example.com", "tester") is True
    assert await user_repo.email_or_username_taken("other@example.com", "nobody") is False
