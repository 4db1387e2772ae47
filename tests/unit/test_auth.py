"""Unit tests for authentication utilities and the auth dependencies.

Password hashing, JWT handling and the admin key check run without any
external dependencies; the request dependencies get a mocked unit of work.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException, status
from jose import jwt

from app.api.dependencies import get_current_user, require_admin_key
from app.core.auth import (
    create_access_token,
    get_password_hash,
    verify_admin_key,
    verify_password,
    verify_token,
)
from app.core.config import settings
from app.db.models.user import User


def _uow_returning(user: User | None) -> MagicMock:
    uow = MagicMock()
    uow.auth_service.get_user_by_id = AsyncMock(return_value=user)
    return uow


class TestPasswordHashing:
    """Test password hashing and verification functions."""

    def test_hash_differs_from_password_and_is_salted(self) -> None:
        password = "test_password_123"
        first = get_password_hash(password)
        second = get_password_hash(password)

        assert first != password
        assert first != second

    def test_verify_password(self) -> None:
        hashed = get_password_hash("test_password_123")

        assert verify_password("test_password_123", hashed) is True
        assert verify_password("wrong_password", hashed) is False
        assert verify_password("", hashed) is False

    def test_password_at_bcrypt_limit(self) -> None:
        long_password = "a" * 72
        assert verify_password(long_password, get_password_hash(long_password)) is True

    def test_password_over_bcrypt_limit_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="72 bytes"):
            get_password_hash("a" * 100)


class TestJWT:
    """Test JWT token creation and verification."""

    def test_custom_expiration(self) -> None:
        expires_delta = timedelta(minutes=30)
        token = create_access_token({"sub": "123"}, expires_delta=expires_delta)

        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        assert payload["sub"] == "123"
        exp_time = datetime.fromtimestamp(payload["exp"], tz=UTC)
        # Allow 5 second tolerance
        assert abs((exp_time - (datetime.now(UTC) + expires_delta)).total_seconds()) < 5

    def test_default_expiration(self) -> None:
        token = create_access_token({"sub": "123"})

        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        exp_time = datetime.fromtimestamp(payload["exp"], tz=UTC)
        expected = datetime.now(UTC) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
        assert abs((exp_time - expected).total_seconds()) < 5

    def test_verify_token_round_trip(self) -> None:
        payload = verify_token(create_access_token({"sub": "123", "custom": "value"}))

        assert payload is not None
        assert payload["custom"] == "value"

    @pytest.mark.parametrize(
        "token",
        [
            "",
            "invalid.token.here",
            jwt.encode({"sub": "123"}, "wrong_secret", algorithm="HS256"),
        ],
    )
    def test_verify_token_rejects_bad_tokens(self, token: str) -> None:
        assert verify_token(token) is None

    def test_verify_token_rejects_expired(self) -> None:
        expired = jwt.encode(
            {"sub": "123", "exp": datetime.now(UTC) - timedelta(hours=1)},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        assert verify_token(expired) is None


class TestAdminKey:
    def test_verify_admin_key(self) -> None:
        assert verify_admin_key(settings.admin_api_key) is True
        assert verify_admin_key(settings.admin_api_key + "x") is False
        assert verify_admin_key("") is False
        assert verify_admin_key(None) is False

    @pytest.mark.asyncio
    async def test_require_admin_key_accepts_configured_key(self) -> None:
        assert await require_admin_key(settings.admin_api_key) == "admin"

    @pytest.mark.asyncio
    async def test_require_admin_key_rejects_missing_key(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await require_admin_key(None)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.detail["error"] == "invalid_api_key"


class TestGetCurrentUser:
    """Test get_current_user FastAPI dependency."""

    @pytest.mark.asyncio
    async def test_valid_token(self) -> None:
        # Arrange
        user = User(id=123, email="test@example.com", hashed_password="hashed")
        uow = _uow_returning(user)
        token = create_access_token(data={"sub": "123"})

        # Act
        result = await get_current_user(token=token, uow=uow)

        # Assert
        assert result is user
        uow.auth_service.get_user_by_id.assert_awaited_once_with(123)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "token",
        [
            "invalid.token",
            create_access_token(data={}),
            create_access_token(data={"sub": "not_a_number"}),
        ],
    )
    async def test_bad_tokens(self, token: str) -> None:
        uow = _uow_returning(None)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(token=token, uow=uow)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}
        uow.auth_service.get_user_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_nonexistent_user(self) -> None:
        uow = _uow_returning(None)
        token = create_access_token(data={"sub": "999"})

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(token=token, uow=uow)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert "credentials" in exc_info.value.detail["message"].lower()

    @pytest.mark.asyncio
    async def test_deactivated_user(self) -> None:
        user = User(id=5, email="gone@example.com", hashed_password="hashed", is_active=False)
        uow = _uow_returning(user)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(token=create_access_token(data={"sub": "5"}), uow=uow)

        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
