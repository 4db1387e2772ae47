"""Credential primitives: bcrypt hashing, JWT bearer tokens and the operator key."""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any, Final

from fastapi.security import APIKeyHeader, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

BCRYPT_MAX_BYTES: Final[int] = 72

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Reader tokens are JWTs; OAuth2PasswordBearer only extracts the Bearer header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

admin_key_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)


def _ensure_bcrypt_length(password: str) -> None:
    # bcrypt silently ignores everything past 72 bytes
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password must not exceed {BCRYPT_MAX_BYTES} bytes when UTF-8 encoded.")


def get_password_hash(password: str) -> str:
    _ensure_bcrypt_length(password)
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    _ensure_bcrypt_length(plain_password)
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Sign ``data`` with an ``exp`` claim; the lifetime defaults to the configured minutes."""
    lifetime = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    claims = {**data, "exp": datetime.now(UTC) + lifetime}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any] | None:
    """Decoded claims, or None for a malformed, forged or expired token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def verify_admin_key(api_key: str | None) -> bool:
    if not api_key:
        return False
    return secrets.compare_digest(api_key.encode("utf-8"), settings.admin_api_key.encode("utf-8"))
