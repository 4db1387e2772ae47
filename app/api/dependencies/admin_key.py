"""Dependency guarding operator-only routes with the shared admin key."""

from __future__ import annotations

from fastapi import Security, status

from app.core.auth import admin_key_scheme, verify_admin_key
from app.core.errors import build_http_error


async def require_admin_key(api_key: str | None = Security(admin_key_scheme)) -> str:
    """Reject the request unless ``X-API-Key`` matches the configured admin key."""
    if not verify_admin_key(api_key):
        raise build_http_error(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="invalid_api_key",
            message="Missing or invalid X-API-Key header",
        )
    return "admin"
