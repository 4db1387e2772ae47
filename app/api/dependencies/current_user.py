"""Dependency that resolves the bearer token to a reader account."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from app.api.dependencies.unit_of_work import UnitOfWork, get_uow
from app.core.auth import oauth2_scheme, verify_token
from app.core.errors import build_http_error
from app.db.models.user import User


def _credentials_error() -> HTTPException:
    return build_http_error(
        status_code=status.HTTP_401_UNAUTHORIZED,
        error="unauthorized",
        message="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _user_id_from_token(token: str) -> int | None:
    payload = verify_token(token)
    subject = payload.get("sub") if payload else None
    if not isinstance(subject, str) or not subject.isdigit():
        return None
    return int(subject)


async def get_current_user(
    token: str = Depends(oauth2_scheme), uow: UnitOfWork = Depends(get_uow)
) -> User:
    """The token's user. Deactivated accounts are treated like unknown ones."""
    user_id = _user_id_from_token(token)
    if user_id is None:
        raise _credentials_error()

    user = await uow.auth_service.get_user_by_id(user_id)
    if user is None or user.is_active is False:
        raise _credentials_error()
    return user
