"""Account registration, login and deletion."""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_password_hash, verify_password
from app.db.models.user import User

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Base error for authentication-related failures."""

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.error_code = error_code


class UserAlreadyExistsError(AuthenticationError):
    """Raised when attempting to register a user that already exists."""

    def __init__(self, message: str = "Email already registered") -> None:
        super().__init__(message, "user_exists")


class InvalidCredentialsError(AuthenticationError):
    """Raised when login credentials are invalid."""

    def __init__(self, message: str = "Incorrect email or password") -> None:
        super().__init__(message, "invalid_credentials")


class PasswordTooLongError(AuthenticationError):
    """Raised when password exceeds the maximum allowed length (72 bytes)."""

    def __init__(
        self, message: str = "Password must not exceed 72 bytes when UTF-8 encoded"
    ) -> None:
        super().__init__(message, "password_too_long")


class AuthService:
    """Session-scoped account operations. Commits are left to the unit of work."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_user_by_id(self, user_id: int) -> User | None:
        return await self._session.get(User, user_id)

    async def register_user(self, email: str, password: str) -> User:
        """Register a new user.

        Raises:
            UserAlreadyExistsError: If email is already registered
            PasswordTooLongError: If password exceeds 72 bytes when UTF-8 encoded
        """
        result = await self._session.execute(select(User.id).where(User.email == email))
        if result.scalar_one_or_none() is not None:
            raise UserAlreadyExistsError()

        try:
            hashed_password = get_password_hash(password)
        except ValueError as e:
            raise PasswordTooLongError() from e

        try:
            async with self._session.begin_nested():
                result = await self._session.execute(
                    insert(User)
                    .values(email=email, hashed_password=hashed_password)
                    .returning(User)
                )
                new_user = result.scalar_one()
        except IntegrityError as e:
            # Registered concurrently between the lookup and the insert
            raise UserAlreadyExistsError() from e

        logger.info("User registered", extra={"user_id": new_user.id})
        return new_user

    async def authenticate_user(self, email: str, password: str) -> User:
        """Authenticate a user with email and password.

        Raises:
            InvalidCredentialsError: If email or password is incorrect
            PasswordTooLongError: If password exceeds 72 bytes when UTF-8 encoded
        """
        result = await self._session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None:
            raise InvalidCredentialsError()

        try:
            password_valid = verify_password(password, user.hashed_password)
        except ValueError as e:
            raise PasswordTooLongError() from e

        if not password_valid:
            raise InvalidCredentialsError()
        return user

    async def delete_user(self, user_id: int) -> int:
        """Hard delete. Delivery records and processing state go with it via CASCADE."""
        await self._session.execute(delete(User).where(User.id == user_id))
        logger.info("User deleted", extra={"user_id": user_id})
        return user_id


def auth_service_factory_provider() -> Callable[[AsyncSession], AuthService]:
    def factory(session: AsyncSession) -> AuthService:
        return AuthService(session)

    return factory
