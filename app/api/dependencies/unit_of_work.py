"""Unit of Work: one transaction per request, session-scoped services from registry."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any, cast

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session_maker
from app.services.admin_service import AdminService
from app.services.auth_service import AuthService
from app.services.pipeline_runner import UserPipelineRunner
from app.services.user_service import UserService


class UnitOfWork:
    """Holds the request's session and exposes session-scoped services from the registry."""

    def __init__(self, session: AsyncSession, services: Mapping[str, Any]) -> None:
        self._session = session
        self._services = services
        self._resolved: dict[str, Any] = {}

    @property
    def session(self) -> AsyncSession:
        return self._session

    def _resolve(self, key: str) -> Any:
        if key not in self._resolved:
            service = self._services[key]
            self._resolved[key] = service(self._session) if callable(service) else service
        return self._resolved[key]

    @property
    def auth_service(self) -> AuthService:
        """Session-scoped auth service."""
        return cast(AuthService, self._resolve("auth_service"))

    @property
    def user_service(self) -> UserService:
        return cast(UserService, self._resolve("user_service"))

    @property
    def admin_service(self) -> AdminService:
        return cast(AdminService, self._resolve("admin_service"))

    @property
    def pipeline_runner(self) -> UserPipelineRunner:
        """Session-scoped pipeline runner. It commits at its own checkpoints."""
        return cast(UserPipelineRunner, self._resolve("pipeline_runner"))


async def get_uow(request: Request) -> AsyncIterator[UnitOfWork]:
    """Per-request dependency: one session, commit on success, rollback on exception."""
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield UnitOfWork(session, request.app.state.services)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
