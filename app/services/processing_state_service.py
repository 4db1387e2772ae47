"""Durable storage for ``ProcessingState`` with optimistic concurrency."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import StateConflictError, UserNotFoundError
from app.db.base import utcnow
from app.db.models.user import User
from app.db.models.user_processing_state import UserProcessingState
from app.pipeline.processing_state import ProcessingState

logger = logging.getLogger(__name__)

StateTransform = Callable[[ProcessingState], None]


def _to_model(row: UserProcessingState) -> ProcessingState:
    return ProcessingState.model_validate(
        {
            "user_id": row.user_id,
            "email": row.email,
            "processed_event_ids": row.processed_event_ids or [],
            "stats": row.stats or {},
            "current_state": row.current_state or {},
            "recent_errors": row.recent_errors or [],
            "action_history": row.action_history or [],
            "version": row.version,
            "updated_at": row.updated_at,
        }
    )


def _to_columns(state: ProcessingState) -> dict[str, Any]:
    dumped = state.model_dump(mode="json")
    return {
        "email": state.email,
        "processed_event_ids": dumped["processed_event_ids"],
        "stats": dumped["stats"],
        "current_state": dumped["current_state"],
        "recent_errors": dumped["recent_errors"],
        "action_history": dumped["action_history"],
    }


class ProcessingStateService:
    """Reads and writes per-user processing state.

    Every write goes through ``update``: the stored snapshot is read, the
    transform runs against a copy, and the copy is written back only if the
    row's ``version`` is still the one that was read. Lost races are retried.
    """

    def __init__(self, session: AsyncSession, max_retries: int | None = None) -> None:
        self._session = session
        self._max_retries = max_retries or settings.state_update_max_retries

    async def get(self, user_id: int) -> ProcessingState | None:
        result = await self._session.execute(
            select(UserProcessingState)
            .where(UserProcessingState.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _to_model(row) if row is not None else None

    async def get_or_create(self, user_id: int, email: str | None = None) -> ProcessingState:
        state = await self.get(user_id)
        if state is not None:
            return state

        if email is None:
            user = await self._session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            email = user.email

        fresh = ProcessingState(user_id=user_id, email=email)
        try:
            async with self._session.begin_nested():
                self._session.add(
                    UserProcessingState(user_id=user_id, version=1, **_to_columns(fresh))
                )
        except IntegrityError:
            # Created concurrently by another run for the same user
            logger.info("Processing state already created", extra={"user_id": user_id})

        state = await self.get(user_id)
        if state is None:
            raise UserNotFoundError(user_id)
        return state

    async def update(self, user_id: int, transform: StateTransform) -> ProcessingState:
        for attempt in range(1, self._max_retries + 1):
            current = await self.get_or_create(user_id)
            draft = current.model_copy(deep=True)
            transform(draft)

            now = utcnow()
            result = await self._session.execute(
                update(UserProcessingState)
                .where(
                    UserProcessingState.user_id == user_id,
                    UserProcessingState.version == current.version,
                )
                .values(**_to_columns(draft), version=current.version + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:  # type: ignore[attr-defined]
                draft.version = current.version + 1
                draft.updated_at = now
                return draft

            logger.info(
                "Processing state changed concurrently, retrying",
                extra={"user_id": user_id, "attempt": attempt},
            )

        raise StateConflictError(user_id, self._max_retries)

