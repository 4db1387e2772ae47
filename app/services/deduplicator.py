"""Global (corpus-wide) and per-user duplicate detection.

The global path fails closed: if the store cannot answer, the error propagates
and the event is not stored. The per-user path fails open: a bookkeeping
fault is logged and the event is treated as unseen.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    DeduplicationIntegrityError,
    StateConflictError,
    UserNotFoundError,
)
from app.db.models.event import Event
from app.pipeline.models import RawEvent
from app.pipeline.processing_state import ProcessingState
from app.pipeline.similarity import edit_similarity
from app.services.processing_state_service import ProcessingStateService

logger = logging.getLogger(__name__)

TITLE_SIMILARITY_THRESHOLD: Final[float] = 0.85
TITLE_SCAN_LIMIT: Final[int] = 200


class DuplicateReason(StrEnum):
    SOURCE_ID_MATCH = "source_id_match"
    URL_MATCH = "url_match"
    TITLE_SIMILARITY = "title_similarity"
    # Lost an insert race on a unique key
    UNIQUE_CONFLICT = "unique_conflict"


@dataclass(frozen=True, slots=True)
class DuplicateCheck:
    is_duplicate: bool
    reason: DuplicateReason | None = None
    existing_id: int | None = None
    similarity: float | None = None


NOT_DUPLICATE: Final[DuplicateCheck] = DuplicateCheck(is_duplicate=False)


class Deduplicator:
    def __init__(self, session: AsyncSession, state_service: ProcessingStateService) -> None:
        self._session = session
        self._state_service = state_service

    async def is_duplicate(self, event: RawEvent) -> DuplicateCheck:
        """Check ``event`` against the stored corpus; first matching rule wins."""
        try:
            return await self._check_global(event)
        except SQLAlchemyError as exc:
            logger.error(
                f"Global duplicate check failed: {exc}",
                extra={"source": event.source.value, "source_id": event.source_id},
            )
            raise DeduplicationIntegrityError(
                f"Duplicate check for {event.title!r} could not be completed"
            ) from exc

    async def _check_global(self, event: RawEvent) -> DuplicateCheck:
        if event.source_id:
            existing_id = await self._session.scalar(
                select(Event.id).where(
                    Event.source == event.source.value, Event.source_id == event.source_id
                )
            )
            if existing_id is not None:
                return DuplicateCheck(True, DuplicateReason.SOURCE_ID_MATCH, existing_id)

        if event.url:
            existing_id = await self._session.scalar(select(Event.id).where(Event.url == event.url))
            if existing_id is not None:
                return DuplicateCheck(True, DuplicateReason.URL_MATCH, existing_id)

        return await self._check_title(event.title)

    async def _check_title(self, title: str) -> DuplicateCheck:
        length = len(title)
        if length == 0:
            return NOT_DUPLICATE

        # Similarity above the threshold bounds how far the lengths can differ
        result = await self._session.execute(
            select(Event.id, Event.title)
            .where(
                func.length(Event.title) > length * TITLE_SIMILARITY_THRESHOLD,
                func.length(Event.title) < length / TITLE_SIMILARITY_THRESHOLD,
            )
            .order_by(Event.id.desc())
            .limit(TITLE_SCAN_LIMIT)
        )
        best: DuplicateCheck = NOT_DUPLICATE
        for existing_id, existing_title in result.all():
            similarity = edit_similarity(title, existing_title)
            if similarity > TITLE_SIMILARITY_THRESHOLD and (
                best.similarity is None or similarity > best.similarity
            ):
                best = DuplicateCheck(
                    True, DuplicateReason.TITLE_SIMILARITY, existing_id, similarity
                )
        return best

    async def save_if_new(self, event: RawEvent) -> tuple[DuplicateCheck, Event | None]:
        """Store ``event`` unless it is already known. A unique-key race counts as a duplicate."""
        check = await self.is_duplicate(event)
        if check.is_duplicate:
            return check, None

        row = Event(
            source=event.source.value,
            source_id=event.source_id,
            title=event.title,
            content=event.content,
            url=event.url,
            published_at=event.published_at,
            topics=list(event.topics),
            raw_data=dict(event.raw_data),
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            logger.info(
                "Event inserted concurrently, treating as duplicate",
                extra={"source": event.source.value, "source_id": event.source_id},
            )
            return DuplicateCheck(True, DuplicateReason.UNIQUE_CONFLICT), None
        except SQLAlchemyError as exc:
            raise DeduplicationIntegrityError(f"Could not store {event.title!r}") from exc
        return NOT_DUPLICATE, row

    async def is_user_duplicate(self, user_id: int, event_id: int) -> bool:
        return event_id in await self.user_duplicates(user_id, [event_id])

    async def user_duplicates(self, user_id: int, event_ids: Iterable[int]) -> set[int]:
        """The subset of ``event_ids`` this user has already processed.

        A failed state read counts every event as new rather than blocking the run.
        """
        candidates = list(event_ids)
        try:
            async with self._session.begin_nested():
                state = await self._state_service.get(user_id)
        except SQLAlchemyError as exc:
            logger.warning(
                f"User duplicate check failed, treating as new: {exc}",
                extra={"user_id": user_id, "events": len(candidates)},
            )
            return set()
        if state is None:
            return set()
        return {event_id for event_id in candidates if state.is_event_processed(event_id)}

    async def mark_user_event_processed(
        self, user_id: int, event_id: int
    ) -> ProcessingState | None:
        try:
            async with self._session.begin_nested():
                return await self._state_service.update(
                    user_id, lambda state: state.mark_event_processed(event_id)
                )
        except (SQLAlchemyError, StateConflictError, UserNotFoundError) as exc:
            logger.warning(
                f"Could not mark event processed: {exc}",
                extra={"user_id": user_id, "event_id": event_id},
            )
            return None
