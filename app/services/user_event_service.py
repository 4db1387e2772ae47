"""Per-user delivery records and the ratings users leave on them."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import InvalidRatingError, UserEventNotFoundError
from app.db.base import utcnow
from app.db.models.event import Event
from app.db.models.user_event import UserEvent

ALLOWED_RATINGS: Final[frozenset[int]] = frozenset({1, 3, 5})


class UserEventService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: int, event_id: int) -> UserEvent | None:
        result = await self._session.execute(
            select(UserEvent).where(UserEvent.user_id == user_id, UserEvent.event_id == event_id)
        )
        return result.scalar_one_or_none()

    async def event_ids_for_user(self, user_id: int) -> set[int]:
        result = await self._session.execute(
            select(UserEvent.event_id).where(UserEvent.user_id == user_id)
        )
        return set(result.scalars().all())

    async def create(self, user_id: int, event_id: int, relevance_score: float) -> UserEvent | None:
        """Queue ``event_id`` for ``user_id``. Returns None if it was already queued."""
        user_event = UserEvent(
            user_id=user_id, event_id=event_id, relevance_score=relevance_score, sent=False
        )
        try:
            async with self._session.begin_nested():
                self._session.add(user_event)
        except IntegrityError:
            return None
        return user_event

    async def recent_ratings(self, user_id: int, limit: int = 50) -> list[int]:
        result = await self._session.execute(
            select(UserEvent.rating)
            .where(UserEvent.user_id == user_id, UserEvent.rating.is_not(None))
            .order_by(UserEvent.rated_at.desc(), UserEvent.id.desc())
            .limit(limit)
        )
        return [rating for rating in result.scalars().all() if rating is not None]

    async def rate(self, user_id: int, event_id: int, rating: int) -> UserEvent:
        """Record explicit feedback. A rating can be changed but never cleared."""
        if rating not in ALLOWED_RATINGS:
            raise InvalidRatingError(rating)
        user_event = await self.get(user_id, event_id)
        if user_event is None:
            raise UserEventNotFoundError(user_id, event_id)
        user_event.rating = rating
        user_event.rated_at = utcnow()
        await self._session.flush()
        return user_event

    async def pending_delivery(self, user_id: int, min_relevance: float) -> list[UserEvent]:
        """Unsent records at or above ``min_relevance`` whose event is not held for review."""
        result = await self._session.execute(
            select(UserEvent)
            .join(Event, Event.id == UserEvent.event_id)
            .options(selectinload(UserEvent.event))
            .where(
                UserEvent.user_id == user_id,
                UserEvent.sent.is_(False),
                UserEvent.relevance_score >= min_relevance,
                Event.needs_human_review.is_(False),
            )
            .order_by(UserEvent.relevance_score.desc(), UserEvent.id)
        )
        return list(result.scalars().all())

    async def mark_sent(self, user_id: int, event_ids: Sequence[int]) -> int:
        if not event_ids:
            return 0
        result = await self._session.execute(
            update(UserEvent)
            .where(UserEvent.user_id == user_id, UserEvent.event_id.in_(list(event_ids)))
            .values(sent=True, sent_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def count_for_user(self, user_id: int) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(UserEvent).where(UserEvent.user_id == user_id)
        )
        return int(result.scalar_one())

    async def count_for_event(self, event_id: int) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(UserEvent).where(UserEvent.event_id == event_id)
        )
        return int(result.scalar_one())

    async def delete_for_user(self, user_id: int) -> int:
        result = await self._session.execute(
            delete(UserEvent)
            .where(UserEvent.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def delete_for_event(self, event_id: int) -> int:
        result = await self._session.execute(
            delete(UserEvent)
            .where(UserEvent.event_id == event_id)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)  # type: ignore[attr-defined]
