"""Human review of escalated events."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import EventNotFoundError, InvalidEditError
from app.db.base import utcnow
from app.db.models.event import Event
from app.pipeline.models import EventRecord, ReviewStatus
from app.services.user_event_service import UserEventService

logger = logging.getLogger(__name__)

DEFAULT_REVIEWER: Final[str] = "Admin"
EDITABLE_FIELDS: Final[frozenset[str]] = frozenset(
    {"title", "content", "summary", "category", "topics", "importance_score"}
)
CLOSED_STATUSES: Final[frozenset[str]] = frozenset(
    {ReviewStatus.APPROVED.value, ReviewStatus.REJECTED.value, ReviewStatus.EDITED.value}
)


class ReviewNotifier(Protocol):
    async def notify(self, event: Event, reason: str, affected_users: int) -> None: ...


class LoggingReviewNotifier:
    async def notify(self, event: Event, reason: str, affected_users: int) -> None:
        logger.warning(
            f"Human review required: {event.title}",
            extra={
                "event_id": event.id,
                "reason": reason,
                "category": event.category,
                "importance_score": event.importance_score,
                "affected_users": affected_users,
                "url": event.url,
            },
        )


@dataclass(frozen=True, slots=True)
class PendingReview:
    event: Event
    affected_users: int
    review_reason: str | None


class ReviewQueue:
    def __init__(self, session: AsyncSession, notifier: ReviewNotifier | None = None) -> None:
        self._session = session
        self._user_events = UserEventService(session)
        self._notifier = notifier or LoggingReviewNotifier()

    async def _get_event(self, event_id: int) -> Event:
        event = await self._session.get(Event, event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def add_to_queue(self, event: EventRecord, reason: str) -> Event:
        """Hold ``event`` for review.

        Re-queueing a pending event changes nothing, and a decision a reviewer
        already made is never reopened.
        """
        row = await self._get_event(event.id)
        if row.review_status in CLOSED_STATUSES:
            return row
        already_pending = (
            row.needs_human_review
            and row.review_status == ReviewStatus.PENDING
            and row.review_reason == reason
        )
        row.needs_human_review = True
        row.review_status = ReviewStatus.PENDING.value
        row.review_reason = reason
        await self._session.flush()

        if not already_pending:
            affected_users = await self._user_events.count_for_event(row.id)
            await self._notifier.notify(row, reason, affected_users)
        return row

    async def approve(self, event_id: int, reviewer: str = DEFAULT_REVIEWER) -> Event:
        event = await self._get_event(event_id)
        self._close_review(event, ReviewStatus.APPROVED, reviewer)
        await self._session.flush()
        logger.info("Event approved", extra={"event_id": event_id, "reviewer": reviewer})
        return event

    async def reject(
        self, event_id: int, reviewer: str = DEFAULT_REVIEWER, reason: str = ""
    ) -> tuple[Event, int]:
        """Reject ``event_id`` and withdraw it from every user's queue.

        Returns the event and the number of delivery records removed.
        """
        event = await self._get_event(event_id)
        self._close_review(event, ReviewStatus.REJECTED, reviewer)
        if reason:
            event.review_reason = reason
        await self._session.flush()
        removed = await self._user_events.delete_for_event(event_id)
        logger.info(
            "Event rejected",
            extra={"event_id": event_id, "reviewer": reviewer, "removed_user_events": removed},
        )
        return event, removed

    async def edit(
        self, event_id: int, updates: Mapping[str, Any], reviewer: str = DEFAULT_REVIEWER
    ) -> Event:
        unknown = sorted(set(updates) - EDITABLE_FIELDS)
        if unknown:
            raise InvalidEditError(unknown)

        event = await self._get_event(event_id)
        for field, value in updates.items():
            setattr(event, field, value)
        self._close_review(event, ReviewStatus.EDITED, reviewer)
        await self._session.flush()
        logger.info(
            "Event edited and approved",
            extra={"event_id": event_id, "reviewer": reviewer, "fields": sorted(updates)},
        )
        return event

    async def get_pending_reviews(self, limit: int = 50) -> list[PendingReview]:
        result = await self._session.execute(
            select(Event)
            .where(
                Event.needs_human_review.is_(True),
                Event.review_status == ReviewStatus.PENDING.value,
            )
            .order_by(
                Event.importance_score.desc().nulls_last(),
                Event.created_at.desc(),
                Event.id.desc(),
            )
            .limit(limit)
        )
        pending: list[PendingReview] = []
        for event in result.scalars().all():
            affected_users = await self._user_events.count_for_event(event.id)
            pending.append(PendingReview(event, affected_users, event.review_reason))
        return pending

    async def get_queue_stats(self) -> dict[str, int]:
        result = await self._session.execute(
            select(Event.review_status, func.count())
            .where(Event.review_status.is_not(None))
            .group_by(Event.review_status)
        )
        counts = {status.value: 0 for status in ReviewStatus}
        for status, count in result.all():
            counts[status] = int(count)
        counts["total"] = sum(counts.values())
        return counts

    @staticmethod
    def _close_review(event: Event, status: ReviewStatus, reviewer: str) -> None:
        event.review_status = status.value
        event.needs_human_review = False
        event.reviewed_by = reviewer
        event.reviewed_at = utcnow()
