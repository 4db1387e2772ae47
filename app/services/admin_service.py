"""Operator-facing view: the review queue, system feedback and corpus totals."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.event import Event
from app.db.models.thread import Thread
from app.db.models.user import User
from app.db.models.user_event import UserEvent
from app.pipeline.models import ReviewStatus
from app.services.feedback_service import FeedbackAnalyzer
from app.services.review_queue import ReviewNotifier, ReviewQueue


class AdminService:
    def __init__(self, session: AsyncSession, notifier: ReviewNotifier | None = None) -> None:
        self._session = session
        self.review_queue = ReviewQueue(session, notifier)
        self.feedback = FeedbackAnalyzer(session)

    async def _count(self, model: Any, *criteria: Any) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(model).where(*criteria)
        )
        return int(result.scalar_one())

    async def system_stats(self) -> dict[str, int]:
        return {
            "total_events": await self._count(Event),
            "processed_events": await self._count(Event, Event.ai_processed.is_(True)),
            "pending_reviews": await self._count(
                Event,
                Event.needs_human_review.is_(True),
                Event.review_status == ReviewStatus.PENDING.value,
            ),
            "total_users": await self._count(User),
            "active_users": await self._count(User, User.is_active.is_(True)),
            "active_threads": await self._count(Thread, Thread.is_active.is_(True)),
            "delivered_user_events": await self._count(UserEvent, UserEvent.sent.is_(True)),
        }


def admin_service_factory_provider(
    notifier: ReviewNotifier | None = None,
) -> Callable[[AsyncSession], AdminService]:
    def factory(session: AsyncSession) -> AdminService:
        return AdminService(session, notifier)

    return factory
