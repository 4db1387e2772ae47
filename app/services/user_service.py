"""Reader preferences and feedback on delivered events."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Final

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import UserNotFoundError
from app.db.models.user import User
from app.db.models.user_event import UserEvent
from app.pipeline.models import SummaryTone
from app.services.feedback_service import FeedbackAnalyzer, UserFeedbackAnalysis
from app.services.user_event_service import UserEventService

logger = logging.getLogger(__name__)

MAX_INTERESTS: Final[int] = 4


class UserService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._user_events = UserEventService(session)
        self._feedback = FeedbackAnalyzer(session)

    async def get_user(self, user_id: int) -> User:
        user = await self._session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def update_preferences(
        self,
        user_id: int,
        *,
        interests: Sequence[str] | None = None,
        keywords: Sequence[str] | None = None,
        tone: SummaryTone | None = None,
        min_importance_score: float | None = None,
    ) -> User:
        """Apply the given preference fields; ``None`` leaves a field as it is.

        Interests are expected to be validated against the interest vocabulary
        by the caller. A user with at least one interest counts as onboarded.
        """
        user = await self.get_user(user_id)
        if interests is not None:
            user.interests = list(interests)[:MAX_INTERESTS]
        if keywords is not None:
            user.keywords = list(keywords)
        if tone is not None:
            user.tone = tone.value
        if min_importance_score is not None:
            user.min_importance_score = min_importance_score
        user.is_onboarded = bool(user.interests)
        await self._session.flush()
        logger.info("Preferences updated", extra={"user_id": user_id})
        return user

    async def rate_user_event(self, user_id: int, event_id: int, rating: int) -> UserEvent:
        user_event = await self._user_events.rate(user_id, event_id, rating)
        logger.info(
            "Event rated", extra={"user_id": user_id, "event_id": event_id, "rating": rating}
        )
        return user_event

    async def feedback(self, user_id: int) -> UserFeedbackAnalysis:
        return await self._feedback.analyze_user_feedback(user_id)


def user_service_factory_provider() -> Callable[[AsyncSession], UserService]:
    def factory(session: AsyncSession) -> UserService:
        return UserService(session)

    return factory
