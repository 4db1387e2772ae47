"""Integration tests for delivery records, ratings and feedback analysis."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidRatingError, UserEventNotFoundError, UserNotFoundError
from app.db.models.event import Event
from app.services.feedback_service import FeedbackAnalyzer
from app.services.user_event_service import UserEventService


async def _event(session: AsyncSession, title: str, **extra: Any) -> Event:
    event = Event(source=extra.pop("source", "rss"), title=title, **extra)
    session.add(event)
    await session.flush()
    return event


class TestUserEventService:
    @pytest.mark.asyncio
    async def test_create_is_unique_per_user_and_event(
        self, db_session: AsyncSession, make_user: Callable[..., Any]
    ) -> None:
        user = await make_user()
        event = await _event(db_session, "Acme v2.0 released")
        service = UserEventService(db_session)

        first = await service.create(user.id, event.id, 8.1)
        second = await service.create(user.id, event.id, 9.0)

        assert first is not None
        assert second is None
        assert await service.count_for_user(user.id) == 1
        assert await service.event_ids_for_user(user.id) == {event.id}

    @pytest.mark.asyncio
    async def test_rate_records_and_changes_rating(
        self, db_session: AsyncSession, make_user: Callable[..., Any]
    ) -> None:
        # Arrange
        user = await make_user()
        event = await _event(db_session, "Acme v2.0 released")
        service = UserEventService(db_session)
        await service.create(user.id, event.id, 8.1)

        # Act
        await service.rate(user.id, event.id, 1)
        rated = await service.rate(user.id, event.id, 5)

        # Assert
        assert rated.rating == 5
        assert rated.rated_at is not None
        assert await service.recent_ratings(user.id) == [5]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 2, 4, 6])
    async def test_rate_rejects_values_outside_scale(
        self, db_session: AsyncSession, make_user: Callable[..., Any], rating: int
    ) -> None:
        user = await make_user()
        event = await _event(db_session, "Acme v2.0 released")
        service = UserEventService(db_session)
        await service.create(user.id, event.id, 8.1)

        with pytest.raises(InvalidRatingError):
            await service.rate(user.id, event.id, rating)

    @pytest.mark.asyncio
    async def test_rate_requires_delivery_record(
        self, db_session: AsyncSession, make_user: Callable[..., Any]
    ) -> None:
        user = await make_user()
        event = await _event(db_session, "Acme v2.0 released")

        with pytest.raises(UserEventNotFoundError):
            await UserEventService(db_session).rate(user.id, event.id, 3)

    @pytest.mark.asyncio
    async def test_pending_delivery_filters_and_orders(
        self, db_session: AsyncSession, make_user: Callable[..., Any]
    ) -> None:
        # Arrange
        user = await make_user()
        service = UserEventService(db_session)
        best = await _event(db_session, "Best match")
        good = await _event(db_session, "Good match")
        weak = await _event(db_session, "Weak match")
        held = await _event(db_session, "Held for review", needs_human_review=True)
        sent = await _event(db_session, "Already sent")
        await service.create(user.id, good.id, 7.0)
        await service.create(user.id, best.id, 9.2)
        await service.create(user.id, weak.id, 4.0)
        await service.create(user.id, held.id, 9.9)
        await service.create(user.id, sent.id, 8.0)
        await service.mark_sent(user.id, [sent.id])

        # Act
        pending = await service.pending_delivery(user.id, min_relevance=5.0)

        # Assert
        assert [item.event_id for item in pending] == [best.id, good.id]
        assert pending[0].event.title == "Best match"

    @pytest.mark.asyncio
    async def test_mark_sent_with_nothing_to_send(self, db_session: AsyncSession) -> None:
        assert await UserEventService(db_session).mark_sent(1, []) == 0

    @pytest.mark.asyncio
    async def test_delete_for_user_leaves_other_users(
        self, db_session: AsyncSession, make_user: Callable[..., Any]
    ) -> None:
        alice = await make_user("alice@example.com")
        bob = await make_user("bob@example.com")
        event = await _event(db_session, "Shared story")
        service = UserEventService(db_session)
        await service.create(alice.id, event.id, 6.0)
        await service.create(bob.id, event.id, 6.0)

        removed = await service.delete_for_user(alice.id)

        assert removed == 1
        assert await service.count_for_event(event.id) == 1


class TestFeedbackAnalyzer:
    @pytest.mark.asyncio
    async def test_no_ratings(
        self, db_session: AsyncSession, make_user: Callable[..., Any]
    ) -> None:
        user = await make_user()

        analysis = await FeedbackAnalyzer(db_session).analyze_user_feedback(user.id)

        assert analysis.has_data is False
        assert analysis.recommendations == []

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session: AsyncSession) -> None:
        with pytest.raises(UserNotFoundError):
            await FeedbackAnalyzer(db_session).analyze_user_feedback(555_555)

    @pytest.mark.asyncio
    async def test_recommendations_from_ratings(
        self, db_session: AsyncSession, make_user: Callable[..., Any]
    ) -> None:
        # Arrange: six disliked funding stories and four loved security stories
        user = await make_user(interests=["technology"])
        service = UserEventService(db_session)
        for index in range(6):
            event = await _event(
                db_session, f"Funding round {index}", category="funding", topics=["finance"]
            )
            await service.create(user.id, event.id, 6.0)
            await service.rate(user.id, event.id, 1)
        for index in range(4):
            event = await _event(
                db_session,
                f"Security advisory {index}",
                category="security",
                topics=["security"],
                source="github",
            )
            await service.create(user.id, event.id, 6.0)
            await service.rate(user.id, event.id, 5)

        # Act
        analysis = await FeedbackAnalyzer(db_session).analyze_user_feedback(user.id)

        # Assert
        assert analysis.has_data is True
        assert analysis.total_ratings == 10
        assert analysis.avg_rating == pytest.approx(2.6)
        assert analysis.category_performance["funding"].count == 6
        assert analysis.source_performance["github"].avg_rating == 5
        kinds = [(rec.type, rec.data) for rec in analysis.recommendations]
        assert kinds == [
            ("overall_low", {}),
            ("category_underperforming", {"category": "funding"}),
            ("topic_suggestion", {"topic": "security"}),
        ]

    @pytest.mark.asyncio
    async def test_system_feedback(
        self, db_session: AsyncSession, make_user: Callable[..., Any]
    ) -> None:
        # Arrange
        users = [await make_user(f"reader{index}@example.com") for index in range(3)]
        loved = await _event(db_session, "Loved story", category="release")
        mixed = await _event(db_session, "Mixed story", category="trend")
        service = UserEventService(db_session)
        for user, (loved_rating, mixed_rating) in zip(
            users, [(5, 1), (5, 3), (5, 1)], strict=True
        ):
            await service.create(user.id, loved.id, 7.0)
            await service.create(user.id, mixed.id, 7.0)
            await service.rate(user.id, loved.id, loved_rating)
            await service.rate(user.id, mixed.id, mixed_rating)

        # Act
        report = await FeedbackAnalyzer(db_session).system_feedback()

        # Assert
        assert report["total_feedback"] == 6
        assert report["rating_distribution"] == {1: 2, 3: 1, 5: 3}
        assert report["category_performance"]["release"] == {"avg_rating": 5.0, "count": 3}
        assert report["top_performing_events"][0]["event_id"] == loved.id
        assert report["low_performing_events"][0]["event_id"] == mixed.id
