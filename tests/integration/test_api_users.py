"""Integration tests for preferences and feedback endpoints."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from fastapi import status
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import FeedbackAnalysisResponse, PreferencesResponse, RatedEventResponse
from app.db.models.event import Event
from app.db.models.user_event import UserEvent

AuthHeaders = Callable[[int], dict[str, str]]


async def _delivered_event(session: AsyncSession, user_id: int, **extra: Any) -> Event:
    event = Event(source="rss", title=extra.pop("title", "Kubernetes 1.31 released"), **extra)
    session.add(event)
    await session.flush()
    session.add(UserEvent(user_id=user_id, event_id=event.id, relevance_score=8.0, sent=True))
    await session.commit()
    return event


class TestPreferences:
    @pytest.mark.asyncio
    async def test_get_preferences(
        self,
        async_http_client: AsyncClient,
        make_user: Callable[..., Any],
        auth_headers: AuthHeaders,
    ) -> None:
        user = await make_user()

        response = await async_http_client.get(
            "/api/users/me/preferences", headers=auth_headers(user.id)
        )

        assert response.status_code == status.HTTP_200_OK
        parsed = PreferencesResponse.model_validate(response.json())
        assert parsed.interests == ["technology", "cloud"]
        assert parsed.keywords == ["kubernetes"]
        assert parsed.min_importance_score == 5.0

    @pytest.mark.asyncio
    async def test_update_normalizes_and_onboards(
        self,
        async_http_client: AsyncClient,
        make_user: Callable[..., Any],
        auth_headers: AuthHeaders,
    ) -> None:
        # Arrange
        user = await make_user(interests=[], is_onboarded=False)

        # Act
        response = await async_http_client.put(
            "/api/users/me/preferences",
            headers=auth_headers(user.id),
            json={
                "interests": [" AI ", "DevOps", "ai"],
                "keywords": [" rust ", ""],
                "tone": "technical",
                "min_importance_score": 6.5,
            },
        )

        # Assert
        assert response.status_code == status.HTTP_200_OK
        parsed = PreferencesResponse.model_validate(response.json())
        assert parsed.interests == ["ai", "devops"]
        assert parsed.keywords == ["rust"]
        assert parsed.tone == "technical"
        assert parsed.min_importance_score == 6.5
        assert parsed.is_onboarded is True

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(
        self,
        async_http_client: AsyncClient,
        make_user: Callable[..., Any],
        auth_headers: AuthHeaders,
    ) -> None:
        user = await make_user()

        response = await async_http_client.put(
            "/api/users/me/preferences", headers=auth_headers(user.id), json={"tone": "detailed"}
        )

        parsed = PreferencesResponse.model_validate(response.json())
        assert parsed.tone == "detailed"
        assert parsed.interests == ["technology", "cloud"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"interests": ["gardening"]},
            {"interests": []},
            {"interests": ["ai", "cloud", "devops", "finance", "science"]},
            {"tone": "poetic"},
            {"min_importance_score": 11},
        ],
    )
    async def test_invalid_preferences(
        self,
        async_http_client: AsyncClient,
        make_user: Callable[..., Any],
        auth_headers: AuthHeaders,
        payload: dict[str, Any],
    ) -> None:
        user = await make_user()

        response = await async_http_client.put(
            "/api/users/me/preferences", headers=auth_headers(user.id), json=payload
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_requires_token(self, async_http_client: AsyncClient) -> None:
        response = await async_http_client.get("/api/users/me/preferences")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestRatings:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [1, 3, 5])
    async def test_rate_delivered_event(
        self,
        async_http_client: AsyncClient,
        db_session: AsyncSession,
        make_user: Callable[..., Any],
        auth_headers: AuthHeaders,
        rating: int,
    ) -> None:
        user = await make_user()
        event = await _delivered_event(db_session, user.id)

        response = await async_http_client.post(
            f"/api/users/me/events/{event.id}/rating",
            headers=auth_headers(user.id),
            json={"rating": rating},
        )

        assert response.status_code == status.HTTP_200_OK
        parsed = RatedEventResponse.model_validate(response.json())
        assert parsed.event_id == event.id
        assert parsed.rating == rating
        assert parsed.rated_at is not None

    @pytest.mark.asyncio
    async def test_rating_outside_scale(
        self,
        async_http_client: AsyncClient,
        db_session: AsyncSession,
        make_user: Callable[..., Any],
        auth_headers: AuthHeaders,
    ) -> None:
        user = await make_user()
        event = await _delivered_event(db_session, user.id)

        response = await async_http_client.post(
            f"/api/users/me/events/{event.id}/rating",
            headers=auth_headers(user.id),
            json={"rating": 4},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT
        assert response.json()["error"] == "invalid_rating"

    @pytest.mark.asyncio
    async def test_rating_event_never_delivered(
        self,
        async_http_client: AsyncClient,
        db_session: AsyncSession,
        make_user: Callable[..., Any],
        auth_headers: AuthHeaders,
    ) -> None:
        owner = await make_user("owner@example.com")
        other = await make_user("other@example.com")
        event = await _delivered_event(db_session, owner.id)

        response = await async_http_client.post(
            f"/api/users/me/events/{event.id}/rating",
            headers=auth_headers(other.id),
            json={"rating": 5},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "user_event_not_found"


class TestFeedback:
    @pytest.mark.asyncio
    async def test_feedback_without_ratings(
        self,
        async_http_client: AsyncClient,
        make_user: Callable[..., Any],
        auth_headers: AuthHeaders,
    ) -> None:
        user = await make_user()

        response = await async_http_client.get(
            "/api/users/me/feedback", headers=auth_headers(user.id)
        )

        assert response.status_code == status.HTTP_200_OK
        parsed = FeedbackAnalysisResponse.model_validate(response.json())
        assert parsed.has_data is False
        assert parsed.total_ratings == 0

    @pytest.mark.asyncio
    async def test_feedback_after_ratings(
        self,
        async_http_client: AsyncClient,
        db_session: AsyncSession,
        make_user: Callable[..., Any],
        auth_headers: AuthHeaders,
    ) -> None:
        # Arrange
        user = await make_user()
        headers = auth_headers(user.id)
        for index, rating in enumerate([5, 3]):
            event = await _delivered_event(
                db_session, user.id, title=f"Release {index}", category="release"
            )
            await async_http_client.post(
                f"/api/users/me/events/{event.id}/rating", headers=headers, json={"rating": rating}
            )

        # Act
        response = await async_http_client.get("/api/users/me/feedback", headers=headers)

        # Assert
        parsed = FeedbackAnalysisResponse.model_validate(response.json())
        assert parsed.has_data is True
        assert parsed.total_ratings == 2
        assert parsed.avg_rating == pytest.approx(4.0)
        assert parsed.category_performance["release"].count == 2
        assert parsed.recommendations == []
