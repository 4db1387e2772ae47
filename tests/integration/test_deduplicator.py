"""Integration tests for global and per-user duplicate detection."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DeduplicationIntegrityError
from app.db.models.event import Event
from app.pipeline.models import EventSource, RawEvent
from app.services.deduplicator import Deduplicator, DuplicateReason
from app.services.processing_state_service import ProcessingStateService


def _raw(**overrides: Any) -> RawEvent:
    values: dict[str, Any] = {
        "source": EventSource.HACKERNEWS,
        "source_id": "hn-1",
        "title": "Acme v2.0 released with faster builds",
        "url": "https://example.com/acme-v2",
    }
    values.update(overrides)
    return RawEvent.model_validate(values)


@pytest.fixture
def deduplicator(db_session: AsyncSession) -> Deduplicator:
    return Deduplicator(db_session, ProcessingStateService(db_session))


async def _event_count(session: AsyncSession) -> int:
    return int(await session.scalar(select(func.count()).select_from(Event)) or 0)


class TestGlobalDeduplication:
    @pytest.mark.asyncio
    async def test_new_event_is_saved(
        self, deduplicator: Deduplicator, db_session: AsyncSession
    ) -> None:
        # Act
        check, row = await deduplicator.save_if_new(_raw(topics=["cloud"]))

        # Assert
        assert check.is_duplicate is False
        assert row is not None
        assert row.id is not None
        assert row.ai_processed is False
        assert row.topics == ["cloud"]
        assert await _event_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_same_source_id_is_duplicate(self, deduplicator: Deduplicator) -> None:
        _, first = await deduplicator.save_if_new(_raw())
        assert first is not None

        check, row = await deduplicator.save_if_new(
            _raw(title="Totally different title here", url="https://example.com/other")
        )

        assert row is None
        assert check.reason == DuplicateReason.SOURCE_ID_MATCH
        assert check.existing_id == first.id

    @pytest.mark.asyncio
    async def test_same_source_id_on_other_source_is_not_duplicate(
        self, deduplicator: Deduplicator
    ) -> None:
        await deduplicator.save_if_new(_raw())

        check, row = await deduplicator.save_if_new(
            _raw(
                source=EventSource.REDDIT,
                title="Unrelated kubernetes story",
                url="https://example.com/k8s",
            )
        )

        assert check.is_duplicate is False
        assert row is not None

    @pytest.mark.asyncio
    async def test_same_url_is_duplicate(self, deduplicator: Deduplicator) -> None:
        _, first = await deduplicator.save_if_new(_raw())
        assert first is not None

        check, _ = await deduplicator.save_if_new(
            _raw(source=EventSource.RSS, source_id=None, title="Something else entirely")
        )

        assert check.reason == DuplicateReason.URL_MATCH
        assert check.existing_id == first.id

    @pytest.mark.asyncio
    async def test_similar_title_is_duplicate(self, deduplicator: Deduplicator) -> None:
        _, first = await deduplicator.save_if_new(_raw(title="Acme v2.0 released!"))
        assert first is not None

        check, row = await deduplicator.save_if_new(
            _raw(source_id="hn-2", url="https://example.com/b", title="acme v2.0 released")
        )

        assert row is None
        assert check.reason == DuplicateReason.TITLE_SIMILARITY
        assert check.existing_id == first.id
        assert check.similarity is not None and check.similarity > 0.85

    @pytest.mark.asyncio
    async def test_dissimilar_title_is_new(self, deduplicator: Deduplicator) -> None:
        await deduplicator.save_if_new(_raw(title="Acme v2.0 released!"))

        check, row = await deduplicator.save_if_new(
            _raw(source_id="hn-2", url="https://example.com/b", title="Acme v3.1 postponed")
        )

        assert check.is_duplicate is False
        assert row is not None

    @pytest.mark.asyncio
    async def test_store_failure_fails_closed(
        self, deduplicator: Deduplicator, db_session: AsyncSession, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            db_session,
            "scalar",
            AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db gone"))),
        )

        with pytest.raises(DeduplicationIntegrityError) as exc_info:
            await deduplicator.save_if_new(_raw())

        assert exc_info.value.error_code == "dedup_unavailable"


class TestUserDeduplication:
    @pytest.mark.asyncio
    async def test_mark_and_check(
        self, deduplicator: Deduplicator, make_user: Callable[..., Any]
    ) -> None:
        # Arrange
        user = await make_user()
        _, row = await deduplicator.save_if_new(_raw())
        assert row is not None

        # Act
        before = await deduplicator.is_user_duplicate(user.id, row.id)
        state = await deduplicator.mark_user_event_processed(user.id, row.id)
        after = await deduplicator.is_user_duplicate(user.id, row.id)

        # Assert
        assert before is False
        assert state is not None
        assert state.processed_event_ids == [str(row.id)]
        assert after is True

    @pytest.mark.asyncio
    async def test_unknown_user_is_never_duplicate(self, deduplicator: Deduplicator) -> None:
        assert await deduplicator.is_user_duplicate(999_999, 1) is False

    @pytest.mark.asyncio
    async def test_mark_for_unknown_user_fails_open(self, deduplicator: Deduplicator) -> None:
        assert await deduplicator.mark_user_event_processed(999_999, 1) is None

    @pytest.mark.asyncio
    async def test_user_duplicates_filters_processed_ids(
        self, deduplicator: Deduplicator, make_user: Callable[..., Any]
    ) -> None:
        user = await make_user()
        await deduplicator.mark_user_event_processed(user.id, 11)
        await deduplicator.mark_user_event_processed(user.id, 13)

        assert await deduplicator.user_duplicates(user.id, [11, 12, 13]) == {11, 13}

    @pytest.mark.asyncio
    async def test_user_duplicates_fails_open_on_storage_error(
        self,
        deduplicator: Deduplicator,
        make_user: Callable[..., Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        # Arrange
        user = await make_user()
        await deduplicator.mark_user_event_processed(user.id, 11)
        monkeypatch.setattr(
            deduplicator._state_service,
            "get",
            AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db gone"))),
        )

        # Act
        duplicates = await deduplicator.user_duplicates(user.id, [11, 12])

        # Assert
        assert duplicates == set()
        assert await deduplicator.is_user_duplicate(user.id, 11) is False
