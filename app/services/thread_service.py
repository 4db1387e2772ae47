"""Clusters related events into threads (evolving stories)."""

from __future__ import annotations

import logging
import re
import time
from datetime import timedelta
from typing import Any, Final

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import ThreadNotFoundError
from app.db.base import utcnow
from app.db.models.event import Event
from app.db.models.thread import Thread
from app.pipeline.models import EventRecord
from app.pipeline.similarity import jaccard_similarity

logger = logging.getLogger(__name__)

THREAD_TITLE_SIMILARITY_THRESHOLD: Final[float] = 0.6
SLUG_BASE_LENGTH: Final[int] = 50
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")


def generate_slug(title: str, timestamp_ms: int | None = None) -> str:
    base = _NON_ALPHANUMERIC.sub("-", title.lower()).strip("-")[:SLUG_BASE_LENGTH]
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{base}-{stamp}"


class ThreadService:
    def __init__(self, session: AsyncSession, window_days: int | None = None) -> None:
        self._session = session
        self._window = timedelta(days=window_days or settings.thread_window_days)

    async def get_thread(self, slug: str) -> Thread:
        thread = await self._session.scalar(select(Thread).where(Thread.slug == slug))
        if thread is None:
            raise ThreadNotFoundError(slug)
        return thread

    async def find_related_thread(self, event: EventRecord) -> Thread | None:
        """First active, recent thread holding an event with shared topics and a similar title.

        Threads are scanned oldest first, members in insertion order.
        """
        topics = set(event.topics)
        if not topics:
            return None

        result = await self._session.execute(
            select(Thread)
            .where(Thread.is_active.is_(True), Thread.created_at >= utcnow() - self._window)
            .order_by(Thread.created_at, Thread.id)
        )
        threads = list(result.scalars().all())
        member_ids = {event_id for thread in threads for event_id in thread.event_ids}
        if not member_ids:
            return None

        members_result = await self._session.execute(
            select(Event.id, Event.title, Event.topics).where(Event.id.in_(member_ids))
        )
        members = {row.id: (row.title, set(row.topics or [])) for row in members_result}

        for thread in threads:
            for member_id in thread.event_ids:
                member = members.get(member_id)
                if member is None:
                    continue
                member_title, member_topics = member
                if not topics & member_topics:
                    continue
                similarity = jaccard_similarity(event.title, member_title)
                if similarity > THREAD_TITLE_SIMILARITY_THRESHOLD:
                    logger.info(
                        "Found related thread",
                        extra={
                            "event_id": event.id,
                            "thread_slug": thread.slug,
                            "similarity": similarity,
                        },
                    )
                    return thread
        return None

    async def create_thread(
        self, title: str, initial_event_id: int, reason: str = "Initial event"
    ) -> Thread:
        thread = Thread(
            slug=generate_slug(title),
            title=title,
            event_ids=[initial_event_id],
            ai_context={"created_reason": reason, "summary": None},
            is_active=True,
        )
        self._session.add(thread)
        await self._session.flush()
        logger.info("Thread created", extra={"thread_id": thread.id, "thread_slug": thread.slug})
        return thread

    async def add_event_to_thread(self, slug: str, event_id: int) -> Thread:
        thread = await self.get_thread(slug)
        if event_id not in thread.event_ids:
            thread.event_ids = [*thread.event_ids, event_id]
            await self._session.flush()
            logger.info("Event added to thread", extra={"thread_slug": slug, "event_id": event_id})
        return thread

    async def update_thread_context(self, slug: str, ai_context: dict[str, Any]) -> Thread:
        thread = await self.get_thread(slug)
        thread.ai_context = {
            **(thread.ai_context or {}),
            **ai_context,
            "last_updated": utcnow().isoformat(),
        }
        await self._session.flush()
        return thread

    async def close_thread(self, slug: str) -> Thread:
        thread = await self.get_thread(slug)
        thread.is_active = False
        await self._session.flush()
        logger.info("Thread closed", extra={"thread_slug": slug})
        return thread

    async def link_event(self, event: EventRecord) -> str:
        """Add ``event`` to its related thread, or start a new thread for it.

        Runs in a savepoint so a failure leaves no partial thread changes behind.
        """
        async with self._session.begin_nested():
            thread = await self.find_related_thread(event)
            if thread is None:
                thread = await self.create_thread(event.title, event.id)
            else:
                await self.add_event_to_thread(thread.slug, event.id)
            return thread.slug
