"""Per-user pipeline runs: collect, deduplicate, process, hand off for delivery."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.errors import UserNotEligibleError, UserNotFoundError
from app.db.base import utcnow
from app.db.models.event import Event
from app.db.models.user import User
from app.llm.client import LLMClient
from app.pipeline.manager import Manager, ProcessingOutcome
from app.pipeline.models import (
    EventRecord,
    PipelinePhase,
    RawEvent,
    ReviewStatus,
    UserContext,
)
from app.pipeline.processing_state import ActionKind, ProcessingState
from app.services.collectors import EventCollector, collect_all
from app.services.deduplicator import Deduplicator
from app.services.processing_state_service import ProcessingStateService, StateTransform
from app.services.review_queue import ReviewNotifier, ReviewQueue
from app.services.thread_service import ThreadService
from app.services.user_event_service import UserEventService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeliveryItem:
    event: EventRecord
    relevance_score: float


class DeliveryHandoff(Protocol):
    """Whatever renders and sends the digest. Returns the ids it actually delivered."""

    async def deliver(self, user: UserContext, items: Sequence[DeliveryItem]) -> Sequence[int]: ...


class RunUser(BaseModel):
    user_id: int
    email: str


class CollectionSummary(BaseModel):
    total: int = 0
    new_saved: int = 0
    global_duplicates: int = 0


class ProcessingSummary(BaseModel):
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    events_queued_for_delivery: int = 0


class DeliverySummary(BaseModel):
    sent: int = 0


class PipelineRunSummary(BaseModel):
    user: RunUser
    collection: CollectionSummary = Field(default_factory=CollectionSummary)
    processing: ProcessingSummary = Field(default_factory=ProcessingSummary)
    email: DeliverySummary = Field(default_factory=DeliverySummary)
    stats: dict[str, object] = Field(default_factory=dict)


class ClearUserDataResult(BaseModel):
    user_id: int
    email: str
    user_events_before: int
    deleted_user_events: int


class UserRunReport(BaseModel):
    user_id: int
    success: bool
    summary: PipelineRunSummary | None = None
    error: str | None = None


class BatchRunSummary(BaseModel):
    collected: int
    succeeded: int
    failed: int
    users: list[UserRunReport]


class UserPipelineRunner:
    """Drives one user's run through the phases and records it in their processing state.

    Progress is committed at checkpoints: after collection, after deduplication
    and after each processed event. A run that aborts keeps what was committed
    and always leaves the user's state back in ``idle``.
    """

    def __init__(
        self,
        session: AsyncSession,
        llm_client: LLMClient,
        *,
        collectors: Sequence[EventCollector] = (),
        delivery: DeliveryHandoff | None = None,
        notifier: ReviewNotifier | None = None,
        scan_limit: int | None = None,
    ) -> None:
        self._session = session
        self._collectors = collectors
        self._delivery = delivery
        self._scan_limit = scan_limit or settings.pipeline_event_scan_limit
        self.state = ProcessingStateService(session)
        self.deduplicator = Deduplicator(session, self.state)
        self.user_events = UserEventService(session)
        self.threads = ThreadService(session)
        self.reviews = ReviewQueue(session, notifier)
        self.manager = Manager(
            llm_client,
            rating_history=self.user_events,
            thread_linker=self.threads,
            review_queue=self.reviews,
        )

    async def _load_user(self, user_id: int) -> User:
        user = await self._session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if not user.is_active:
            raise UserNotEligibleError(user_id, "user is inactive")
        if not user.is_verified:
            raise UserNotEligibleError(user_id, "user is not verified")
        return user

    async def run_user_pipeline(
        self,
        user_id: int,
        *,
        events: Sequence[RawEvent] | None = None,
        skip_collection: bool = False,
        skip_delivery: bool = False,
    ) -> PipelineRunSummary:
        user = await self._load_user(user_id)
        context = UserContext.model_validate(user)
        await self.state.get_or_create(user_id, user.email)
        await self._session.commit()

        summary = PipelineRunSummary(user=RunUser(user_id=user_id, email=user.email))
        logger.info("Pipeline run started", extra={"user_id": user_id})
        phase = PipelinePhase.IDLE
        try:
            phase = PipelinePhase.COLLECTING
            raw_events = await self._collect(user_id, events, skip_collection)
            summary.collection.total = len(raw_events)

            phase = PipelinePhase.DEDUPLICATING
            await self._deduplicate(user_id, raw_events, summary.collection)

            phase = PipelinePhase.PROCESSING
            await self._process(user_id, context, summary.processing)

            if not skip_delivery:
                phase = PipelinePhase.SENDING
                summary.email.sent = await self._send(user_id, context)
        except Exception as exc:
            await self._session.rollback()
            logger.error(
                f"Pipeline run failed in {phase}: {exc!r}",
                extra={"user_id": user_id, "phase": phase.value},
            )
            await self._finish(
                user_id,
                lambda state: state.add_error(phase.value, str(exc), type(exc).__name__),
            )
            raise

        state = await self._finish(user_id)
        summary.stats = state.summary()
        logger.info(
            "Pipeline run finished",
            extra={
                "user_id": user_id,
                "new_saved": summary.collection.new_saved,
                "processed": summary.processing.processed,
                "skipped": summary.processing.skipped,
                "errors": summary.processing.errors,
                "sent": summary.email.sent,
            },
        )
        return summary

    async def _enter(self, user_id: int, phase: PipelinePhase) -> None:
        await self.state.update(user_id, lambda state: state.enter_phase(phase))

    async def _finish(
        self, user_id: int, record: StateTransform | None = None
    ) -> ProcessingState:
        def transform(state: ProcessingState) -> None:
            if record is not None:
                record(state)
            state.finish_run()

        state = await self.state.update(user_id, transform)
        await self._session.commit()
        return state

    async def _collect(
        self, user_id: int, events: Sequence[RawEvent] | None, skip_collection: bool
    ) -> list[RawEvent]:
        await self._enter(user_id, PipelinePhase.COLLECTING)
        raw_events = list(events or [])
        if not skip_collection:
            raw_events.extend(await collect_all(self._collectors))

        def record(state: ProcessingState) -> None:
            state.stats.total_events_collected += len(raw_events)
            state.stats.last_collection_time = utcnow()
            state.add_action(ActionKind.COLLECT, f"Collected {len(raw_events)} events")

        await self.state.update(user_id, record)
        await self._session.commit()
        return raw_events

    async def _deduplicate(
        self, user_id: int, raw_events: Sequence[RawEvent], totals: CollectionSummary
    ) -> None:
        await self._enter(user_id, PipelinePhase.DEDUPLICATING)
        for raw in raw_events:
            check, row = await self.deduplicator.save_if_new(raw)
            if row is not None:
                totals.new_saved += 1
            else:
                totals.global_duplicates += 1
                logger.debug(
                    f"Skipping duplicate: {raw.title}",
                    extra={
                        "user_id": user_id,
                        "reason": check.reason,
                        "existing_id": check.existing_id,
                    },
                )

        def record(state: ProcessingState) -> None:
            state.stats.total_duplicates_skipped += totals.global_duplicates
            state.add_action(
                ActionKind.DEDUPLICATE,
                f"Saved {totals.new_saved} new events, "
                f"skipped {totals.global_duplicates} duplicates",
                metadata={"new_saved": totals.new_saved, "duplicates": totals.global_duplicates},
            )

        await self.state.update(user_id, record)
        await self._session.commit()

    async def _candidates(self, user_id: int) -> list[Event]:
        queued = await self.user_events.event_ids_for_user(user_id)
        result = await self._session.execute(
            select(Event)
            .where(
                or_(
                    Event.review_status.is_(None),
                    Event.review_status != ReviewStatus.REJECTED.value,
                )
            )
            .order_by(Event.created_at.desc(), Event.id.desc())
            .limit(self._scan_limit)
        )
        rows = [event for event in result.scalars().all() if event.id not in queued]
        seen = await self.deduplicator.user_duplicates(user_id, [event.id for event in rows])
        return [event for event in rows if event.id not in seen]

    async def _process(
        self, user_id: int, context: UserContext, totals: ProcessingSummary
    ) -> None:
        await self._enter(user_id, PipelinePhase.PROCESSING)
        candidates = await self._candidates(user_id)
        logger.info(f"Processing {len(candidates)} events", extra={"user_id": user_id})

        for row in candidates:
            record = EventRecord.model_validate(row)
            outcome = await self._run_manager(record, context)
            await self._record_outcome(user_id, row, record, outcome, totals)
            await self._session.commit()

        def record_totals(state: ProcessingState) -> None:
            state.stats.total_events_processed += totals.processed
            state.stats.last_processing_time = utcnow()

        await self.state.update(user_id, record_totals)
        await self._session.commit()

    async def _run_manager(self, record: EventRecord, context: UserContext) -> ProcessingOutcome:
        # Writes from a faulted stage may have failed mid-flush; the savepoint discards them
        # so the session stays usable for the rest of the batch
        savepoint = await self._session.begin_nested()
        outcome = await self.manager.process_detailed(record, context)
        if outcome.fault is not None:
            await savepoint.rollback()
        else:
            await savepoint.commit()
        return outcome

    async def _record_outcome(
        self,
        user_id: int,
        row: Event,
        record: EventRecord,
        outcome: ProcessingOutcome,
        totals: ProcessingSummary,
    ) -> None:
        if outcome.result is not None:
            result = outcome.result
            created = await self.user_events.create(user_id, row.id, result.relevance_score)
            _persist_analysis(row, record)
            await self._session.flush()
            await self.deduplicator.mark_user_event_processed(user_id, row.id)
            totals.processed += 1
            if created is not None:
                totals.events_queued_for_delivery += 1
            await self.state.update(
                user_id,
                lambda state: state.add_action(
                    ActionKind.PROCESS,
                    f"Processed with relevance {result.relevance_score:.2f}",
                    event_id=row.id,
                    event_title=row.title,
                    metadata={
                        "category": result.category,
                        "needs_human_review": result.needs_human_review,
                        "thread_slug": result.thread_slug,
                    },
                ),
            )
            return

        if outcome.rejection is not None:
            await self.deduplicator.mark_user_event_processed(user_id, record.id)
            totals.skipped += 1
            return

        fault = outcome.fault
        assert fault is not None
        totals.errors += 1
        # Read ids from ``record``: the savepoint rollback may have expired ``row``

        def record_fault(state: ProcessingState) -> None:
            state.add_error(
                fault.stage.value,
                fault.message,
                fault.error_type,
                event_id=record.id,
                event_title=record.title,
            )
            state.add_action(
                ActionKind.ERROR,
                f"Failed at {fault.stage.value}: {fault.message}",
                event_id=record.id,
                event_title=record.title,
                success=False,
            )

        await self.state.update(user_id, record_fault)

    async def _send(self, user_id: int, context: UserContext) -> int:
        await self._enter(user_id, PipelinePhase.SENDING)
        pending = await self.user_events.pending_delivery(user_id, context.min_importance_score)
        if not pending or self._delivery is None:
            reason = "No events to send" if not pending else "No delivery channel configured"
            await self.state.update(
                user_id,
                lambda state: state.add_action(
                    ActionKind.SEND_EMAIL, reason, metadata={"pending": len(pending)}
                ),
            )
            return 0

        items = []
        for user_event in pending:
            event = EventRecord.model_validate(user_event.event)
            event.relevance_score = user_event.relevance_score
            items.append(DeliveryItem(event=event, relevance_score=user_event.relevance_score))

        try:
            delivered = await self._delivery.deliver(context, items)
        except Exception as exc:
            logger.warning(
                f"Delivery failed: {exc!r}", extra={"user_id": user_id, "pending": len(items)}
            )

            def record_failure(state: ProcessingState) -> None:
                state.add_error(PipelinePhase.SENDING.value, str(exc), type(exc).__name__)
                state.add_action(
                    ActionKind.SEND_EMAIL, f"Delivery failed: {exc}", success=False
                )

            await self.state.update(user_id, record_failure)
            return 0

        sent = await self.user_events.mark_sent(user_id, delivered)

        def record_sent(state: ProcessingState) -> None:
            state.stats.total_emails_sent += sent
            state.stats.last_email_sent_time = utcnow()
            state.add_action(ActionKind.SEND_EMAIL, f"Delivered {sent} events")

        await self.state.update(user_id, record_sent)
        await self._session.commit()
        return sent

    async def clear_user_data(self, user_id: int) -> ClearUserDataResult:
        """Drop the user's delivery records and reset their processing state."""
        user = await self._session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        before = await self.user_events.count_for_user(user_id)
        deleted = await self.user_events.delete_for_user(user_id)

        def reset(state: ProcessingState) -> None:
            state.reset()
            state.add_action(
                ActionKind.CLEAR,
                f"Cleared {deleted} delivery records",
                metadata={"deleted_user_events": deleted},
            )

        await self.state.update(user_id, reset)
        logger.info(
            "User pipeline data cleared",
            extra={"user_id": user_id, "deleted_user_events": deleted},
        )
        return ClearUserDataResult(
            user_id=user_id,
            email=user.email,
            user_events_before=before,
            deleted_user_events=deleted,
        )


def _persist_analysis(row: Event, record: EventRecord) -> None:
    """Write the first successful analysis onto the stored event; later passes leave it alone."""
    if row.ai_processed:
        return
    row.category = record.category
    row.topics = list(record.topics)
    row.summary = record.summary.model_dump(mode="json") if record.summary else None
    row.importance_score = record.importance_score
    row.noise_score = record.noise_score
    row.ai_processed = True
    row.processed_at = utcnow()


async def run_all_active_users(
    session_maker: async_sessionmaker[AsyncSession],
    runner_factory: Callable[[AsyncSession], UserPipelineRunner],
    *,
    collectors: Sequence[EventCollector] = (),
    events: Sequence[RawEvent] | None = None,
    max_concurrency: int | None = None,
) -> BatchRunSummary:
    """Run the pipeline for every active, verified user.

    Collection happens once and every user run deduplicates the same batch, so
    only the first insert of each event wins. Runs for different users proceed
    concurrently up to ``max_concurrency``; one user's failure is reported and
    does not stop the others.
    """
    raw_events = [*(events or []), *(await collect_all(collectors))]

    async with session_maker() as session:
        result = await session.execute(
            select(User.id)
            .where(User.is_active.is_(True), User.is_verified.is_(True))
            .order_by(User.id)
        )
        user_ids = list(result.scalars().all())

    semaphore = asyncio.Semaphore(max_concurrency or settings.pipeline_max_concurrent_users)

    async def run_one(user_id: int) -> UserRunReport:
        async with semaphore, session_maker() as session:
            runner = runner_factory(session)
            try:
                summary = await runner.run_user_pipeline(
                    user_id, events=raw_events, skip_collection=True
                )
            except Exception as exc:
                logger.exception(
                    f"Pipeline run failed for user {user_id}", extra={"user_id": user_id}
                )
                return UserRunReport(user_id=user_id, success=False, error=str(exc))
            return UserRunReport(user_id=user_id, success=True, summary=summary)

    reports = await asyncio.gather(*(run_one(user_id) for user_id in user_ids))
    succeeded = sum(1 for report in reports if report.success)
    logger.info(
        "Batch pipeline run finished",
        extra={"users": len(reports), "succeeded": succeeded, "collected": len(raw_events)},
    )
    return BatchRunSummary(
        collected=len(raw_events),
        succeeded=succeeded,
        failed=len(reports) - succeeded,
        users=list(reports),
    )


@dataclass(frozen=True)
class PipelineRunnerFactory:
    """Builds session-scoped runners sharing one LLM client, delivery channel and notifier."""

    llm_client: LLMClient
    collectors: Sequence[EventCollector] = ()
    delivery: DeliveryHandoff | None = None
    notifier: ReviewNotifier | None = None

    def __call__(self, session: AsyncSession) -> UserPipelineRunner:
        return UserPipelineRunner(
            session,
            self.llm_client,
            collectors=self.collectors,
            delivery=self.delivery,
            notifier=self.notifier,
        )

    async def run_all(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        events: Sequence[RawEvent] | None = None,
    ) -> BatchRunSummary:
        return await run_all_active_users(
            session_maker, self, collectors=self.collectors, events=events
        )


def pipeline_runner_factory_provider(
    llm_client: LLMClient,
    *,
    collectors: Sequence[EventCollector] = (),
    delivery: DeliveryHandoff | None = None,
    notifier: ReviewNotifier | None = None,
) -> PipelineRunnerFactory:
    return PipelineRunnerFactory(
        llm_client, collectors=tuple(collectors), delivery=delivery, notifier=notifier
    )
