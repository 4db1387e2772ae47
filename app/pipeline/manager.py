"""Sequences the stage agents into one decision pass per (event, user) pair."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from app.agents.classifier import ClassifierAgent
from app.agents.noise_filter import NoiseFilterAgent, is_noise
from app.agents.relevance import RatingHistory, RelevanceAgent
from app.agents.summarizer import SummarizerAgent
from app.core.config import settings
from app.llm.client import LLMClient
from app.pipeline.guardrails import input_guard, output_guard
from app.pipeline.models import EventRecord, PipelineStage, ProcessingResult, UserContext
from app.pipeline.review_policy import review_reason

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ThreadLinker(Protocol):
    async def link_event(self, event: EventRecord) -> str | None:
        """Attach ``event`` to a matching or new thread and return its slug."""
        ...


class ReviewSink(Protocol):
    async def add_to_queue(self, event: EventRecord, reason: str) -> Any: ...


@dataclass(frozen=True, slots=True)
class Rejection:
    """The event was turned away by a gating stage. Expected, not an error."""

    stage: PipelineStage
    reason: str


@dataclass(frozen=True, slots=True)
class StageFault:
    """A stage failed unexpectedly (LLM, storage, timeout or schema mismatch)."""

    stage: PipelineStage
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class ProcessingOutcome:
    result: ProcessingResult | None = None
    rejection: Rejection | None = None
    fault: StageFault | None = None

    @property
    def accepted(self) -> bool:
        return self.result is not None


@dataclass(slots=True)
class _Cursor:
    stage: PipelineStage = PipelineStage.INPUT_GUARD


class _Rejected(Exception):
    def __init__(self, stage: PipelineStage, reason: str) -> None:
        super().__init__(reason)
        self.stage = stage
        self.reason = reason


class Manager:
    """Runs INPUT_GUARD through REVIEW_DECISION for one event and one user.

    Never raises: rejections and faults come back as a ``ProcessingOutcome``
    without a result. Work happens on a copy of the event; the caller's record
    is only updated once every gating stage has passed.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        *,
        rating_history: RatingHistory,
        thread_linker: ThreadLinker | None = None,
        review_queue: ReviewSink | None = None,
        stage_timeout: float | None = None,
    ) -> None:
        self.noise_filter = NoiseFilterAgent(llm_client)
        self.classifier = ClassifierAgent(llm_client)
        self.summarizer = SummarizerAgent(llm_client)
        self.relevance = RelevanceAgent(rating_history)
        self._thread_linker = thread_linker
        self._review_queue = review_queue
        self._stage_timeout = stage_timeout or settings.llm_timeout_seconds

    async def process(self, event: EventRecord, user: UserContext) -> ProcessingResult | None:
        outcome = await self.process_detailed(event, user)
        return outcome.result

    async def process_detailed(self, event: EventRecord, user: UserContext) -> ProcessingOutcome:
        cursor = _Cursor()
        log_context = {"event_id": event.id, "user_id": user.user_id}
        try:
            result = await self._run_stages(event, user, cursor)
        except _Rejected as rejected:
            logger.info(
                f"Event rejected at {rejected.stage}: {rejected.reason}",
                extra={**log_context, "stage": rejected.stage.value},
            )
            return ProcessingOutcome(rejection=Rejection(rejected.stage, rejected.reason))
        except Exception as exc:
            logger.warning(
                f"Stage {cursor.stage} failed for event {event.id}: {exc!r}",
                extra={**log_context, "stage": cursor.stage.value},
                exc_info=exc,
            )
            return ProcessingOutcome(
                fault=StageFault(cursor.stage, type(exc).__name__, str(exc) or type(exc).__name__)
            )

        logger.info(
            f"Event processed (relevance: {result.relevance_score:.2f})",
            extra={**log_context, "stage": PipelineStage.DONE.value},
        )
        return ProcessingOutcome(result=result)

    async def _run_stages(
        self, event: EventRecord, user: UserContext, cursor: _Cursor
    ) -> ProcessingResult:
        working = event.model_copy(deep=True)

        guard = input_guard(working, user)
        if not guard.valid:
            raise _Rejected(PipelineStage.INPUT_GUARD, guard.reason or "Invalid input")

        cursor.stage = PipelineStage.NOISE_FILTER
        noise = await self._timed(self.noise_filter.run(working, user))
        if is_noise(noise):
            raise _Rejected(cursor.stage, f"Filtered as noise (score: {noise.score})")
        working.noise_score = noise.score
        working.importance_score = noise.score

        cursor.stage = PipelineStage.CLASSIFY
        classification = await self._timed(self.classifier.run(working, user))
        working.category = classification.category.value
        working.topics = list(classification.topics)

        cursor.stage = PipelineStage.THREAD_LINK
        thread_slug = await self._link_thread(working, user)

        cursor.stage = PipelineStage.SUMMARIZE
        summary = await self._timed(self.summarizer.run(working, user))

        cursor.stage = PipelineStage.OUTPUT_GUARD
        checked = output_guard(summary)
        if not checked.valid:
            raise _Rejected(cursor.stage, ", ".join(checked.errors))
        working.summary = summary

        cursor.stage = PipelineStage.RELEVANCE_SCORE
        relevance = await self.relevance.run(working, user)
        working.relevance_score = relevance.score

        cursor.stage = PipelineStage.REVIEW_DECISION
        reason = review_reason(working)
        working.needs_human_review = reason is not None
        if reason is not None:
            working.review_reason = reason
            if self._review_queue is not None:
                await self._review_queue.add_to_queue(working, reason)

        cursor.stage = PipelineStage.DONE
        _apply_analysis(event, working)
        return ProcessingResult(
            needs_human_review=working.needs_human_review,
            review_reason=reason,
            category=working.category,
            topics=list(working.topics),
            summary=summary,
            importance_score=noise.score,
            noise_score=noise.score,
            relevance_score=relevance.score,
            relevance_breakdown=relevance.breakdown,
            thread_slug=thread_slug,
        )

    async def _link_thread(self, event: EventRecord, user: UserContext) -> str | None:
        if self._thread_linker is None:
            return None
        try:
            return await self._thread_linker.link_event(event)
        except Exception as exc:
            logger.warning(
                f"Thread linking failed, continuing: {exc!r}",
                extra={
                    "event_id": event.id,
                    "user_id": user.user_id,
                    "stage": PipelineStage.THREAD_LINK.value,
                },
            )
            return None

    def _timed(self, awaitable: Awaitable[T]) -> Awaitable[T]:
        return asyncio.wait_for(awaitable, timeout=self._stage_timeout)


def _apply_analysis(target: EventRecord, source: EventRecord) -> None:
    target.category = source.category
    target.topics = source.topics
    target.summary = source.summary
    target.importance_score = source.importance_score
    target.noise_score = source.noise_score
    target.relevance_score = source.relevance_score
    target.needs_human_review = source.needs_human_review
    target.review_reason = source.review_reason
