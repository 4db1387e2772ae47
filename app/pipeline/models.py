"""In-memory models shared by the pipeline stages, services and API."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.llm.schemas import EventSummary


class EventSource(StrEnum):
    RSS = "rss"
    HACKERNEWS = "hackernews"
    GITHUB = "github"
    REDDIT = "reddit"
    MANUAL = "manual"


class ReviewStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EDITED = "edited"


class SummaryTone(StrEnum):
    CONCISE = "concise"
    DETAILED = "detailed"
    TECHNICAL = "technical"


class PipelinePhase(StrEnum):
    IDLE = "idle"
    COLLECTING = "collecting"
    DEDUPLICATING = "deduplicating"
    PROCESSING = "processing"
    SENDING = "sending"
    ERROR = "error"


class PipelineStage(StrEnum):
    """Stages of one Manager pass, in execution order."""

    INPUT_GUARD = "input_guard"
    NOISE_FILTER = "noise_filter"
    CLASSIFY = "classify"
    THREAD_LINK = "thread_link"
    SUMMARIZE = "summarize"
    OUTPUT_GUARD = "output_guard"
    RELEVANCE_SCORE = "relevance_score"
    REVIEW_DECISION = "review_decision"
    DONE = "done"


class RawEvent(BaseModel):
    """An event as produced by a collector, before any AI processing."""

    source: EventSource
    source_id: str | None = None
    title: str
    content: str = ""
    url: str | None = None
    published_at: datetime | None = None
    topics: list[str] = Field(default_factory=list)
    raw_data: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def require_identity(self) -> RawEvent:
        if not self.source_id and not self.url:
            raise ValueError("Raw events need a source_id or a url")
        return self


class EventRecord(BaseModel):
    """Canonical in-memory event passed through the pipeline.

    ``relevance_score`` is per user and only lives here and on the user's
    delivery record, never on the stored event.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    source: EventSource
    source_id: str | None = None
    title: str
    content: str = ""
    url: str | None = None
    published_at: datetime | None = None
    category: str | None = None
    topics: list[str] = Field(default_factory=list)
    importance_score: float | None = None
    noise_score: float | None = None
    relevance_score: float | None = None
    summary: EventSummary | None = None
    needs_human_review: bool = False
    review_status: ReviewStatus | None = None
    review_reason: str | None = None
    ai_processed: bool = False
    created_at: datetime | None = None


class UserContext(BaseModel):
    """What the pipeline needs to know about the user it runs for."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    user_id: int = Field(validation_alias="id")
    email: str
    interests: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    tone: SummaryTone = SummaryTone.CONCISE
    min_importance_score: float = 5.0


class RelevanceBreakdown(BaseModel):
    base_score: float
    keyword_boost: float
    feedback_adjustment: float
    topic_alignment: float
    keyword_matches: int = 0
    topic_matches: int = 0
    ratings_considered: int = 0


class ProcessingResult(BaseModel):
    """Normalized outcome of a successful Manager pass for one (event, user) pair."""

    success: bool = True
    needs_human_review: bool
    review_reason: str | None = None
    category: str
    topics: list[str]
    summary: EventSummary
    importance_score: float
    noise_score: float
    relevance_score: float
    relevance_breakdown: RelevanceBreakdown
    thread_slug: str | None = None
