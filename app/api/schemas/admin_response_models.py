"""Response models for the operator endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class ReviewEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source: str
    title: str
    url: str | None = None
    category: str | None = None
    topics: list[str] = []
    importance_score: float | None = None
    summary: dict[str, Any] | None = None
    needs_human_review: bool
    review_status: str | None = None
    review_reason: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None


class PendingReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event: ReviewEventResponse
    affected_users: int
    review_reason: str | None = None


class ReviewQueueStatsResponse(BaseModel):
    pending: int
    approved: int
    rejected: int
    edited: int
    total: int


class RejectReviewResponse(BaseModel):
    event: ReviewEventResponse
    removed_user_events: int


class SystemStatsResponse(BaseModel):
    total_events: int
    processed_events: int
    pending_reviews: int
    total_users: int
    active_users: int
    active_threads: int
    delivered_user_events: int


class EventRatingSummary(BaseModel):
    event_id: int
    title: str
    avg_rating: float
    count: int


class SystemFeedbackResponse(BaseModel):
    total_feedback: int
    avg_rating: float
    rating_distribution: dict[int, int]
    category_performance: dict[str, dict[str, float]]
    top_performing_events: list[EventRatingSummary]
    low_performing_events: list[EventRatingSummary]
