"""Response models for the reader-facing user endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PreferencesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    interests: list[str]
    keywords: list[str]
    tone: str
    min_importance_score: float
    is_onboarded: bool


class RatedEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: int
    rating: int
    rated_at: datetime | None = None


class RatingStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    avg_rating: float
    count: int


class RecommendationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    message: str
    action: str
    data: dict[str, str] = {}


class FeedbackAnalysisResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    has_data: bool
    total_ratings: int
    avg_rating: float
    category_performance: dict[str, RatingStatsResponse]
    topic_performance: dict[str, RatingStatsResponse]
    source_performance: dict[str, RatingStatsResponse]
    recommendations: list[RecommendationResponse]
