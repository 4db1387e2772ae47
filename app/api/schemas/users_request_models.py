"""Request models for the reader-facing user endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from app.llm.schemas import INTEREST_TOPICS
from app.pipeline.models import SummaryTone
from app.services.user_service import MAX_INTERESTS


class PreferencesUpdateRequest(BaseModel):
    """Preference fields to change. Omitted fields keep their current value."""

    interests: list[str] | None = Field(
        default=None,
        min_length=1,
        max_length=MAX_INTERESTS,
        description=f"Between 1 and {MAX_INTERESTS} interests from the known vocabulary",
        examples=[["ai", "cloud"]],
    )
    keywords: list[str] | None = Field(default=None, max_length=20, examples=[["kubernetes"]])
    tone: SummaryTone | None = None
    min_importance_score: float | None = Field(default=None, ge=1, le=10)

    @field_validator("interests")
    @classmethod
    def validate_interests(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        normalized: list[str] = []
        for item in value:
            interest = item.strip().casefold()
            if interest not in INTEREST_TOPICS:
                raise ValueError(f"Unknown interest: {item!r}")
            if interest not in normalized:
                normalized.append(interest)
        return normalized

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [keyword.strip() for keyword in value if keyword.strip()]


class RateEventRequest(BaseModel):
    """1 = not useful, 3 = okay, 5 = very useful."""

    rating: int = Field(..., examples=[5])
