"""Request models for the operator endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from app.llm.schemas import EventSummary
from app.services.review_queue import DEFAULT_REVIEWER


class ApproveReviewRequest(BaseModel):
    reviewer: str = Field(default=DEFAULT_REVIEWER, min_length=1, max_length=200)


class RejectReviewRequest(BaseModel):
    reviewer: str = Field(default=DEFAULT_REVIEWER, min_length=1, max_length=200)
    reason: str = Field(default="", max_length=200)


class EditReviewRequest(BaseModel):
    """Replacement values for an event under review. Omitted fields are left alone."""

    reviewer: str = Field(default=DEFAULT_REVIEWER, min_length=1, max_length=200)
    title: str | None = Field(default=None, min_length=1, max_length=500)
    content: str | None = None
    summary: EventSummary | None = None
    category: str | None = Field(default=None, max_length=32)
    topics: list[str] | None = None
    importance_score: float | None = Field(default=None, ge=1, le=10)

    def updates(self) -> dict[str, object]:
        changes = self.model_dump(exclude_unset=True, exclude={"reviewer"}, mode="json")
        return {field: value for field, value in changes.items() if value is not None}
