"""Response models for the pipeline trigger endpoints."""

from __future__ import annotations

from pydantic import BaseModel

from app.pipeline.processing_state import ActionEntry, ErrorEntry
from app.services.pipeline_runner import (
    BatchRunSummary,
    ClearUserDataResult,
    PipelineRunSummary,
)


class ProcessingStateResponse(BaseModel):
    user_id: int
    summary: dict[str, object]
    recent_errors: list[ErrorEntry]
    action_history: list[ActionEntry]
    version: int


__all__ = [
    "BatchRunSummary",
    "ClearUserDataResult",
    "PipelineRunSummary",
    "ProcessingStateResponse",
]
