"""Request models for the pipeline trigger endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from app.pipeline.models import RawEvent


class PipelineRunRequest(BaseModel):
    """Optional events pushed with the trigger, plus phase switches."""

    events: list[RawEvent] = Field(default_factory=list, max_length=500)
    skip_collection: bool = False
    skip_delivery: bool = False


class BatchRunRequest(BaseModel):
    events: list[RawEvent] = Field(default_factory=list, max_length=500)
