"""Per-user pipeline bookkeeping as a plain in-memory model.

``ProcessingStateService`` loads a snapshot, applies one of these mutators to a
copy and writes it back with an optimistic version check.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, Field

from app.pipeline.models import PipelinePhase

MAX_RECENT_ERRORS: Final[int] = 10
MAX_ACTION_HISTORY: Final[int] = 20


def _now() -> datetime:
    return datetime.now(UTC)


class ActionKind(StrEnum):
    COLLECT = "collect"
    DEDUPLICATE = "deduplicate"
    PROCESS = "process"
    SEND_EMAIL = "send_email"
    SKIP_DUPLICATE = "skip_duplicate"
    ERROR = "error"
    CLEAR = "clear"


class ProcessingStats(BaseModel):
    total_events_collected: int = 0
    total_events_processed: int = 0
    total_emails_sent: int = 0
    total_duplicates_skipped: int = 0
    total_errors_encountered: int = 0
    last_collection_time: datetime | None = None
    last_processing_time: datetime | None = None
    last_email_sent_time: datetime | None = None


class CurrentState(BaseModel):
    is_processing: bool = False
    current_phase: PipelinePhase = PipelinePhase.IDLE
    last_state_update: datetime | None = None


class ErrorEntry(BaseModel):
    timestamp: datetime = Field(default_factory=_now)
    phase: str
    event_id: str | None = None
    event_title: str | None = None
    error_message: str
    error_type: str


class ActionEntry(BaseModel):
    timestamp: datetime = Field(default_factory=_now)
    action: ActionKind
    details: str
    event_id: str | None = None
    event_title: str | None = None
    success: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)


def _append_bounded(entries: list[Any], entry: Any, capacity: int) -> list[Any]:
    """Append keeping the ``capacity`` most recent entries, ordered by timestamp."""
    ordered = sorted([*entries, entry], key=lambda item: item.timestamp)
    return ordered[-capacity:]


class ProcessingState(BaseModel):
    user_id: int
    email: str
    processed_event_ids: list[str] = Field(default_factory=list)
    stats: ProcessingStats = Field(default_factory=ProcessingStats)
    current_state: CurrentState = Field(default_factory=CurrentState)
    recent_errors: list[ErrorEntry] = Field(default_factory=list)
    action_history: list[ActionEntry] = Field(default_factory=list)
    version: int = 1
    updated_at: datetime | None = None

    def enter_phase(self, phase: PipelinePhase) -> None:
        self.current_state.current_phase = phase
        self.current_state.is_processing = phase not in (PipelinePhase.IDLE, PipelinePhase.ERROR)
        self.current_state.last_state_update = _now()

    def finish_run(self) -> None:
        self.current_state.current_phase = PipelinePhase.IDLE
        self.current_state.is_processing = False
        self.current_state.last_state_update = _now()

    def add_action(
        self,
        action: ActionKind,
        details: str,
        *,
        event_id: object | None = None,
        event_title: str | None = None,
        success: bool = True,
        metadata: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        entry = ActionEntry(
            timestamp=timestamp or _now(),
            action=action,
            details=details,
            event_id=None if event_id is None else str(event_id),
            event_title=event_title,
            success=success,
            metadata=metadata or {},
        )
        self.action_history = _append_bounded(self.action_history, entry, MAX_ACTION_HISTORY)

    def add_error(
        self,
        phase: str,
        error_message: str,
        error_type: str,
        *,
        event_id: object | None = None,
        event_title: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        entry = ErrorEntry(
            timestamp=timestamp or _now(),
            phase=phase,
            event_id=None if event_id is None else str(event_id),
            event_title=event_title,
            error_message=error_message,
            error_type=error_type,
        )
        self.recent_errors = _append_bounded(self.recent_errors, entry, MAX_RECENT_ERRORS)
        self.stats.total_errors_encountered += 1

    def is_event_processed(self, event_id: object) -> bool:
        return str(event_id) in self.processed_event_ids

    def mark_event_processed(self, event_id: object) -> None:
        key = str(event_id)
        if key not in self.processed_event_ids:
            self.processed_event_ids.append(key)

    def reset(self) -> None:
        """Forget everything this user's runs have recorded."""
        self.processed_event_ids = []
        self.stats = ProcessingStats()
        self.recent_errors = []
        self.action_history = []
        self.current_state = CurrentState(last_state_update=_now())

    def summary(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "stats": self.stats.model_dump(mode="json"),
            "current_state": self.current_state.model_dump(mode="json"),
            "total_processed_events": len(self.processed_event_ids),
            "recent_error_count": len(self.recent_errors),
            "recent_actions_count": len(self.action_history),
            "last_updated": self.updated_at.isoformat() if self.updated_at else None,
        }
