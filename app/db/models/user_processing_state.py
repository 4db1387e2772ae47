from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, utcnow


class UserProcessingState(Base):
    """Durable per-user pipeline bookkeeping.

    Rows are written only through ``ProcessingStateService.update``, which bumps
    ``version`` with a conditional UPDATE.
    """

    __tablename__ = "user_processing_states"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True
    )
    email: Mapped[str] = mapped_column(String(320), index=True)
    processed_event_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    stats: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    current_state: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    recent_errors: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    action_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="processing_state")
