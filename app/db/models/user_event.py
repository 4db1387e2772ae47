from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, utcnow


class UserEvent(Base):
    """Delivery and feedback record linking one user to one event."""

    __tablename__ = "user_events"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_user_events_user_event"),
        Index("ix_user_events_user_relevance", "user_id", "relevance_score"),
        CheckConstraint("rating IS NULL OR rating IN (1, 3, 5)", name="ck_user_events_rating"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), index=True)
    relevance_score: Mapped[float] = mapped_column(Float)

    sent: Mapped[bool] = mapped_column(Boolean, default=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # 1 = not useful, 3 = okay, 5 = very useful
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    opened: Mapped[bool] = mapped_column(Boolean, default=False)
    clicked: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="user_events")
    event = relationship("Event", back_populates="user_events")
