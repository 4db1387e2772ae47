"""Deterministic rules deciding when a processed event needs human sign-off."""

from __future__ import annotations

from typing import Final

from app.pipeline.models import EventRecord

HIGH_IMPORTANCE_THRESHOLD: Final[float] = 9.0
HIGH_RELEVANCE_THRESHOLD: Final[float] = 8.0

SENSITIVE_CATEGORIES: Final[frozenset[str]] = frozenset(
    {"security", "incident", "outage", "vulnerability"}
)
SECURITY_CATEGORIES: Final[frozenset[str]] = frozenset({"security", "vulnerability"})
SENSITIVE_TOPICS: Final[frozenset[str]] = frozenset({"politics", "finance", "cybersecurity"})
UNCERTAIN_CATEGORIES: Final[frozenset[str]] = frozenset({"trend", "announcement"})

REASON_HIGH_IMPORTANCE: Final[str] = "High importance score (>=9)"
REASON_SECURITY: Final[str] = "Security-related event"
REASON_INCIDENT: Final[str] = "Critical incident/outage"
REASON_HIGH_RELEVANCE: Final[str] = "High user relevance but needs verification"


def review_reason(event: EventRecord) -> str | None:
    """Return why ``event`` must be reviewed, or None. Rules apply in order; first wins."""
    if (event.importance_score or 0) >= HIGH_IMPORTANCE_THRESHOLD:
        return REASON_HIGH_IMPORTANCE

    category = event.category or ""
    if category in SENSITIVE_CATEGORIES and SENSITIVE_TOPICS.intersection(event.topics):
        return REASON_SECURITY if category in SECURITY_CATEGORIES else REASON_INCIDENT

    relevance = event.relevance_score or 0
    if relevance >= HIGH_RELEVANCE_THRESHOLD and category in UNCERTAIN_CATEGORIES:
        return REASON_HIGH_RELEVANCE

    return None


def needs_human_review(event: EventRecord) -> bool:
    return review_reason(event) is not None
