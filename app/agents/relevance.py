"""Per-user relevance scoring.

Pure arithmetic over the event, the user's preferences and their rating
history; no LLM call is involved.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final, Protocol

from app.pipeline.models import EventRecord, RelevanceBreakdown, UserContext

DEFAULT_BASE_SCORE: Final[float] = 5.0
KEYWORD_WEIGHT: Final[float] = 0.5
FEEDBACK_WEIGHT: Final[float] = 0.3
TOPIC_WEIGHT: Final[float] = 0.3
NEUTRAL_RATING: Final[float] = 3.0
RATING_HISTORY_LIMIT: Final[int] = 50
MIN_SCORE: Final[float] = 1.0
MAX_SCORE: Final[float] = 10.0


class RatingHistory(Protocol):
    async def recent_ratings(self, user_id: int, limit: int = RATING_HISTORY_LIMIT) -> list[int]:
        """Most recent explicit ratings the user gave, newest first."""
        ...


@dataclass(frozen=True, slots=True)
class RelevanceScore:
    score: float
    breakdown: RelevanceBreakdown


def score_relevance(
    event: EventRecord, user: UserContext, ratings: Sequence[int] = ()
) -> RelevanceScore:
    base = event.importance_score if event.importance_score is not None else DEFAULT_BASE_SCORE

    title = event.title.casefold()
    keyword_matches = sum(
        1 for keyword in user.keywords if keyword.strip() and keyword.casefold() in title
    )
    keyword_boost = KEYWORD_WEIGHT * keyword_matches

    recent = list(ratings)[:RATING_HISTORY_LIMIT]
    feedback_adjustment = 0.0
    if recent:
        average = sum(recent) / len(recent)
        feedback_adjustment = FEEDBACK_WEIGHT * (average - NEUTRAL_RATING)

    interests = set(user.interests)
    topic_matches = sum(1 for topic in set(event.topics) if topic in interests)
    topic_alignment = TOPIC_WEIGHT * topic_matches

    raw = base + keyword_boost + feedback_adjustment + topic_alignment
    score = max(MIN_SCORE, min(MAX_SCORE, raw))
    return RelevanceScore(
        score=score,
        breakdown=RelevanceBreakdown(
            base_score=base,
            keyword_boost=keyword_boost,
            feedback_adjustment=feedback_adjustment,
            topic_alignment=topic_alignment,
            keyword_matches=keyword_matches,
            topic_matches=topic_matches,
            ratings_considered=len(recent),
        ),
    )


class RelevanceAgent:
    def __init__(self, rating_history: RatingHistory) -> None:
        self._rating_history = rating_history

    async def run(self, event: EventRecord, user: UserContext) -> RelevanceScore:
        ratings = await self._rating_history.recent_ratings(user.user_id, RATING_HISTORY_LIMIT)
        return score_relevance(event, user, ratings)
