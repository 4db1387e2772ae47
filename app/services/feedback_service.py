"""Turns user ratings into per-user recommendations and system-wide stats."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Final

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import UserNotFoundError
from app.db.models.event import Event
from app.db.models.user import User
from app.db.models.user_event import UserEvent

logger = logging.getLogger(__name__)

USER_FEEDBACK_WINDOW: Final[int] = 100
LOW_OVERALL_AVERAGE: Final[float] = 3.0
LOW_CATEGORY_AVERAGE: Final[float] = 2.5
LOW_CATEGORY_MIN_RATINGS: Final[int] = 5
HIGH_TOPIC_AVERAGE: Final[float] = 4.0
HIGH_TOPIC_MIN_RATINGS: Final[int] = 3
EVENT_MIN_RATINGS: Final[int] = 3
EVENT_RANKING_SIZE: Final[int] = 10


@dataclass(frozen=True, slots=True)
class RatingStats:
    avg_rating: float
    count: int


@dataclass(frozen=True, slots=True)
class Recommendation:
    type: str
    message: str
    action: str
    data: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class UserFeedbackAnalysis:
    has_data: bool
    total_ratings: int = 0
    avg_rating: float = 0.0
    category_performance: dict[str, RatingStats] = field(default_factory=dict)
    topic_performance: dict[str, RatingStats] = field(default_factory=dict)
    source_performance: dict[str, RatingStats] = field(default_factory=dict)
    recommendations: list[Recommendation] = field(default_factory=list)


def _averages(groups: dict[str, list[int]]) -> dict[str, RatingStats]:
    return {
        key: RatingStats(avg_rating=sum(ratings) / len(ratings), count=len(ratings))
        for key, ratings in groups.items()
    }


def build_recommendations(
    analysis: UserFeedbackAnalysis, interests: Iterable[str]
) -> list[Recommendation]:
    known_interests = set(interests)
    recommendations: list[Recommendation] = []

    if analysis.avg_rating < LOW_OVERALL_AVERAGE:
        recommendations.append(
            Recommendation(
                type="overall_low",
                message="Your overall satisfaction is low. "
                "Consider updating your interests or keywords.",
                action="update_preferences",
            )
        )

    for category, stats in analysis.category_performance.items():
        if stats.avg_rating < LOW_CATEGORY_AVERAGE and stats.count > LOW_CATEGORY_MIN_RATINGS:
            recommendations.append(
                Recommendation(
                    type="category_underperforming",
                    message=f'You rarely find "{category}" events useful. '
                    "Consider filtering them out.",
                    action="adjust_category",
                    data={"category": category},
                )
            )

    for topic, stats in analysis.topic_performance.items():
        if (
            stats.avg_rating >= HIGH_TOPIC_AVERAGE
            and stats.count > HIGH_TOPIC_MIN_RATINGS
            and topic not in known_interests
        ):
            recommendations.append(
                Recommendation(
                    type="topic_suggestion",
                    message=f'You seem to enjoy "{topic}" content. '
                    "Consider adding it to your interests.",
                    action="add_interest",
                    data={"topic": topic},
                )
            )

    return recommendations


class FeedbackAnalyzer:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def analyze_user_feedback(self, user_id: int) -> UserFeedbackAnalysis:
        user = await self._session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        result = await self._session.execute(
            select(UserEvent.rating, Event.category, Event.topics, Event.source)
            .join(Event, Event.id == UserEvent.event_id)
            .where(UserEvent.user_id == user_id, UserEvent.rating.is_not(None))
            .order_by(UserEvent.rated_at.desc(), UserEvent.id.desc())
            .limit(USER_FEEDBACK_WINDOW)
        )
        rows = result.all()
        if not rows:
            return UserFeedbackAnalysis(has_data=False)

        by_category: dict[str, list[int]] = defaultdict(list)
        by_topic: dict[str, list[int]] = defaultdict(list)
        by_source: dict[str, list[int]] = defaultdict(list)
        ratings: list[int] = []
        for rating, category, topics, source in rows:
            ratings.append(rating)
            by_category[category or "uncategorized"].append(rating)
            for topic in topics or []:
                by_topic[topic].append(rating)
            by_source[source].append(rating)

        analysis = UserFeedbackAnalysis(
            has_data=True,
            total_ratings=len(ratings),
            avg_rating=sum(ratings) / len(ratings),
            category_performance=_averages(by_category),
            topic_performance=_averages(by_topic),
            source_performance=_averages(by_source),
        )
        analysis.recommendations = build_recommendations(analysis, user.interests or [])
        logger.info(
            "Feedback analyzed",
            extra={
                "user_id": user_id,
                "total_ratings": analysis.total_ratings,
                "avg_rating": round(analysis.avg_rating, 2),
            },
        )
        return analysis

    async def system_feedback(self) -> dict[str, Any]:
        result = await self._session.execute(
            select(UserEvent.rating, Event.id, Event.title, Event.category)
            .join(Event, Event.id == UserEvent.event_id)
            .where(UserEvent.rating.is_not(None))
        )
        rows = result.all()
        distribution = {1: 0, 3: 0, 5: 0}
        per_event: dict[int, dict[str, Any]] = {}
        by_category: dict[str, list[int]] = defaultdict(list)
        for rating, event_id, title, category in rows:
            distribution[rating] = distribution.get(rating, 0) + 1
            by_category[category or "uncategorized"].append(rating)
            entry = per_event.setdefault(
                event_id, {"event_id": event_id, "title": title, "ratings": []}
            )
            entry["ratings"].append(rating)

        ranked = [
            {
                "event_id": entry["event_id"],
                "title": entry["title"],
                "avg_rating": sum(entry["ratings"]) / len(entry["ratings"]),
                "count": len(entry["ratings"]),
            }
            for entry in per_event.values()
            if len(entry["ratings"]) >= EVENT_MIN_RATINGS
        ]
        total = len(rows)
        return {
            "total_feedback": total,
            "avg_rating": sum(row[0] for row in rows) / total if total else 0.0,
            "rating_distribution": distribution,
            "category_performance": {
                key: {"avg_rating": stats.avg_rating, "count": stats.count}
                for key, stats in _averages(by_category).items()
            },
            "top_performing_events": sorted(ranked, key=lambda e: -e["avg_rating"])[
                :EVENT_RANKING_SIZE
            ],
            "low_performing_events": sorted(ranked, key=lambda e: e["avg_rating"])[
                :EVENT_RANKING_SIZE
            ],
        }
