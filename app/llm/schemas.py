from __future__ import annotations

from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class EventCategory(StrEnum):
    RELEASE = "release"
    INCIDENT = "incident"
    SECURITY = "security"
    UPGRADE = "upgrade"
    TREND = "trend"
    POLICY = "policy"
    # Assigned by collectors or human edits, never offered to the classifier.
    ANNOUNCEMENT = "announcement"
    OUTAGE = "outage"
    VULNERABILITY = "vulnerability"


CLASSIFIER_CATEGORIES: tuple[EventCategory, ...] = (
    EventCategory.RELEASE,
    EventCategory.INCIDENT,
    EventCategory.SECURITY,
    EventCategory.UPGRADE,
    EventCategory.TREND,
    EventCategory.POLICY,
)

CLASSIFIER_TOPICS: tuple[str, ...] = (
    "technology",
    "politics",
    "finance",
    "ai",
    "cloud",
    "sports",
    "startups",
)

# Everything a user may list as an interest; a superset of the classifier topics.
INTEREST_TOPICS: tuple[str, ...] = (
    "technology",
    "politics",
    "finance",
    "ai",
    "cloud",
    "cybersecurity",
    "web3",
    "devops",
    "sports",
    "startups",
    "science",
    "business",
    "geopolitics",
)


def _normalize_terms(values: list[str]) -> list[str]:
    """Trim, lower-case, drop empty values and de-duplicate, keeping order."""
    normalized: list[str] = []
    seen: set[str] = set()
    for item in values:
        cleaned = item.strip().casefold()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        normalized.append(cleaned)
    return normalized


class NoiseFilterResult(BaseModel):
    """Structured output from LLM for the noise filter stage."""

    important: bool
    score: float = Field(..., ge=1, le=10)
    reason: str = ""


class ClassificationResult(BaseModel):
    """Structured output from LLM for the classification stage."""

    category: EventCategory
    topics: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0, le=1)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().casefold()
        return value

    @field_validator("topics")
    @classmethod
    def keep_known_topics(cls, value: list[str]) -> list[str]:
        """Drop topics outside the known vocabulary."""
        return [topic for topic in _normalize_terms(value) if topic in INTEREST_TOPICS]


class EventSummary(BaseModel):
    """Structured summary produced by the summarizer stage.

    Fields are lenient on purpose: completeness and length are judged by the
    output guard, not by parsing.
    """

    model_config = ConfigDict(populate_by_name=True)

    tldr: str = ""
    bullets: list[str] = Field(default_factory=list)
    impact: str = ""
    action_required: str = Field(
        default="None",
        validation_alias=AliasChoices("action_required", "actionRequired"),
    )

    @field_validator("bullets")
    @classmethod
    def strip_bullets(cls, value: list[str]) -> list[str]:
        return [bullet.strip() for bullet in value if bullet and bullet.strip()]
