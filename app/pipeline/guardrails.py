"""Cheap deterministic checks around the expensive pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

from app.llm.schemas import EventSummary
from app.pipeline.models import EventRecord, UserContext

MIN_TITLE_LENGTH: Final[int] = 5
MAX_TITLE_LENGTH: Final[int] = 500
MAX_TLDR_LENGTH: Final[int] = 200
MAX_BULLET_LENGTH: Final[int] = 300

SPAM_KEYWORDS: Final[tuple[str, ...]] = ("meme", "upvote if", "click here", "buy now")

# Hedging language is treated as a hallucination signal.
UNCERTAIN_PHRASES: Final[tuple[str, ...]] = (
    "i think",
    "probably",
    "might be",
    "could be",
    "not sure",
    "unclear",
    "seems like",
)


@dataclass(frozen=True)
class InputGuardResult:
    valid: bool
    reason: str | None = None


@dataclass(frozen=True)
class OutputGuardResult:
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def input_guard(event: EventRecord, user: UserContext | None = None) -> InputGuardResult:
    """Reject events that are malformed, spammy, or miss all of the user's keywords."""
    title = event.title or ""
    if len(title) < MIN_TITLE_LENGTH:
        return InputGuardResult(valid=False, reason="Title too short")
    if len(title) > MAX_TITLE_LENGTH:
        return InputGuardResult(valid=False, reason="Title too long")

    lowered_title = title.lower()
    if any(keyword in lowered_title for keyword in SPAM_KEYWORDS):
        return InputGuardResult(valid=False, reason="Spam detected")

    keywords = [keyword.lower() for keyword in (user.keywords if user else []) if keyword]
    if keywords:
        lowered_content = (event.content or "").lower()
        if not any(k in lowered_title or k in lowered_content for k in keywords):
            return InputGuardResult(valid=False, reason="No matching keywords")

    return InputGuardResult(valid=True)


def output_guard(summary: EventSummary) -> OutputGuardResult:
    """Collect every problem with a generated summary."""
    errors: list[str] = []

    if not summary.tldr:
        errors.append("Missing TL;DR")
    if not summary.bullets:
        errors.append("Missing bullet points")

    if len(summary.tldr) > MAX_TLDR_LENGTH:
        errors.append(f"TL;DR too long (max {MAX_TLDR_LENGTH} chars)")
    for index, bullet in enumerate(summary.bullets, start=1):
        if len(bullet) > MAX_BULLET_LENGTH:
            errors.append(f"Bullet {index} too long")

    text = " ".join([summary.tldr, *summary.bullets]).lower()
    if any(phrase in text for phrase in UNCERTAIN_PHRASES):
        errors.append("Output contains uncertain language")

    return OutputGuardResult(errors=errors)
