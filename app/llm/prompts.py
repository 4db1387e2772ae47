"""Prompt templates for LLM interactions."""

from __future__ import annotations

from collections.abc import Sequence

from app.llm.schemas import CLASSIFIER_CATEGORIES, CLASSIFIER_TOPICS

ANALYST_SYSTEM_PROMPT = (
    "You are a precise, factual news analyst. Always respond with valid JSON only, "
    "matching the requested format exactly."
)

TONE_INSTRUCTIONS: dict[str, str] = {
    "concise": "Keep it brief and to the point.",
    "detailed": "Provide context and explain why it matters.",
    "technical": "Use precise technical terminology and include implementation details.",
}


def _interest_list(interests: Sequence[str]) -> str:
    return ", ".join(interests) if interests else "general technology"


def get_noise_filter_prompt(title: str, content: str, interests: Sequence[str]) -> str:
    """Generate the prompt deciding whether an event is worth a reader's time."""
    return f"""Analyze this news item and decide if it is important or noise.

Title: {title}
Content: {content}
Reader interests: {_interest_list(interests)}

Rate importance from 1 to 10, where 10 is critical news and 1 is pure noise.
Ignore memes, jokes, personal opinions and low-quality posts.
Focus on releases, incidents, breaking news and major updates.

Return a JSON object of this shape:
{{"important": true or false, "score": 1-10, "reason": "short explanation"}}"""


def get_classification_prompt(title: str, content: str) -> str:
    """Generate the prompt assigning a category and topics to an event."""
    categories = ", ".join(category.value for category in CLASSIFIER_CATEGORIES)
    topics = ", ".join(CLASSIFIER_TOPICS)
    return f"""Classify this news item.

Title: {title}
Content: {content}

Category must be exactly one of: {categories}
Topics must be chosen from: {topics}

Return a JSON object: {{"category": "...", "topics": ["..."], "confidence": 0.0-1.0}}"""


def get_summary_prompt(
    title: str,
    content: str,
    url: str | None,
    interests: Sequence[str],
    tone: str = "concise",
) -> str:
    """Generate the prompt producing the structured summary shown to readers."""
    tone_instruction = TONE_INSTRUCTIONS.get(tone, TONE_INSTRUCTIONS["concise"])
    return f"""Summarize this news item for a reader interested in {_interest_list(interests)}.

Title: {title}
Content: {content}
URL: {url or "n/a"}

{tone_instruction}
Write a one-sentence TL;DR of at most 150 characters and 3 to 5 bullet points.
Say who is affected and what the reader should do ("None" if it is purely informational).
State facts only. Do not speculate.

Return a JSON object of this shape:
{{"tldr": "...", "bullets": ["..."], "impact": "...", "action_required": "..."}}"""
