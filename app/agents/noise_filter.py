from __future__ import annotations

from typing import Final

from app.core.prompt_sanitizer import sanitize_event_text
from app.llm.client import LLMClient
from app.llm.prompts import get_noise_filter_prompt
from app.llm.schemas import NoiseFilterResult
from app.pipeline.guardrails import MAX_TITLE_LENGTH
from app.pipeline.models import EventRecord, UserContext

NOISE_CONTENT_LIMIT: Final[int] = 500
NOISE_SCORE_THRESHOLD: Final[float] = 5


class NoiseFilterAgent:
    """Asks the LLM whether an event is news or noise for this reader."""

    def __init__(self, llm_client: LLMClient) -> None:
        self._llm_client = llm_client

    async def run(self, event: EventRecord, user: UserContext) -> NoiseFilterResult:
        prompt = get_noise_filter_prompt(
            title=sanitize_event_text(event.title, MAX_TITLE_LENGTH),
            content=sanitize_event_text(event.content, NOISE_CONTENT_LIMIT) or "No content",
            interests=user.interests,
        )
        payload = await self._llm_client.complete_json(prompt)
        return NoiseFilterResult.model_validate(payload)


def is_noise(result: NoiseFilterResult) -> bool:
    return not result.important or result.score < NOISE_SCORE_THRESHOLD
