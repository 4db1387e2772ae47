from __future__ import annotations

from app.core.prompt_sanitizer import sanitize_event_text
from app.llm.client import LLMClient
from app.llm.prompts import get_summary_prompt
from app.llm.schemas import EventSummary
from app.pipeline.guardrails import MAX_TITLE_LENGTH
from app.pipeline.models import EventRecord, UserContext


class SummarizerAgent:
    """Writes the reader-facing summary in the user's preferred tone."""

    def __init__(self, llm_client: LLMClient) -> None:
        self._llm_client = llm_client

    async def run(self, event: EventRecord, user: UserContext) -> EventSummary:
        prompt = get_summary_prompt(
            title=sanitize_event_text(event.title, MAX_TITLE_LENGTH),
            content=sanitize_event_text(event.content),
            url=event.url,
            interests=user.interests,
            tone=user.tone.value,
        )
        payload = await self._llm_client.complete_json(prompt)
        return EventSummary.model_validate(payload)
