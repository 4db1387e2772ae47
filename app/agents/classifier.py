from __future__ import annotations

from typing import Final

from app.core.prompt_sanitizer import sanitize_event_text
from app.llm.client import LLMClient
from app.llm.prompts import get_classification_prompt
from app.llm.schemas import ClassificationResult
from app.pipeline.guardrails import MAX_TITLE_LENGTH
from app.pipeline.models import EventRecord, UserContext

CLASSIFIER_CONTENT_LIMIT: Final[int] = 300


class ClassifierAgent:
    """Assigns one category and a set of topics to an event.

    ``confidence`` is kept on the result for diagnostics; nothing gates on it.
    """

    def __init__(self, llm_client: LLMClient) -> None:
        self._llm_client = llm_client

    async def run(self, event: EventRecord, user: UserContext) -> ClassificationResult:
        prompt = get_classification_prompt(
            title=sanitize_event_text(event.title, MAX_TITLE_LENGTH),
            content=sanitize_event_text(event.content, CLASSIFIER_CONTENT_LIMIT),
        )
        payload = await self._llm_client.complete_json(prompt)
        return ClassificationResult.model_validate(payload)
