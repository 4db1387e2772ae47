from app.llm.client import LLMClient, LLMServiceError, OpenAIClient
from app.llm.schemas import ClassificationResult, EventSummary, NoiseFilterResult

__all__ = [
    "ClassificationResult",
    "EventSummary",
    "LLMClient",
    "LLMServiceError",
    "NoiseFilterResult",
    "OpenAIClient",
]
