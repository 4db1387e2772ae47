from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    RateLimitError,
)
from openai.types.chat import ChatCompletion

from app.core.config import settings
from app.core.rate_limit import OutboundRateLimiter
from app.llm.prompts import ANALYST_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class LLMServiceError(Exception):
    """Base error raised when the LLM service cannot fulfill a request."""

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.error_code = error_code


class LLMUnavailableError(LLMServiceError):
    """LLM is unavailable (timeout, rate limit, or upstream outage)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "llm_unavailable")


class LLMAuthenticationError(LLMServiceError):
    """LLM authentication failed (service credentials invalid)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "llm_auth_failed")


class LLMInvalidResponseError(LLMServiceError):
    """LLM returned an invalid or unexpected response."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "llm_response_invalid")


class LLMRateLimitedError(LLMServiceError):
    """The local outbound budget for LLM calls is used up."""

    def __init__(self, retry_after: int) -> None:
        super().__init__(
            f"LLM call budget exhausted. Retry in {retry_after}s.", "llm_rate_limited"
        )
        self.retry_after = retry_after


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def complete_json(self, prompt: str) -> dict[str, Any]:
        """Send one prompt and return the model's reply parsed as a JSON object."""
        raise NotImplementedError


class OpenAIClient(LLMClient):
    """OpenAI implementation of LLM client."""

    def __init__(
        self,
        api_key: str | None = None,
        rate_limiter: OutboundRateLimiter | None = None,
        model: str | None = None,
    ) -> None:
        """Initialize OpenAI client."""
        self.client = AsyncOpenAI(api_key=api_key or settings.openai_api_key)
        self.model = model or settings.llm_model
        self.rate_limiter = rate_limiter

    @property
    def rate_limit_key(self) -> str:
        return f"llm:{self.model}"

    def _handle_errors(self, error: Exception) -> LLMServiceError:
        """Log error with appropriate message based on error type."""
        if isinstance(error, LLMServiceError):
            return error
        elif isinstance(error, APITimeoutError):
            logger.error(f"OpenAI API request timed out. Error: {error}")
            return LLMUnavailableError("LLM request timed out. Try again.")
        elif isinstance(error, APIConnectionError):
            logger.error(f"OpenAI API connection failed. Error: {error}")
            return LLMUnavailableError("LLM service unreachable. Try again shortly.")
        elif isinstance(error, RateLimitError):
            logger.error(f"OpenAI API rate limit exceeded. Error: {error}")
            return LLMUnavailableError("LLM rate limit exceeded. Try again later.")
        elif isinstance(error, AuthenticationError):
            logger.error(f"OpenAI API authentication failed. Error: {error}")
            return LLMAuthenticationError("LLM authentication failed.")
        elif isinstance(error, APIError):
            logger.error(f"OpenAI API error. Error: {error}")
            return LLMUnavailableError("LLM service error. Try again later.")
        elif isinstance(error, (IndexError, AttributeError)):
            logger.error(f"Unexpected response structure from OpenAI. Error: {error}")
            return LLMInvalidResponseError("LLM returned an unexpected response.")
        elif isinstance(error, json.JSONDecodeError):
            logger.error(f"Invalid JSON response from OpenAI. Error: {error}")
            return LLMInvalidResponseError("LLM returned invalid JSON.")
        elif isinstance(error, ValueError):
            logger.error(f"Invalid value encountered. Error: {error}")
            return LLMInvalidResponseError(str(error))
        else:
            logger.error(f"Unexpected error calling LLM. Error: {error}")
            return LLMServiceError("LLM request failed. Try again later.", "llm_error")

    def _take_token(self) -> None:
        if self.rate_limiter is None:
            return
        decision = self.rate_limiter.acquire(self.rate_limit_key)
        if not decision.allowed:
            logger.warning(
                "Outbound LLM budget exhausted",
                extra={"key": self.rate_limit_key, "retry_after": decision.retry_after},
            )
            raise LLMRateLimitedError(decision.retry_after)

    async def complete_json(self, prompt: str) -> dict[str, Any]:
        """Run a JSON-mode chat completion for ``prompt``."""
        try:
            self._take_token()
            response: ChatCompletion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": ANALYST_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=settings.llm_temperature,
                timeout=settings.llm_timeout_seconds,
            )

            content = response.choices[0].message.content
            if not content:
                raise ValueError("Empty response from OpenAI")

            parsed = json.loads(content)
            if not isinstance(parsed, dict):
                raise ValueError("Expected a JSON object from OpenAI")
            return parsed

        except Exception as e:
            raise self._handle_errors(e) from e
