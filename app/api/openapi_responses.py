"""Documented error payloads for route ``responses=`` declarations.

Every documented error body has the ``ErrorResponse`` shape; several examples
for one status code are grouped under that code as named OpenAPI examples.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import status

from app.core.errors import ErrorResponse

OpenAPIResponses = dict[int | str, dict[str, Any]]


@dataclass(frozen=True)
class ErrorExample:
    status_code: int
    error: str
    message: str
    description: str
    summary: str | None = None
    details: Any | None = None
    example_name: str | None = None

    def payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


def error_responses(*examples: ErrorExample) -> OpenAPIResponses:
    responses: OpenAPIResponses = {}
    for example in examples:
        # The first example registered for a status code supplies its description
        response = responses.setdefault(
            example.status_code,
            {
                "model": ErrorResponse,
                "description": example.description,
                "content": {"application/json": {"examples": {}}},
            },
        )
        named_examples: dict[str, Any] = response["content"]["application/json"]["examples"]
        named_examples[example.example_name or example.error] = {
            "summary": example.summary or example.description,
            "value": example.payload(),
        }
    return responses


def rate_limited_response(description: str = "Rate limit exceeded") -> OpenAPIResponses:
    return error_responses(
        ErrorExample(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error="rate_limited",
            message="Too many requests",
            description=description,
            summary="Too many requests",
        )
    )


def unauthorized_response(description: str = "Missing or invalid token") -> OpenAPIResponses:
    return error_responses(
        ErrorExample(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="unauthorized",
            message="Could not validate credentials",
            description=description,
            summary="Unauthorized",
        )
    )


ADMIN_KEY_ERROR = ErrorExample(
    status_code=status.HTTP_401_UNAUTHORIZED,
    error="invalid_api_key",
    message="Missing or invalid X-API-Key header",
    description="Missing or invalid admin key",
)


def not_found_response(error: str, message: str, description: str) -> OpenAPIResponses:
    return error_responses(
        ErrorExample(
            status_code=status.HTTP_404_NOT_FOUND,
            error=error,
            message=message,
            description=description,
        )
    )
