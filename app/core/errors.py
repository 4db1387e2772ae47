from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
    429: "rate_limited",
    500: "internal_error",
    503: "service_unavailable",
}


class DomainError(Exception):
    """Base error for failures surfaced by the service layer."""

    status_code: int = 400

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.error_code = error_code


class NotFoundError(DomainError):
    """An operation referenced an id that does not exist."""

    status_code = 404


class EventNotFoundError(NotFoundError):
    def __init__(self, event_id: int) -> None:
        super().__init__(f"Event {event_id} not found", "event_not_found")
        self.event_id = event_id


class ThreadNotFoundError(NotFoundError):
    def __init__(self, slug: str) -> None:
        super().__init__(f"Thread {slug!r} not found", "thread_not_found")
        self.slug = slug


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found", "user_not_found")
        self.user_id = user_id


class UserEventNotFoundError(NotFoundError):
    def __init__(self, user_id: int, event_id: int) -> None:
        super().__init__(
            f"Event {event_id} was not delivered to user {user_id}", "user_event_not_found"
        )


class StateConflictError(DomainError):
    """Optimistic update of a processing state kept losing to concurrent writers."""

    status_code = 409

    def __init__(self, user_id: int, attempts: int) -> None:
        super().__init__(
            f"Processing state for user {user_id} changed concurrently "
            f"{attempts} times in a row",
            "state_conflict",
        )


class DeduplicationIntegrityError(DomainError):
    """The global duplicate check could not be completed; the event must not be stored."""

    status_code = 503

    def __init__(self, message: str) -> None:
        super().__init__(message, "dedup_unavailable")


class UserNotEligibleError(DomainError):
    def __init__(self, user_id: int, reason: str) -> None:
        super().__init__(f"User {user_id} cannot run the pipeline: {reason}", "user_not_eligible")


class InvalidRatingError(DomainError):
    status_code = 422

    def __init__(self, rating: object) -> None:
        super().__init__(f"Rating must be one of 1, 3 or 5 (got {rating!r})", "invalid_rating")


class InvalidEditError(DomainError):
    status_code = 422

    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"Fields cannot be edited: {', '.join(fields)}", "invalid_edit")


class ErrorResponse(BaseModel):
    """Standardized error response payload."""

    error: str
    message: str
    details: Any | None = None


def build_http_error(
    status_code: int,
    error: str,
    message: str,
    details: Any | None = None,
    headers: dict[str, str] | None = None,
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ErrorResponse(error=error, message=message, details=details).model_dump(
            exclude_none=True
        ),
        headers=headers,
    )


def _map_status_to_error(status_code: int) -> str:
    return ERROR_CODE_BY_STATUS.get(status_code, "error")


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, StarletteHTTPException):
        payload = ErrorResponse(
            error=_map_status_to_error(HTTP_500_INTERNAL_SERVER_ERROR),
            message=_status_phrase(HTTP_500_INTERNAL_SERVER_ERROR),
        ).model_dump(exclude_none=True)
        return JSONResponse(status_code=HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail and "message" in detail:
        payload = ErrorResponse.model_validate(detail).model_dump(exclude_none=True)
    else:
        payload = ErrorResponse(
            error=_map_status_to_error(exc.status_code),
            message=str(detail) if detail else _status_phrase(exc.status_code),
        ).model_dump(exclude_none=True)
    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
        headers=getattr(exc, "headers", None),
    )


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logging.exception("Unhandled exception", exc_info=exc)
    payload = ErrorResponse(
        error=_map_status_to_error(HTTP_500_INTERNAL_SERVER_ERROR),
        message=_status_phrase(HTTP_500_INTERNAL_SERVER_ERROR),
    ).model_dump(exclude_none=True)
    return JSONResponse(status_code=HTTP_500_INTERNAL_SERVER_ERROR, content=payload)


def request_validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        payload = ErrorResponse(
            error=_map_status_to_error(HTTP_500_INTERNAL_SERVER_ERROR),
            message=_status_phrase(HTTP_500_INTERNAL_SERVER_ERROR),
        ).model_dump(exclude_none=True)
        return JSONResponse(status_code=HTTP_500_INTERNAL_SERVER_ERROR, content=payload)

    payload = ErrorResponse(
        error=_map_status_to_error(422),
        message="Request validation failed",
        details=exc.errors(),
    ).model_dump(exclude_none=True)
    return JSONResponse(status_code=422, content=payload)


def rate_limit_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    payload = ErrorResponse(
        error=_map_status_to_error(429),
        message="Too many requests",
    ).model_dump(exclude_none=True)
    return JSONResponse(status_code=429, content=payload, headers=getattr(exc, "headers", None))


def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, DomainError):
        return unhandled_exception_handler(request, exc)
    payload = ErrorResponse(error=exc.error_code, message=str(exc)).model_dump(exclude_none=True)
    return JSONResponse(status_code=exc.status_code, content=payload)
