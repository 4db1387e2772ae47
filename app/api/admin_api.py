"""Operator endpoints: human review of escalated events and system-wide stats.

Every route requires the shared ``X-API-Key`` header.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import UnitOfWork, get_uow, require_admin_key
from app.api.openapi_responses import (
    ADMIN_KEY_ERROR,
    ErrorExample,
    error_responses,
    not_found_response,
)
from app.api.schemas import (
    ApproveReviewRequest,
    EditReviewRequest,
    PendingReviewResponse,
    RejectReviewRequest,
    RejectReviewResponse,
    ReviewEventResponse,
    ReviewQueueStatsResponse,
    SystemFeedbackResponse,
    SystemStatsResponse,
)

router = APIRouter(dependencies=[Depends(require_admin_key)])

_ADMIN_ERRORS = error_responses(ADMIN_KEY_ERROR)
_EVENT_ERRORS = {
    **_ADMIN_ERRORS,
    **not_found_response("event_not_found", "Event 42 not found", "Unknown event id"),
}


@router.get(
    "/review/pending",
    summary="Events awaiting review",
    description="Most important first, then newest.",
    response_model=list[PendingReviewResponse],
    responses=_ADMIN_ERRORS,
)
async def list_pending_reviews(
    limit: int = Query(default=50, ge=1, le=200),
    uow: UnitOfWork = Depends(get_uow),
) -> list[PendingReviewResponse]:
    pending = await uow.admin_service.review_queue.get_pending_reviews(limit)
    return [PendingReviewResponse.model_validate(item) for item in pending]


@router.get(
    "/review/stats",
    summary="Review queue counts by status",
    response_model=ReviewQueueStatsResponse,
    responses=_ADMIN_ERRORS,
)
async def review_stats(uow: UnitOfWork = Depends(get_uow)) -> ReviewQueueStatsResponse:
    return ReviewQueueStatsResponse.model_validate(
        await uow.admin_service.review_queue.get_queue_stats()
    )


@router.post(
    "/review/{event_id}/approve",
    summary="Approve an event",
    response_model=ReviewEventResponse,
    responses=_EVENT_ERRORS,
)
async def approve_event(
    event_id: int,
    body: ApproveReviewRequest | None = None,
    uow: UnitOfWork = Depends(get_uow),
) -> ReviewEventResponse:
    reviewer = (body or ApproveReviewRequest()).reviewer
    event = await uow.admin_service.review_queue.approve(event_id, reviewer)
    return ReviewEventResponse.model_validate(event)


@router.post(
    "/review/{event_id}/reject",
    summary="Reject an event",
    description="Withdraws the event from every user's delivery queue.",
    response_model=RejectReviewResponse,
    responses=_EVENT_ERRORS,
)
async def reject_event(
    event_id: int,
    body: RejectReviewRequest | None = None,
    uow: UnitOfWork = Depends(get_uow),
) -> RejectReviewResponse:
    decision = body or RejectReviewRequest()
    event, removed = await uow.admin_service.review_queue.reject(
        event_id, decision.reviewer, decision.reason
    )
    return RejectReviewResponse(
        event=ReviewEventResponse.model_validate(event), removed_user_events=removed
    )


@router.put(
    "/review/{event_id}/edit",
    summary="Edit and approve an event",
    response_model=ReviewEventResponse,
    responses={
        **_EVENT_ERRORS,
        **error_responses(
            ErrorExample(
                status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
                error="validation_error",
                message="Request validation failed",
                description="Field outside the editable set or out of range",
            )
        ),
    },
)
async def edit_event(
    event_id: int,
    body: EditReviewRequest,
    uow: UnitOfWork = Depends(get_uow),
) -> ReviewEventResponse:
    event = await uow.admin_service.review_queue.edit(event_id, body.updates(), body.reviewer)
    return ReviewEventResponse.model_validate(event)


@router.get(
    "/stats",
    summary="System totals",
    response_model=SystemStatsResponse,
    responses=_ADMIN_ERRORS,
)
async def system_stats(uow: UnitOfWork = Depends(get_uow)) -> SystemStatsResponse:
    return SystemStatsResponse.model_validate(await uow.admin_service.system_stats())


@router.get(
    "/feedback",
    summary="System-wide feedback",
    response_model=SystemFeedbackResponse,
    responses=_ADMIN_ERRORS,
)
async def system_feedback(uow: UnitOfWork = Depends(get_uow)) -> dict[str, Any]:
    return await uow.admin_service.feedback.system_feedback()
