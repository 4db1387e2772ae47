"""Reader-facing endpoints: preferences and feedback on delivered events."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from app.api.dependencies import UnitOfWork, get_current_user, get_uow
from app.api.openapi_responses import (
    ErrorExample,
    error_responses,
    rate_limited_response,
    unauthorized_response,
)
from app.api.schemas import (
    FeedbackAnalysisResponse,
    PreferencesResponse,
    PreferencesUpdateRequest,
    RatedEventResponse,
    RateEventRequest,
)
from app.core.rate_limit import FEEDBACK_RATE_LIMIT, limit, rate_limit_user_or_ip_key
from app.db.models.user import User

router = APIRouter()


@router.get(
    "/preferences",
    summary="Get preferences",
    response_model=PreferencesResponse,
    responses={**unauthorized_response(), **rate_limited_response()},
)
async def get_preferences(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> PreferencesResponse:
    return PreferencesResponse.model_validate(current_user)


@router.put(
    "/preferences",
    summary="Update preferences",
    description="Set interests (1 to 4 known topics), keywords, summary tone and the "
    "minimum relevance an event needs to be delivered.",
    response_model=PreferencesResponse,
    responses={**unauthorized_response(), **rate_limited_response()},
)
async def update_preferences(
    request: Request,
    preferences: PreferencesUpdateRequest,
    current_user: User = Depends(get_current_user),
    uow: UnitOfWork = Depends(get_uow),
) -> PreferencesResponse:
    user = await uow.user_service.update_preferences(
        current_user.id,
        interests=preferences.interests,
        keywords=preferences.keywords,
        tone=preferences.tone,
        min_importance_score=preferences.min_importance_score,
    )
    return PreferencesResponse.model_validate(user)


@router.post(
    "/events/{event_id}/rating",
    summary="Rate a delivered event",
    response_model=RatedEventResponse,
    responses={
        **error_responses(
            ErrorExample(
                status_code=status.HTTP_404_NOT_FOUND,
                error="user_event_not_found",
                message="Event 42 was not delivered to user 7",
                description="Event was never queued for this user",
            ),
            ErrorExample(
                status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
                error="invalid_rating",
                message="Rating must be one of 1, 3 or 5 (got 4)",
                description="Rating outside the allowed values",
            ),
        ),
        **unauthorized_response(),
        **rate_limited_response(),
    },
)
@limit(FEEDBACK_RATE_LIMIT, key_func=rate_limit_user_or_ip_key)
async def rate_event(
    request: Request,
    event_id: int,
    body: RateEventRequest,
    current_user: User = Depends(get_current_user),
    uow: UnitOfWork = Depends(get_uow),
) -> RatedEventResponse:
    user_event = await uow.user_service.rate_user_event(current_user.id, event_id, body.rating)
    return RatedEventResponse.model_validate(user_event)


@router.get(
    "/feedback",
    summary="Feedback analysis",
    description="Averages over the most recent ratings, with suggestions for preferences.",
    response_model=FeedbackAnalysisResponse,
    responses={**unauthorized_response(), **rate_limited_response()},
)
async def get_feedback(
    request: Request,
    current_user: User = Depends(get_current_user),
    uow: UnitOfWork = Depends(get_uow),
) -> FeedbackAnalysisResponse:
    analysis = await uow.user_service.feedback(current_user.id)
    return FeedbackAnalysisResponse.model_validate(analysis)
