"""API request and response schemas.

Import request/response models from the submodules (e.g. auth_request_models,
admin_response_models) or from this package for a single entry point.
"""

from __future__ import annotations

from app.api.schemas.admin_request_models import (
    ApproveReviewRequest,
    EditReviewRequest,
    RejectReviewRequest,
)
from app.api.schemas.admin_response_models import (
    PendingReviewResponse,
    RejectReviewResponse,
    ReviewEventResponse,
    ReviewQueueStatsResponse,
    SystemFeedbackResponse,
    SystemStatsResponse,
)
from app.api.schemas.auth_request_models import LoginUserRequest, RegisterUserRequest
from app.api.schemas.auth_response_models import (
    AccessTokenResponse,
    DeleteUserResponse,
    UserResponse,
)
from app.api.schemas.health_response_models import HealthResponse
from app.api.schemas.pipeline_request_models import BatchRunRequest, PipelineRunRequest
from app.api.schemas.pipeline_response_models import (
    BatchRunSummary,
    ClearUserDataResult,
    PipelineRunSummary,
    ProcessingStateResponse,
)
from app.api.schemas.users_request_models import PreferencesUpdateRequest, RateEventRequest
from app.api.schemas.users_response_models import (
    FeedbackAnalysisResponse,
    PreferencesResponse,
    RatedEventResponse,
)

__all__ = [
    "AccessTokenResponse",
    "ApproveReviewRequest",
    "BatchRunRequest",
    "BatchRunSummary",
    "ClearUserDataResult",
    "DeleteUserResponse",
    "EditReviewRequest",
    "FeedbackAnalysisResponse",
    "HealthResponse",
    "LoginUserRequest",
    "PendingReviewResponse",
    "PipelineRunRequest",
    "PipelineRunSummary",
    "PreferencesResponse",
    "PreferencesUpdateRequest",
    "ProcessingStateResponse",
    "RateEventRequest",
    "RatedEventResponse",
    "RegisterUserRequest",
    "RejectReviewRequest",
    "RejectReviewResponse",
    "ReviewEventResponse",
    "ReviewQueueStatsResponse",
    "SystemFeedbackResponse",
    "SystemStatsResponse",
    "UserResponse",
]
