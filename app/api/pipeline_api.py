"""Batch trigger surface for the per-user pipeline. Requires the shared ``X-API-Key``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from app.api.dependencies import UnitOfWork, get_uow, require_admin_key
from app.api.openapi_responses import (
    ADMIN_KEY_ERROR,
    ErrorExample,
    error_responses,
    not_found_response,
    rate_limited_response,
)
from app.api.schemas import (
    BatchRunRequest,
    BatchRunSummary,
    ClearUserDataResult,
    PipelineRunRequest,
    PipelineRunSummary,
    ProcessingStateResponse,
)
from app.core.rate_limit import PIPELINE_RUN_RATE_LIMIT, limit, rate_limit_ip_key
from app.db.session import get_session_maker
from app.services.pipeline_runner import PipelineRunnerFactory

router = APIRouter(dependencies=[Depends(require_admin_key)])

_USER_ERRORS = {
    **error_responses(ADMIN_KEY_ERROR),
    **not_found_response("user_not_found", "User 7 not found", "Unknown user id"),
}


def get_runner_factory(request: Request) -> PipelineRunnerFactory:
    factory: PipelineRunnerFactory = request.app.state.services["pipeline_runner"]
    return factory


@router.post(
    "/users/{user_id}/run",
    summary="Run the pipeline for one user",
    description="Collects, deduplicates and processes events for the user, then hands "
    "unsent events to the delivery channel. Events may be pushed in the body.",
    response_model=PipelineRunSummary,
    responses={
        **_USER_ERRORS,
        **error_responses(
            ErrorExample(
                status_code=status.HTTP_400_BAD_REQUEST,
                error="user_not_eligible",
                message="User 7 cannot run the pipeline: user is inactive",
                description="User is inactive or unverified",
            ),
            ErrorExample(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                error="dedup_unavailable",
                message="Duplicate check could not be completed",
                description="Event store unavailable",
            ),
        ),
        **rate_limited_response(),
    },
)
@limit(PIPELINE_RUN_RATE_LIMIT, key_func=rate_limit_ip_key)
async def run_user_pipeline(
    request: Request,
    user_id: int,
    body: PipelineRunRequest | None = None,
    uow: UnitOfWork = Depends(get_uow),
) -> PipelineRunSummary:
    run = body or PipelineRunRequest()
    return await uow.pipeline_runner.run_user_pipeline(
        user_id,
        events=run.events,
        skip_collection=run.skip_collection,
        skip_delivery=run.skip_delivery,
    )


@router.delete(
    "/users/{user_id}/data",
    summary="Clear a user's pipeline data",
    description="Deletes the user's delivery records and resets their processing state.",
    response_model=ClearUserDataResult,
    responses=_USER_ERRORS,
)
async def clear_user_data(
    user_id: int,
    uow: UnitOfWork = Depends(get_uow),
) -> ClearUserDataResult:
    return await uow.pipeline_runner.clear_user_data(user_id)


@router.get(
    "/users/{user_id}/state",
    summary="A user's processing state",
    response_model=ProcessingStateResponse,
    responses=_USER_ERRORS,
)
async def get_processing_state(
    user_id: int,
    uow: UnitOfWork = Depends(get_uow),
) -> ProcessingStateResponse:
    await uow.user_service.get_user(user_id)
    state = await uow.pipeline_runner.state.get_or_create(user_id)
    return ProcessingStateResponse(
        user_id=user_id,
        summary=state.summary(),
        recent_errors=state.recent_errors,
        action_history=state.action_history,
        version=state.version,
    )


@router.post(
    "/run-all",
    summary="Run the pipeline for every active user",
    description="Collects once, then runs each active, verified user concurrently. "
    "A failing user is reported in the result and does not stop the others.",
    response_model=BatchRunSummary,
    responses={**error_responses(ADMIN_KEY_ERROR), **rate_limited_response()},
)
@limit(PIPELINE_RUN_RATE_LIMIT, key_func=rate_limit_ip_key)
async def run_all_users(
    request: Request,
    body: BatchRunRequest | None = None,
    runner_factory: PipelineRunnerFactory = Depends(get_runner_factory),
) -> BatchRunSummary:
    batch = body or BatchRunRequest()
    return await runner_factory.run_all(get_session_maker(), batch.events)
