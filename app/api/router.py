from __future__ import annotations

from fastapi import APIRouter, Request

from app.api.admin_api import router as admin_router
from app.api.auth_api import router as auth_router
from app.api.openapi_responses import rate_limited_response
from app.api.pipeline_api import router as pipeline_router
from app.api.schemas import HealthResponse
from app.api.users_api import router as users_router
from app.core.config import settings
from app.core.rate_limit import HEALTH_RATE_LIMIT, limit, rate_limit_ip_key

router = APIRouter()


@router.get(
    "/health",
    tags=["health"],
    summary="Health check",
    response_model=HealthResponse,
    responses=rate_limited_response(),
)
@limit(HEALTH_RATE_LIMIT, key_func=rate_limit_ip_key)
def health(request: Request) -> HealthResponse:
    return HealthResponse(version=request.app.version, environment=settings.environment)


router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(users_router, prefix="/users/me", tags=["users"])
router.include_router(admin_router, prefix="/admin", tags=["admin"])
router.include_router(pipeline_router, prefix="/pipeline", tags=["pipeline"])
