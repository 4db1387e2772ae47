from __future__ import annotations

import logging
import sys
import types
from importlib.metadata import PackageNotFoundError, version
from typing import Any, cast

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ExceptionHandler

from app.api.router import router as api_router
from app.core.config import InvalidSettingsError, MissingRequiredSettingsError
from app.core.errors import (
    DomainError,
    domain_exception_handler,
    http_exception_handler,
    rate_limit_exception_handler,
    request_validation_exception_handler,
    unhandled_exception_handler,
)
from app.core.lifespan import lifespan
from app.core.logging import configure_logging
from app.core.rate_limit import build_llm_rate_limiter, limiter
from app.llm.client import OpenAIClient
from app.services import (
    admin_service_factory_provider,
    auth_service_factory_provider,
    pipeline_runner_factory_provider,
    user_service_factory_provider,
)


def _settings_error_report(exc: MissingRequiredSettingsError | InvalidSettingsError) -> str:
    if isinstance(exc, MissingRequiredSettingsError):
        heading, action = "Missing required environment variables:", "set"
        lines = [f"  - {field}" for field in exc.missing_fields]
    else:
        heading, action = "Invalid environment variable values:", "update"
        lines = [f"  - {field}: {message}" for field, message in exc.invalid_fields]
    footer = f"\nPlease {action} these in your .env file (see env.example for reference)"
    return "\n".join([f"ERROR: {heading}", *lines, footer])


# Settings are validated on import; report problems and stop instead of a traceback
try:
    from app.core.config import settings
except (MissingRequiredSettingsError, InvalidSettingsError) as e:
    print(_settings_error_report(e), file=sys.stderr)
    sys.exit(1)

_EXCEPTION_HANDLERS: tuple[tuple[type[Exception], Any], ...] = (
    (StarletteHTTPException, http_exception_handler),
    (RequestValidationError, request_validation_exception_handler),
    (RateLimitExceeded, rate_limit_exception_handler),
    (DomainError, domain_exception_handler),
    (Exception, unhandled_exception_handler),
)


def _api_version() -> str:
    try:
        return version(settings.app_name)
    except PackageNotFoundError:
        logging.warning(f"{settings.app_name} package not found, using fallback version 0.1.0")
        return "0.1.0"


def build_services() -> types.MappingProxyType[str, Any]:
    """Registry of session-scoped service factories, resolved per request by UnitOfWork."""
    openai_client = OpenAIClient(rate_limiter=build_llm_rate_limiter())
    return types.MappingProxyType(
        {
            "auth_service": auth_service_factory_provider(),
            "user_service": user_service_factory_provider(),
            "admin_service": admin_service_factory_provider(),
            "pipeline_runner": pipeline_runner_factory_provider(openai_client),
        }
    )


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=_api_version(),
        debug=settings.environment == "local",
        lifespan=lifespan,
    )
    for exc_class, handler in _EXCEPTION_HANDLERS:
        app.add_exception_handler(exc_class, cast(ExceptionHandler, handler))
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.include_router(api_router, prefix="/api")
    app.state.services = build_services()
    return app


app = create_app()
