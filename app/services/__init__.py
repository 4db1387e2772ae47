from app.services.admin_service import AdminService, admin_service_factory_provider
from app.services.auth_service import (
    AuthService,
    InvalidCredentialsError,
    UserAlreadyExistsError,
    auth_service_factory_provider,
)
from app.services.pipeline_runner import (
    PipelineRunnerFactory,
    UserPipelineRunner,
    pipeline_runner_factory_provider,
)
from app.services.user_service import UserService, user_service_factory_provider

__all__ = [
    "AdminService",
    "AuthService",
    "InvalidCredentialsError",
    "PipelineRunnerFactory",
    "UserAlreadyExistsError",
    "UserPipelineRunner",
    "UserService",
    "admin_service_factory_provider",
    "auth_service_factory_provider",
    "pipeline_runner_factory_provider",
    "user_service_factory_provider",
]
