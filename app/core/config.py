"""Environment-driven settings, validated once when this module is imported."""

from __future__ import annotations

import re

from pydantic import Field, PostgresDsn, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_JWT_SECRET_MIN_LENGTH = 32
_JWT_SECRET_CHARACTER_CLASSES = (r"[a-z]", r"[A-Z]", r"\d", r"[^\w\s]")


class MissingRequiredSettingsError(Exception):
    """One or more required environment variables are unset."""

    def __init__(self, missing_fields: list[str]) -> None:
        self.missing_fields = missing_fields
        super().__init__(f"Missing required environment variables: {', '.join(missing_fields)}")


class InvalidSettingsError(Exception):
    """Every variable is present but some fail validation."""

    def __init__(self, invalid_fields: list[tuple[str, str]]) -> None:
        self.invalid_fields = invalid_fields
        summary = ", ".join(f"{field}: {message}" for field, message in invalid_fields)
        super().__init__(f"Invalid environment variables: {summary}")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage and cache connection (required)
    postgres_user: str = Field(..., description="Postgres user")
    postgres_password: str = Field(..., description="Postgres password")
    postgres_host: str = Field(..., description="Postgres host")
    postgres_port: int = Field(..., description="Postgres port")
    postgres_db: str = Field(..., description="Postgres database name")
    redis_host: str = Field(..., description="Redis host backing the rate limiter")
    redis_port: int = Field(..., description="Redis port")
    redis_db: int = Field(..., description="Redis database number")

    # Secrets (required)
    openai_api_key: str = Field(..., description="Key for the text-generation provider")
    jwt_secret_key: str = Field(..., description="Signing key for reader access tokens")
    jwt_access_token_expire_minutes: int = Field(..., description="Reader token lifetime")
    admin_api_key: str = Field(
        ..., min_length=16, description="Operator key for the admin and pipeline routes"
    )

    # Explicit URLs; derived from the connection parts above when unset
    database_url: str | None = Field(default=None, description="Async SQLAlchemy URL")
    rate_limit_storage_url: str | None = Field(default=None, description="limits storage URI")

    app_name: str = "event-digest-api"
    environment: str = "local"
    log_level: str = "INFO"
    jwt_algorithm: str = "HS256"

    # Text generation
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    llm_timeout_seconds: float = Field(default=30.0, gt=0)
    llm_rate_limit_max_requests: int = Field(default=60, ge=1)
    llm_rate_limit_window_seconds: int = Field(default=60, ge=1)

    # Pipeline
    pipeline_event_scan_limit: int = Field(default=1000, ge=1)
    pipeline_max_concurrent_users: int = Field(default=4, ge=1)
    state_update_max_retries: int = Field(default=5, ge=1)
    thread_window_days: int = Field(default=7, ge=1)

    @model_validator(mode="after")
    def fill_connection_urls(self) -> Settings:
        if self.database_url is None:
            dsn = PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=self.postgres_user,
                password=self.postgres_password,
                host=self.postgres_host,
                port=self.postgres_port,
                path=self.postgres_db,
            )
            self.database_url = str(dsn)
        if self.rate_limit_storage_url is None:
            self.rate_limit_storage_url = (
                f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"
            )
        return self

    @model_validator(mode="after")
    def require_strong_jwt_secret(self) -> Settings:
        secret = self.jwt_secret_key
        strong = len(secret) >= _JWT_SECRET_MIN_LENGTH and all(
            re.search(pattern, secret) for pattern in _JWT_SECRET_CHARACTER_CLASSES
        )
        if not strong:
            raise ValueError(
                f"JWT secret key must be at least {_JWT_SECRET_MIN_LENGTH} characters and "
                "include upper, lower, number, and symbol characters."
            )
        return self


def _missing_fields(error: ValidationError) -> list[str]:
    return [
        str(detail["loc"][0]).upper() if detail["loc"] else "UNKNOWN"
        for detail in error.errors()
        if detail["type"] == "missing"
    ]


def _invalid_fields(error: ValidationError) -> list[tuple[str, str]]:
    return [
        (
            ".".join(str(part) for part in detail.get("loc", ())) or "unknown",
            detail.get("msg", "Invalid value"),
        )
        for detail in error.errors()
    ]


def validate_settings() -> Settings:
    """Load settings, sorting validation failures into missing and invalid variables.

    Raises:
        MissingRequiredSettingsError: a required variable is unset
        InvalidSettingsError: a variable is set but rejected
    """
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as e:
        missing = _missing_fields(e)
        if missing:
            raise MissingRequiredSettingsError(missing) from e
        raise InvalidSettingsError(_invalid_fields(e)) from e


# Importers (app/main.py) turn these errors into a readable startup message
settings = validate_settings()
