"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any, cast
from urllib.parse import urlparse

# Settings are validated at import time, so test defaults go in before any app import.
_TEST_ENV = {
    "POSTGRES_USER": "postgres",
    "POSTGRES_PASSWORD": "postgres",
    "POSTGRES_HOST": "localhost",
    "POSTGRES_PORT": "5432",
    "POSTGRES_DB": "event_digest",
    "REDIS_HOST": "localhost",
    "REDIS_PORT": "6379",
    "REDIS_DB": "0",
    "RATE_LIMIT_STORAGE_URL": "memory://",
    "OPENAI_API_KEY": "sk-test-key",
    "JWT_SECRET_KEY": "Test-Secret-Key-For-Event-Digest-0123456789!",
    "JWT_ACCESS_TOKEN_EXPIRE_MINUTES": "30",
    "ADMIN_API_KEY": "test-admin-key-0123456789",
    "ENVIRONMENT": "test",
}
for _key, _value in _TEST_ENV.items():
    os.environ.setdefault(_key, _value)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core import config  # noqa: E402
from app.core.auth import create_access_token, get_password_hash  # noqa: E402
from app.core.rate_limit import limiter  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.models.user import User  # noqa: E402
from app.db.session import configure_sqlite_engine  # noqa: E402
from app.llm.client import LLMClient  # noqa: E402
from app.main import create_app  # noqa: E402

TEST_PASSWORD = "password123"


def _get_test_database_url() -> str:
    """TEST_DATABASE_URL when set, otherwise a throwaway SQLite file."""
    env_url = os.getenv("TEST_DATABASE_URL")
    if env_url:
        return env_url
    path = os.path.join(tempfile.gettempdir(), f"event_digest_test_{os.getpid()}.db")
    return f"sqlite+aiosqlite:///{path}"


test_database_url = _get_test_database_url()
_parsed_test = urlparse(test_database_url)
_is_postgres = _parsed_test.scheme.startswith("postgresql")


class ScriptedLLMClient(LLMClient):
    """LLM double that answers each stage prompt with a canned JSON object.

    Responses are keyed by stage (``noise``, ``classify``, ``summary``). A value
    may be a dict, an exception to raise, or a callable taking the prompt.
    """

    DEFAULTS: dict[str, dict[str, Any]] = {
        "noise": {"important": True, "score": 7, "reason": "Substantive engineering news"},
        "classify": {"category": "release", "topics": ["technology", "cloud"]},
        "summary": {
            "tldr": "A new major version ships with faster builds.",
            "bullets": ["Builds are twice as fast", "Configuration format is simpler"],
            "impact": "Teams on the old version",
            "action_required": "Plan the upgrade",
        },
    }

    def __init__(self, **responses: Any) -> None:
        self.responses: dict[str, Any] = {**self.DEFAULTS, **responses}
        self.prompts: list[tuple[str, str]] = []

    @staticmethod
    def stage_for(prompt: str) -> str:
        if "Analyze this news item" in prompt:
            return "noise"
        if "Classify this news item" in prompt:
            return "classify"
        if "Summarize this news item" in prompt:
            return "summary"
        raise AssertionError(f"Unexpected prompt: {prompt[:80]!r}")

    def calls(self, stage: str) -> int:
        return sum(1 for recorded, _ in self.prompts if recorded == stage)

    async def complete_json(self, prompt: str) -> dict[str, Any]:
        stage = self.stage_for(prompt)
        self.prompts.append((stage, prompt))
        response = self.responses[stage]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(prompt)
        return dict(cast(Mapping[str, Any], response))


@pytest.fixture
def scripted_llm() -> ScriptedLLMClient:
    return ScriptedLLMClient()


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    """Inbound limits are process-wide; start every test with a clean window."""
    limiter.reset()


# Async fixtures (session-scoped, for async tests that need database access).


@pytest_asyncio.fixture(scope="session")
async def ensure_test_database() -> None:
    """Ensures a Postgres test database exists. SQLite files are created on connect."""
    if not _is_postgres:
        return
    test_db_name = _parsed_test.path.lstrip("/")
    postgres_url = _parsed_test._replace(path="/postgres").geturl()
    admin_engine = create_async_engine(
        postgres_url, pool_pre_ping=True, echo=False, isolation_level="AUTOCOMMIT"
    )
    try:
        async with admin_engine.connect() as conn:
            result = await conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
                {"db_name": test_db_name},
            )
            if result.scalar() is None:
                await conn.execute(text(f'CREATE DATABASE "{test_db_name}"'))
    finally:
        admin_engine.sync_engine.dispose()


@pytest_asyncio.fixture(scope="session")
async def test_engine(ensure_test_database: None) -> AsyncIterator[AsyncEngine]:
    """Creates a test database engine (reused across all tests)."""
    engine = create_async_engine(test_database_url, pool_pre_ping=True, echo=False)
    if engine.dialect.name == "sqlite":
        configure_sqlite_engine(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="session")
async def setup_test_db(test_engine: AsyncEngine) -> AsyncIterator[None]:
    """Creates test database tables."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="session")
async def test_session_maker(
    setup_test_db: None, test_engine: AsyncEngine
) -> async_sessionmaker[AsyncSession]:
    """Creates a session maker (reused across all tests)."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    test_session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Creates a database session for a test (function-scoped).

    Every row is deleted after the test so nothing leaks between tests.
    """
    async with test_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            for table in reversed(Base.metadata.sorted_tables):
                await session.execute(table.delete())
            await session.commit()


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory fixture: insert a committed user with sensible reader preferences."""

    async def _make_user(email: str = "reader@example.com", **overrides: Any) -> User:
        values: dict[str, Any] = {
            "email": email,
            "hashed_password": get_password_hash(TEST_PASSWORD),
            "interests": ["technology", "cloud"],
            "keywords": ["kubernetes"],
            "tone": "concise",
            "min_importance_score": 5.0,
            "is_active": True,
            "is_verified": True,
            "is_onboarded": True,
        }
        values.update(overrides)
        user = User(**values)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-API-Key": config.settings.admin_api_key}


@pytest.fixture
def auth_headers() -> Callable[[int], dict[str, str]]:
    """Bearer headers for a user id, without going through the login route."""

    def _headers(user_id: int) -> dict[str, str]:
        token = create_access_token(data={"sub": str(user_id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture(scope="session")
async def async_app(test_session_maker: async_sessionmaker[AsyncSession]) -> AsyncIterator[FastAPI]:
    """Creates FastAPI app for async tests with test database settings.

    Reused across all tests that include it (session-scoped).
    """
    config.settings.environment = "test"
    config.settings.database_url = test_database_url

    fastapi_app = create_app()

    yield fastapi_app


@pytest_asyncio.fixture(scope="function")
async def async_http_client(async_app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Creates an async http client."""
    transport = ASGITransport(app=async_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


# Synchronous fixtures (function-scoped, for synchronous tests that don't need database access)


@pytest.fixture(scope="function")
def app() -> FastAPI:
    """Creates a FastAPI app for synchronous tests that don't touch the database."""
    config.settings.environment = "test"
    config.settings.database_url = test_database_url

    return create_app()


@pytest.fixture(scope="function")
def http_client(app: FastAPI) -> TestClient:
    """Creates a synchronous http client (for synchronous tests, can run in parallel)."""
    return TestClient(app)
