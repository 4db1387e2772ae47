"""Fixtures for tests that go through the database."""

from __future__ import annotations

import types
from collections.abc import Iterator

import pytest
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession

from app.llm.client import LLMClient
from app.services.pipeline_runner import PipelineRunnerFactory


@pytest.fixture(autouse=True)
def clean_tables(db_session: AsyncSession) -> None:
    """Every integration test gets the row cleanup done by ``db_session`` teardown."""


@pytest.fixture
def scripted_pipeline(async_app: FastAPI, scripted_llm: LLMClient) -> Iterator[LLMClient]:
    """Swap the app's pipeline runner for one backed by the scripted LLM."""
    original = async_app.state.services
    services = dict(original)
    services["pipeline_runner"] = PipelineRunnerFactory(scripted_llm)
    async_app.state.services = types.MappingProxyType(services)
    try:
        yield scripted_llm
    finally:
        async_app.state.services = original
