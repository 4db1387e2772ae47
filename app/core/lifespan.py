from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from app.core.config import settings
from app.db.session import dispose_engine, get_engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Checks the database before serving and releases the engine pool on shutdown."""
    try:
        if settings.environment != "test":
            await check_database()
            logger.info("Database reachable", extra={"app_name": settings.app_name})
        yield
    finally:
        await dispose_engine()


async def check_database() -> None:
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        raise RuntimeError(f"Failed to connect to database: {e}") from e
