"""Collector seam: anything that yields raw events for a pipeline run."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from app.pipeline.models import RawEvent

logger = logging.getLogger(__name__)


class EventCollector(Protocol):
    name: str

    async def collect(self) -> list[RawEvent]: ...


async def collect_all(collectors: Sequence[EventCollector]) -> list[RawEvent]:
    """Run every collector concurrently. A failing collector is logged and skipped."""
    if not collectors:
        return []

    results = await asyncio.gather(
        *(collector.collect() for collector in collectors), return_exceptions=True
    )
    events: list[RawEvent] = []
    for collector, result in zip(collectors, results, strict=True):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning(
                f"Collector {collector.name} failed: {result!r}",
                extra={"collector": collector.name},
            )
            continue
        logger.info(
            f"Collector {collector.name} returned {len(result)} events",
            extra={"collector": collector.name},
        )
        events.extend(result)
    return events
