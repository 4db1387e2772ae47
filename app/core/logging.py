from __future__ import annotations

import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"

# Loggers that are chatty at INFO during LLM calls and pipeline runs.
_NOISY_LOGGERS = ("httpx", "openai", "sqlalchemy.engine")


def configure_logging() -> None:
    """Configure root logging from settings (format + level)."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
