from __future__ import annotations

import html
import logging
import re

logger = logging.getLogger(__name__)

_HTML_TAG_PATTERN = re.compile(r"<[^>]+>")
_CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_INJECTION_PATTERNS = [
    re.compile(r"ignore (all|previous|prior) instructions", re.IGNORECASE),
    re.compile(r"system prompt", re.IGNORECASE),
    re.compile(r"developer message", re.IGNORECASE),
    re.compile(r"jailbreak", re.IGNORECASE),
]
REDACTED = "[redacted]"


def sanitize_event_text(text: str | None, max_length: int | None = None) -> str:
    """Clean collected event text before it is embedded in an LLM prompt.

    Feed content is untrusted: markup and control characters are stripped,
    instruction-like phrases are redacted and whitespace is collapsed. The
    result is cut to ``max_length`` characters when given.
    """
    if not text:
        return ""

    sanitized = _HTML_TAG_PATTERN.sub(" ", text)
    sanitized = html.unescape(sanitized)
    sanitized = _CONTROL_CHARS_PATTERN.sub(" ", sanitized)
    for pattern in _INJECTION_PATTERNS:
        sanitized = pattern.sub(REDACTED, sanitized)
    sanitized = " ".join(sanitized.split())

    if max_length is not None and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    if sanitized != text:
        logger.debug(
            "Sanitized event text",
            extra={"original_length": len(text), "sanitized_length": len(sanitized)},
        )

    return sanitized
