from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final, ParamSpec, TypeVar, cast

from fastapi import Request
from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.auth import verify_token
from app.core.config import settings

DEFAULT_RATE_LIMIT: Final[str] = "120/minute"
HEALTH_RATE_LIMIT: Final[str] = "300/minute"
AUTH_REGISTER_RATE_LIMIT: Final[str] = "5/minute"
AUTH_LOGIN_RATE_LIMIT: Final[str] = "10/minute"
AUTH_DELETE_RATE_LIMIT: Final[str] = "2/minute"
FEEDBACK_RATE_LIMIT: Final[str] = "30/minute"
PIPELINE_RUN_RATE_LIMIT: Final[str] = "6/minute"

P = ParamSpec("P")
R = TypeVar("R")
StrOrCallableStr = str | Callable[..., str]
BoolCallable = Callable[..., bool]
ErrorMessageValue = str | Callable[..., str]


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token


def rate_limit_ip_key(request: Request) -> str:
    return f"ip:{get_remote_address(request)}"


def rate_limit_user_or_ip_key(request: Request) -> str:
    token = _get_bearer_token(request)
    if token:
        payload = verify_token(token)
        if payload:
            user_id = payload.get("sub")
            if isinstance(user_id, str) and user_id:
                return f"user:{user_id}"
    return rate_limit_ip_key(request)


limiter = Limiter(
    key_func=rate_limit_user_or_ip_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=settings.rate_limit_storage_url,
    in_memory_fallback_enabled=True,
    in_memory_fallback=[DEFAULT_RATE_LIMIT],
)


def limit(
    limit_value: StrOrCallableStr,
    *,
    key_func: Callable[..., str] | None = None,
    per_method: bool = False,
    methods: list[str] | None = None,
    error_message: ErrorMessageValue | None = None,
    exempt_when: BoolCallable | None = None,
    override_defaults: bool = True,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Typed wrapper for SlowAPI's limit decorator."""
    limit_decorator = cast(
        Callable[..., Callable[[Callable[P, R]], Callable[P, R]]],
        limiter.limit,
    )
    return limit_decorator(
        limit_value,
        key_func=key_func,
        per_method=per_method,
        methods=methods,
        error_message=error_message,
        exempt_when=exempt_when,
        override_defaults=override_defaults,
    )


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class OutboundRateLimiter:
    """Sliding-window limiter for calls this service makes to other services.

    Fails closed: once a key has used up its window, calls are denied with the
    number of seconds until the oldest request leaves the window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        storage_uri: str = "memory://",
    ) -> None:
        self._item: RateLimitItem = RateLimitItemPerSecond(max_requests, window_seconds)
        self._strategy = MovingWindowRateLimiter(storage_from_string(storage_uri))

    def acquire(self, key: str) -> RateLimitDecision:
        if self._strategy.hit(self._item, key):
            stats = self._strategy.get_window_stats(self._item, key)
            return RateLimitDecision(allowed=True, remaining=stats.remaining)
        stats = self._strategy.get_window_stats(self._item, key)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

    def reset(self, key: str) -> None:
        self._strategy.clear(self._item, key)


def build_llm_rate_limiter() -> OutboundRateLimiter:
    return OutboundRateLimiter(
        max_requests=settings.llm_rate_limit_max_requests,
        window_seconds=settings.llm_rate_limit_window_seconds,
        storage_uri=settings.rate_limit_storage_url or "memory://",
    )
