"""Rate limiting dependency for FastAPI routes.

This module wires the lock-guarded limiter into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency instance only.
- Shared budget: every worker pointing at the same store and lock provider
  enforces one limit per requester.
- Fail fast: a request over budget is rejected with 429 instead of blocking
  the worker; the exception handlers attach Retry-After.

Limiting strategy:
- One budget per API key (hashed into the limiter id).
- If the API key is missing, fall back to the client IP.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Header, Request
from fastapi.concurrency import run_in_threadpool

from ratelock.core.config import settings
from ratelock.core.errors import RateLimitExceeded
from ratelock.schemas.limiter import LimiterConfig, Policy
from ratelock.services.consume import RateLimitGuard
from ratelock.services.middleware import RateLimiterMiddleware
from ratelock.services.overflow import FailFastHandler, OverflowHandler

logger = logging.getLogger(__name__)


def _build_rate_limit_key(request: Request, x_api_key: str | None) -> tuple[str, str]:
    """Return ``(key_type, raw_key)`` identifying the requester."""

    if x_api_key:
        return "api_key", x_api_key

    client_host = request.client.host if request.client else "unknown"
    return "ip", client_host


def _hash_limiter_key(key: str) -> str:
    """Hash the requester key so secrets never reach the store or the logs."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class RateLimitDependency:
    """FastAPI dependency consuming one unit per request.

    Args:
        guard: Lock-guarded consume protocol shared by all workers.
        limit: Units per window, or burst size for token bucket.
        interval: Window length or refill period in seconds.
        policy: Limiter algorithm.
        scope: Namespace prefixed to every limiter id (e.g. route group).
        handler: Overflow strategy; fail-fast so workers never sleep.

    Example:
        >>> limit = RateLimitDependency(guard, limit=10, interval=60, scope="cv")
        >>> @router.post("/cv/parse", dependencies=[Depends(limit)])
        ... async def parse(): ...
    """

    def __init__(
        self,
        guard: RateLimitGuard,
        *,
        limit: int,
        interval: float,
        policy: Policy = Policy.SLIDING_WINDOW,
        scope: str = "http",
        handler: OverflowHandler | None = None,
    ) -> None:
        self.guard = guard
        self.limit = limit
        self.interval = interval
        self.policy = policy
        self.scope = scope
        self.handler = handler if handler is not None else FailFastHandler(normalize_ms=None)

    def config_for(self, key_type: str, key: str) -> LimiterConfig:
        return LimiterConfig(
            id=f"{self.scope}:{key_type}:{_hash_limiter_key(key)}",
            policy=self.policy,
            limit=self.limit,
            interval=self.interval,
        )

    async def __call__(
        self,
        request: Request,
        x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
    ) -> None:
        """Consume one unit of the requester's budget.

        Raises:
            RateLimitExceeded: Budget exhausted; rendered as HTTP 429.
            StoreError: Limiter state unavailable; rendered as HTTP 503.
        """

        if not settings.app.rate_limit_enabled:
            return

        key_type, key = _build_rate_limit_key(request, x_api_key)
        config = self.config_for(key_type, key)
        middleware = RateLimiterMiddleware(self.guard, config, self.handler)

        try:
            # Lock acquisition may block; keep it off the event loop.
            decision = await run_in_threadpool(middleware.acquire)
        except RateLimitExceeded as exc:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "key_type": key_type,
                    "limiter_id": config.id,
                    "limit": config.limit,
                    "retry_after_ms": exc.retry_after_ms,
                },
            )
            raise

        logger.info(
            "rate_limit.allowed",
            extra={
                "key_type": key_type,
                "limiter_id": config.id,
                "limit": decision.limit,
                "remaining": decision.remaining,
            },
        )
