"""Retry driver gating downstream calls on the shared budget.

The loop has two states: attempting and done. Every iteration performs one
lock-guarded consume; an accepted attempt invokes the downstream call once,
a rejected one (or a failed lock acquisition) is handed to the overflow
handler, whose signal decides between another attempt and aborting.

Usage:
    middleware = per_second(5, store=store, lock=lock, limiter_id="github")
    response = middleware.run(session.get, "https://api.github.com/")

    # or, decorator style for ``(request, options)`` handlers
    send = middleware(transport_send)
    response = send(request, options)
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, TypeVar

from ratelock.core.errors import LockAcquisitionError, RateLimitExceeded
from ratelock.schemas.limiter import LimiterConfig
from ratelock.services.algorithms import ConsumeDecision
from ratelock.services.consume import RateLimitGuard
from ratelock.services.overflow import Abort, OverflowHandler, SleepHandler

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LOCK_BACKOFF_MS = 1000


class RateLimiterMiddleware:
    """Admit downstream calls only when the budget allows.

    Args:
        guard: Lock-guarded consume protocol.
        config: Budget consumed by every call.
        handler: Overflow strategy; blocks and retries by default.
        lock_backoff_ms: Delay handed to the handler when the lock provider
            fails, so a struggling provider is not hammered.
        cancel: Optional event checked between iterations.
    """

    def __init__(
        self,
        guard: RateLimitGuard,
        config: LimiterConfig,
        handler: OverflowHandler | None = None,
        *,
        lock_backoff_ms: int = DEFAULT_LOCK_BACKOFF_MS,
        cancel: threading.Event | None = None,
    ) -> None:
        if lock_backoff_ms < 0:
            raise ValueError("lock_backoff_ms must be >= 0")
        self.guard = guard
        self.config = config
        self.handler = handler if handler is not None else SleepHandler()
        self.lock_backoff_ms = lock_backoff_ms
        self.cancel = cancel

    def acquire(self) -> ConsumeDecision:
        """Block (or abort, depending on the handler) until one unit is consumed.

        Returns:
            The accepted decision, for callers reporting remaining budget.

        Raises:
            RateLimitExceeded: The handler aborted or the loop was cancelled.
            StoreError: State could not be loaded or persisted.
        """

        last_wait_ms = 0
        while True:
            if self.cancel is not None and self.cancel.is_set():
                logger.info("middleware.cancelled", extra={"limiter_id": self.config.id})
                raise self._with_limiter_details(
                    RateLimitExceeded(last_wait_ms, "Rate limit wait cancelled")
                )

            try:
                decision = self.guard.attempt_consume(self.config)
            except LockAcquisitionError as exc:
                logger.warning(
                    "middleware.lock_backoff",
                    extra={
                        "limiter_id": self.config.id,
                        "error_code": exc.code,
                        "backoff_ms": self.lock_backoff_ms,
                    },
                )
                last_wait_ms = self.lock_backoff_ms
            else:
                if decision.accepted:
                    return decision
                last_wait_ms = decision.retry_after_ms or 0

            signal = self.handler.handle(last_wait_ms)
            if isinstance(signal, Abort):
                raise self._with_limiter_details(signal.error)

    def _with_limiter_details(self, error: RateLimitExceeded) -> RateLimitExceeded:
        if error.details is not None:
            error.details.setdefault("limiter_id", self.config.id)
            error.details.setdefault("limit", self.config.limit)
            error.details.setdefault("remaining", 0)
        return error

    def run(self, call: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Invoke ``call`` once the budget admits it and return its result.

        Errors raised by ``call`` itself propagate untouched.
        """

        self.acquire()
        return call(*args, **kwargs)

    def __call__(self, next_handler: Callable[[Any, dict[str, Any]], T]) -> Callable[..., T]:
        """Wrap a ``(request, options)`` handler so each call is rate limited."""

        def wrapped(request: Any, options: dict[str, Any] | None = None) -> T:
            return self.run(next_handler, request, options if options is not None else {})

        return wrapped
