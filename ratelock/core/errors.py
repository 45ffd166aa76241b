"""Application-level exception types.

This module defines the domain errors raised by the limiter, the lock and
store adapters, and the overflow handlers, enabling consistent error
handling, logging, and HTTP responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional; adapters fill in what they know.
    """

    code: str
    message: str
    hint: str
    limiter_id: str
    lock_name: str
    store_key: str
    backend: str
    retry_after_ms: int
    limit: int
    remaining: int
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for limiter failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class LockAcquisitionError(AppError):
    """Raised when the lock provider fails to hand out a lock.

    Contention never raises this; it only blocks. The middleware treats it as
    a transient rate-limit event.
    """

    def __init__(
        self,
        message: str = "Failed to acquire limiter lock",
        *,
        code: str = "lock_acquisition_failed",
        details: ErrorDetails | None = None,
    ) -> None:
        super().__init__(code=code, message=message, details=details)


class StoreError(AppError):
    """Raised when the counter store cannot load or persist limiter state."""

    def __init__(
        self,
        message: str = "Counter store operation failed",
        *,
        code: str = "store_error",
        details: ErrorDetails | None = None,
    ) -> None:
        super().__init__(code=code, message=message, details=details)


class RateLimitExceeded(AppError):
    """Abort signal raised when a fail-fast handler rejects a request.

    Expected rather than exceptional: callers use ``retry_after_ms`` to
    schedule their own deferred retry (e.g. requeue a message with a delay).
    """

    def __init__(
        self,
        retry_after_ms: int,
        message: str = "Rate limit exceeded",
        *,
        details: ErrorDetails | None = None,
    ) -> None:
        merged: ErrorDetails = {"retry_after_ms": retry_after_ms}
        if details:
            merged.update(details)
        super().__init__(code="rate_limit_exceeded", message=message, details=merged)
        self.retry_after_ms = retry_after_ms
