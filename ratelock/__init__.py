"""Distributed, lock-guarded request-rate limiter."""

from ratelock.core.errors import (
    AppError,
    LockAcquisitionError,
    RateLimitExceeded,
    StoreError,
    ValidationAppError,
)
from ratelock.schemas.limiter import LimiterConfig, Policy
from ratelock.services.algorithms import ConsumeDecision
from ratelock.services.consume import RateLimitGuard
from ratelock.services.factory import (
    build_from_settings,
    per_minute,
    per_second,
    per_x_minutes,
    per_x_seconds,
    token_bucket,
)
from ratelock.services.middleware import RateLimiterMiddleware
from ratelock.services.overflow import FailFastHandler, SleepHandler

__all__ = [
    "AppError",
    "ConsumeDecision",
    "FailFastHandler",
    "LimiterConfig",
    "LockAcquisitionError",
    "Policy",
    "RateLimitExceeded",
    "RateLimitGuard",
    "RateLimiterMiddleware",
    "SleepHandler",
    "StoreError",
    "ValidationAppError",
    "build_from_settings",
    "per_minute",
    "per_second",
    "per_x_minutes",
    "per_x_seconds",
    "token_bucket",
]
