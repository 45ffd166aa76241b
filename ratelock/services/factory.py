"""Factory helpers for common limiter shapes and settings-driven wiring."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Callable

from ratelock.adapters.lock.base import AbstractDistributedLock
from ratelock.adapters.lock.in_memory import InMemoryDistributedLock
from ratelock.adapters.lock.redis import RedisDistributedLock
from ratelock.adapters.store.base import AbstractCounterStore
from ratelock.adapters.store.file import FileCounterStore
from ratelock.adapters.store.in_memory import InMemoryCounterStore
from ratelock.adapters.store.redis import RedisCounterStore
from ratelock.core.config import (
    LockSettings,
    OverflowSettings,
    Settings,
    StoreSettings,
    settings as default_settings,
)
from ratelock.core.errors import ValidationAppError
from ratelock.schemas.limiter import LimiterConfig, Policy
from ratelock.services.consume import DEFAULT_LOCK_TTL_SECONDS, RateLimitGuard
from ratelock.services.middleware import DEFAULT_LOCK_BACKOFF_MS, RateLimiterMiddleware
from ratelock.services.overflow import FailFastHandler, OverflowHandler, SleepHandler

_CLOCKS: dict[str, Callable[[], float]] = {
    "monotonic": time.monotonic,
    "wall": time.time,
}


def _seconds(interval: float | timedelta) -> float:
    if isinstance(interval, timedelta):
        return interval.total_seconds()
    return float(interval)


def create_middleware(
    config: LimiterConfig,
    *,
    store: AbstractCounterStore,
    lock: AbstractDistributedLock,
    handler: OverflowHandler | None = None,
    lock_ttl: float = DEFAULT_LOCK_TTL_SECONDS,
    lock_prefix: str = "",
    lock_backoff_ms: int = DEFAULT_LOCK_BACKOFF_MS,
    clock: Callable[[], float] = time.monotonic,
) -> RateLimiterMiddleware:
    """Wire a guard and middleware around ``config``."""

    guard = RateLimitGuard(store, lock, lock_ttl=lock_ttl, lock_prefix=lock_prefix, clock=clock)
    return RateLimiterMiddleware(guard, config, handler, lock_backoff_ms=lock_backoff_ms)


def per_x_seconds(
    seconds: float,
    limit: int,
    *,
    limiter_id: str,
    **kwargs,
) -> RateLimiterMiddleware:
    """Allow ``limit`` calls every ``seconds`` seconds (sliding window)."""

    config = LimiterConfig(
        id=limiter_id,
        policy=Policy.SLIDING_WINDOW,
        limit=limit,
        interval=float(seconds),
    )
    return create_middleware(config, **kwargs)


def per_second(limit: int, *, limiter_id: str, **kwargs) -> RateLimiterMiddleware:
    """Allow ``limit`` calls per second."""
    return per_x_seconds(1, limit, limiter_id=limiter_id, **kwargs)


def per_x_minutes(minutes: float, limit: int, *, limiter_id: str, **kwargs) -> RateLimiterMiddleware:
    """Allow ``limit`` calls every ``minutes`` minutes."""
    return per_x_seconds(minutes * 60, limit, limiter_id=limiter_id, **kwargs)


def per_minute(limit: int, *, limiter_id: str, **kwargs) -> RateLimiterMiddleware:
    """Allow ``limit`` calls per minute."""
    return per_x_minutes(1, limit, limiter_id=limiter_id, **kwargs)


def token_bucket(
    rate_interval: float | timedelta,
    burst: int,
    *,
    limiter_id: str,
    amount: int = 1,
    **kwargs,
) -> RateLimiterMiddleware:
    """Refill ``amount`` tokens every ``rate_interval``, holding at most ``burst``.

    Example:
        ``token_bucket(timedelta(seconds=1), 3, limiter_id="api")`` admits three
        back-to-back calls, then one per second.
    """

    config = LimiterConfig(
        id=limiter_id,
        policy=Policy.TOKEN_BUCKET,
        limit=burst,
        interval=_seconds(rate_interval),
        refill_amount=amount,
    )
    return create_middleware(config, **kwargs)


def build_store(store_settings: StoreSettings) -> AbstractCounterStore:
    """Instantiate the configured counter store.

    Raises:
        ValidationAppError: If backend-specific settings are missing.
    """

    if store_settings.backend == "memory":
        return InMemoryCounterStore()
    if store_settings.backend == "file":
        return FileCounterStore(store_settings.file_dir)
    if store_settings.backend == "redis":
        if not store_settings.redis_url:
            raise ValidationAppError(
                code="store_missing_redis_url",
                message="Redis store requires STORE_REDIS_URL",
            )
        return RedisCounterStore.from_url(
            store_settings.redis_url,
            key_prefix=store_settings.key_prefix,
            ttl_seconds=store_settings.ttl_seconds,
        )

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown store backend: '{store_settings.backend}'",
    )


def build_lock(lock_settings: LockSettings) -> AbstractDistributedLock:
    """Instantiate the configured lock provider.

    Raises:
        ValidationAppError: If backend-specific settings are missing.
    """

    if lock_settings.backend == "memory":
        return InMemoryDistributedLock(blocking_timeout=lock_settings.blocking_timeout_seconds)
    if lock_settings.backend == "redis":
        if not lock_settings.redis_url:
            raise ValidationAppError(
                code="lock_missing_redis_url",
                message="Redis lock requires LOCK_REDIS_URL",
            )
        return RedisDistributedLock.from_url(
            lock_settings.redis_url,
            key_prefix=lock_settings.key_prefix,
            blocking_timeout=lock_settings.blocking_timeout_seconds,
        )

    raise ValidationAppError(
        code="lock_unknown_backend",
        message=f"Unknown lock backend: '{lock_settings.backend}'",
    )


def build_handler(overflow_settings: OverflowSettings) -> OverflowHandler:
    """Instantiate the configured overflow strategy."""

    kwargs = {
        "normalize_ms": overflow_settings.normalize_ms,
        "min_ms": overflow_settings.min_ms,
        "max_ms": overflow_settings.max_ms,
        "jitter": overflow_settings.jitter,
    }
    if overflow_settings.strategy == "fail_fast":
        return FailFastHandler(**kwargs)
    return SleepHandler(**kwargs)


def _resolve_clock(cfg: Settings) -> str:
    """Pick the time source; state shared across hosts needs the wall clock.

    Monotonic clocks have a per-host origin, so a host behind the writer
    would read timestamps from its future and never see the window end.
    """

    shared_across_hosts = cfg.store.backend == "redis"
    if cfg.limiter.clock is None:
        return "wall" if shared_across_hosts else "monotonic"
    if cfg.limiter.clock == "monotonic" and shared_across_hosts:
        raise ValidationAppError(
            code="limiter_clock_not_shared",
            message="Redis store requires LIMITER_CLOCK=wall",
            details={"backend": "redis", "hint": "Unset LIMITER_CLOCK or set it to 'wall'"},
        )
    return cfg.limiter.clock


def _check_lock_spans_store(cfg: Settings) -> None:
    """Reject a process-local lock over a store other processes can write."""

    if cfg.store.backend != "memory" and cfg.lock.backend == "memory":
        raise ValidationAppError(
            code="lock_not_shared",
            message=f"{cfg.store.backend.capitalize()} store requires LOCK_BACKEND=redis",
            details={
                "backend": cfg.store.backend,
                "hint": "The memory lock only serializes threads of one process",
            },
        )


def build_from_settings(
    cfg: Settings | None = None,
    *,
    store: AbstractCounterStore | None = None,
    lock: AbstractDistributedLock | None = None,
) -> RateLimiterMiddleware:
    """Build the default middleware from environment settings.

    Args:
        cfg: Settings to use; defaults to the global settings.
        store: Pre-built store overriding the configured backend.
        lock: Pre-built lock overriding the configured backend.

    Raises:
        ValidationAppError: If the store is shared beyond what the configured
            lock or clock can coordinate.
    """

    cfg = cfg or default_settings
    clock_name = _resolve_clock(cfg)
    if lock is None:
        _check_lock_spans_store(cfg)
    config = LimiterConfig(
        id=cfg.limiter.id,
        policy=Policy(cfg.limiter.policy),
        limit=cfg.limiter.limit,
        interval=cfg.limiter.interval_seconds,
    )
    return create_middleware(
        config,
        store=store or build_store(cfg.store),
        lock=lock or build_lock(cfg.lock),
        handler=build_handler(cfg.overflow),
        lock_ttl=cfg.lock.ttl_seconds,
        lock_backoff_ms=cfg.overflow.lock_backoff_ms,
        clock=_CLOCKS[clock_name],
    )
