"""Lock-guarded check-and-consume.

``RateLimitGuard.attempt_consume`` is the atomic unit of the limiter: it
acquires the lock named after the budget, loads state, runs the algorithm,
persists the new state (accepted or not), and releases the lock on every
exit path. No other code reads or writes limiter state.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from ratelock.adapters.lock.base import AbstractDistributedLock
from ratelock.adapters.store.base import AbstractCounterStore
from ratelock.core.errors import LockAcquisitionError, StoreError
from ratelock.core.logging import bind_limiter_id
from ratelock.schemas.limiter import LimiterConfig, dump_state, load_state
from ratelock.services.algorithms import ConsumeDecision, apply_policy

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL_SECONDS = 30.0


class RateLimitGuard:
    """Run limiter algorithms against a shared store under a distributed lock.

    Args:
        store: Counter store holding serialized state per limiter id.
        lock: Lock provider serializing access per limiter id.
        lock_ttl: Safety expiry for the lock, far above the critical section.
        lock_prefix: Prefix turning a limiter id into a lock resource name.
        clock: Time source in seconds; monotonic by default.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        lock: AbstractDistributedLock,
        *,
        lock_ttl: float = DEFAULT_LOCK_TTL_SECONDS,
        lock_prefix: str = "",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if lock_ttl <= 0:
            raise ValueError("lock_ttl must be > 0")
        self._store = store
        self._lock = lock
        self._lock_ttl = lock_ttl
        self._lock_prefix = lock_prefix
        self._clock = clock

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    @property
    def lock(self) -> AbstractDistributedLock:
        return self._lock

    def lock_name(self, config: LimiterConfig) -> str:
        return f"{self._lock_prefix}{config.id}"

    def attempt_consume(self, config: LimiterConfig) -> ConsumeDecision:
        """Consume one unit from ``config``'s budget if available.

        Args:
            config: Budget to consume from.

        Returns:
            ConsumeDecision with the admission outcome and retry hint.

        Raises:
            LockAcquisitionError: The lock provider failed; state untouched.
            StoreError: State could not be loaded or persisted.
        """

        with bind_limiter_id(config.id):
            try:
                handle = self._lock.acquire(self.lock_name(config), self._lock_ttl)
            except LockAcquisitionError:
                logger.warning("lock.acquire_failed", extra={"lock_name": self.lock_name(config)})
                raise

            try:
                decision = self._consume_locked(config)
            finally:
                self._lock.release(handle)

        if decision.accepted:
            logger.debug(
                "consume.accepted",
                extra={"limiter_id": config.id, "remaining": decision.remaining},
            )
        else:
            logger.info(
                "consume.rejected",
                extra={"limiter_id": config.id, "retry_after_ms": decision.retry_after_ms},
            )
        return decision

    def _consume_locked(self, config: LimiterConfig) -> ConsumeDecision:
        key = config.id
        raw = self._call_store("get", key)
        state = load_state(raw, key=key) if raw is not None else None

        new_state, decision = apply_policy(state, self._clock(), config)

        # Persist rejected attempts too so refill/window accounting stays monotonic.
        self._call_store("put", key, dump_state(new_state))
        return decision

    def _call_store(self, operation: str, key: str, *args):
        try:
            return getattr(self._store, operation)(key, *args)
        except StoreError:
            raise
        except Exception as exc:
            logger.error(
                "store.operation_failed",
                extra={"operation": operation, "store_key": key, "error_type": type(exc).__name__},
            )
            raise StoreError(
                f"Counter store {operation} failed",
                details={"store_key": key, "context": {"operation": operation}},
            ) from exc
