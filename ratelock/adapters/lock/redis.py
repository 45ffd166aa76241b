"""Redis-backed distributed lock.

Wraps ``redis.lock.Lock``: a SET NX PX lease with a random token, released by
a token-checking script. Keys are prefixed to avoid collisions with state.
"""

from __future__ import annotations

import logging

import redis
from redis.exceptions import LockError, RedisError

from ratelock.adapters.lock.base import AbstractDistributedLock, LockHandle
from ratelock.core.errors import LockAcquisitionError

logger = logging.getLogger(__name__)


class RedisDistributedLock(AbstractDistributedLock):
    """Named lock shared by every process using the same Redis.

    Args:
        client: Redis client.
        key_prefix: Prefix applied to every lock name.
        blocking_timeout: Seconds to wait before failing with
            ``LockAcquisitionError``; None waits indefinitely.
        sleep: Polling interval while the lock is contended.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "ratelock:lock:",
        blocking_timeout: float | None = None,
        sleep: float = 0.01,
    ) -> None:
        self._client = client
        self._prefix = key_prefix
        self._blocking_timeout = blocking_timeout
        self._sleep = sleep

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisDistributedLock":
        """Build a lock provider from a connection URL."""
        return cls(redis.from_url(redis_url), **kwargs)

    def acquire(self, name: str, ttl: float) -> LockHandle:
        key = f"{self._prefix}{name}"
        lock = self._client.lock(
            key,
            timeout=ttl,
            sleep=self._sleep,
            blocking=True,
            blocking_timeout=self._blocking_timeout,
            thread_local=False,
        )
        try:
            acquired = lock.acquire()
        except RedisError as exc:
            logger.warning(
                "lock.acquire_failed",
                extra={"backend": "redis", "lock_name": name, "error_type": type(exc).__name__},
            )
            raise LockAcquisitionError(
                "Redis lock provider failed",
                details={"backend": "redis", "lock_name": name},
            ) from exc

        if not acquired:
            raise LockAcquisitionError(
                "Timed out waiting for limiter lock",
                code="lock_timeout",
                details={"backend": "redis", "lock_name": name},
            )

        token = lock.local.token
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return LockHandle(name=name, token=str(token), lease=lock)

    def release(self, handle: LockHandle) -> None:
        lock = handle.lease
        if lock is None:
            return
        try:
            lock.release()
        except LockError:
            # Already released, or the lease expired and someone else owns it.
            logger.debug("lock.release_skipped", extra={"backend": "redis", "lock_name": handle.name})
        except RedisError as exc:
            # The TTL bounds how long an unreleased lease blocks other callers.
            logger.warning(
                "lock.release_failed",
                extra={"backend": "redis", "lock_name": handle.name, "error_type": type(exc).__name__},
            )
