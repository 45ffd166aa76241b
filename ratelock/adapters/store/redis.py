"""Redis-backed counter store.

Shares limiter state across every worker and host pointing at the same Redis.
Atomicity still comes from the distributed lock; this store only does plain
GET/SET.
"""

from __future__ import annotations

import logging

import redis
from redis.exceptions import RedisError

from ratelock.adapters.store.base import AbstractCounterStore
from ratelock.core.errors import StoreError

logger = logging.getLogger(__name__)


class RedisCounterStore(AbstractCounterStore):
    """Counter store on top of a synchronous Redis client.

    Args:
        client: Redis client (``decode_responses`` must be False).
        key_prefix: Prefix applied to every key to avoid collisions.
        ttl_seconds: Optional expiry refreshed on every write, so idle
            budgets are eventually dropped by Redis itself.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "ratelock:state:",
        ttl_seconds: int | None = None,
    ) -> None:
        if ttl_seconds is not None and ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        self._client = client
        self._prefix = key_prefix
        self._ttl = ttl_seconds

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisCounterStore":
        """Build a store from a connection URL."""
        return cls(redis.from_url(redis_url), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> bytes | None:
        try:
            value = self._client.get(self._key(key))
        except RedisError as exc:
            logger.error(
                "store.read_failed",
                extra={"backend": "redis", "store_key": key, "error_type": type(exc).__name__},
            )
            raise StoreError(
                "Failed to read limiter state from Redis",
                details={"backend": "redis", "store_key": key},
            ) from exc
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode("utf-8")

    def put(self, key: str, value: bytes) -> None:
        try:
            self._client.set(self._key(key), value, ex=self._ttl)
        except RedisError as exc:
            logger.error(
                "store.write_failed",
                extra={"backend": "redis", "store_key": key, "error_type": type(exc).__name__},
            )
            raise StoreError(
                "Failed to write limiter state to Redis",
                details={"backend": "redis", "store_key": key},
            ) from exc
