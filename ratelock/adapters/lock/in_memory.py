"""In-process named lock with TTL leases.

Notes:
- Per-process only: suitable for threads sharing one address space and for
  tests. Use the Redis provider across processes or hosts.
- A lease older than its TTL is treated as abandoned and can be taken over.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from ratelock.adapters.lock.base import AbstractDistributedLock, LockHandle
from ratelock.core.errors import LockAcquisitionError

logger = logging.getLogger(__name__)


@dataclass
class _Lease:
    token: str
    expires_at: float


class InMemoryDistributedLock(AbstractDistributedLock):
    """Condition-variable lock keyed by name.

    Args:
        blocking_timeout: Seconds to wait before failing with
            ``LockAcquisitionError``; None waits indefinitely.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        *,
        blocking_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if blocking_timeout is not None and blocking_timeout <= 0:
            raise ValueError("blocking_timeout must be > 0")
        self._blocking_timeout = blocking_timeout
        self._clock = clock
        self._cond = threading.Condition()
        self._leases: dict[str, _Lease] = {}

    def is_locked(self, name: str) -> bool:
        """Return True while a live lease exists for ``name``."""
        with self._cond:
            lease = self._leases.get(name)
            return lease is not None and lease.expires_at > self._clock()

    def acquire(self, name: str, ttl: float) -> LockHandle:
        if ttl <= 0:
            raise ValueError("ttl must be > 0")

        deadline = None
        if self._blocking_timeout is not None:
            deadline = self._clock() + self._blocking_timeout

        with self._cond:
            while True:
                now = self._clock()
                lease = self._leases.get(name)
                if lease is None or lease.expires_at <= now:
                    if lease is not None:
                        logger.warning("lock.lease_expired", extra={"lock_name": name})
                    token = uuid.uuid4().hex
                    self._leases[name] = _Lease(token=token, expires_at=now + ttl)
                    return LockHandle(name=name, token=token)

                wait_for = lease.expires_at - now
                if deadline is not None:
                    if now >= deadline:
                        raise LockAcquisitionError(
                            "Timed out waiting for limiter lock",
                            code="lock_timeout",
                            details={"lock_name": name, "backend": "memory"},
                        )
                    wait_for = min(wait_for, deadline - now)
                self._cond.wait(timeout=wait_for)

    def release(self, handle: LockHandle) -> None:
        with self._cond:
            lease = self._leases.get(handle.name)
            if lease is None or lease.token != handle.token:
                return
            del self._leases[handle.name]
            self._cond.notify_all()
