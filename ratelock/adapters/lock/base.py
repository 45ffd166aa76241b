"""Distributed lock interface.

The consume protocol only needs a named lock with blocking acquire, a safety
TTL, and idempotent release. Consensus and leasing are the provider's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass(frozen=True)
class LockHandle:
    """Proof of ownership for one acquisition.

    Attributes:
        name: Lock resource name.
        token: Unique token identifying this holder.
        lease: Provider-specific object needed to release the lock.
    """

    name: str
    token: str
    lease: Any = field(default=None, compare=False, repr=False)


class AbstractDistributedLock(ABC):
    """Interface for named mutual-exclusion providers."""

    @abstractmethod
    def acquire(self, name: str, ttl: float) -> LockHandle:
        """Block until the lock ``name`` is held by the caller.

        Args:
            name: Lock resource name.
            ttl: Seconds after which the lock expires on its own, so a crashed
                holder cannot starve other callers.

        Returns:
            LockHandle to pass to ``release``.

        Raises:
            LockAcquisitionError: On provider failure. Contention blocks instead.
        """
        raise NotImplementedError

    @abstractmethod
    def release(self, handle: LockHandle) -> None:
        """Release a held lock. Releasing twice, or after expiry, is a no-op."""
        raise NotImplementedError

    @contextmanager
    def hold(self, name: str, ttl: float) -> Iterator[LockHandle]:
        """Hold ``name`` for the duration of the block, releasing on every exit path."""
        handle = self.acquire(name, ttl)
        try:
            yield handle
        finally:
            self.release(handle)
