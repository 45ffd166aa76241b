"""Counter store interface.

The consume protocol depends on this abstraction (not a concrete backend) so
in-process, file-based, and Redis stores can be swapped freely.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractCounterStore(ABC):
    """Key-value storage for serialized limiter state.

    Implementations need not be atomic: every read-modify-write happens under
    the limiter's distributed lock. Backend failures must surface as
    ``StoreError``.
    """

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the stored bytes for ``key``, or None when absent.

        Raises:
            StoreError: If the backend cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any previous value.

        Raises:
            StoreError: If the backend cannot be written.
        """
        raise NotImplementedError
