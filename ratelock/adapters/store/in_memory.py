"""In-memory counter store.

Notes:
- Per-process only: separate processes each see their own state.
- Thread-safe: uses a lock around the dict so readers never see torn writes.
"""

from __future__ import annotations

import threading

from ratelock.adapters.store.base import AbstractCounterStore


class InMemoryCounterStore(AbstractCounterStore):
    """Dict-backed store for tests and single-process deployments."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._data: dict[str, bytes] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCounterStore(keys={len(self._data)})"

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = value

    def clear(self) -> None:
        """Drop all stored state."""
        with self._lock:
            self._data.clear()
