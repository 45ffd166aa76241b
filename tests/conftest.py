"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any ratelock import so the global
settings object is built from them.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOCK_BACKEND", "memory")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "true")

import pytest  # noqa: E402

from ratelock.adapters.lock.in_memory import InMemoryDistributedLock  # noqa: E402
from ratelock.adapters.store.in_memory import InMemoryCounterStore  # noqa: E402


class FakeClock:
    """Deterministic clock; ``sleep`` advances it instead of blocking."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    def sleep(self, seconds: float) -> None:
        self.advance(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def lock() -> InMemoryDistributedLock:
    return InMemoryDistributedLock()
