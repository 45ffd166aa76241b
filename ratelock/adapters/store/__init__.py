"""Counter store adapters holding serialized limiter state."""

from ratelock.adapters.store.base import AbstractCounterStore
from ratelock.adapters.store.file import FileCounterStore
from ratelock.adapters.store.in_memory import InMemoryCounterStore
from ratelock.adapters.store.redis import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "FileCounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
]
