"""Distributed lock adapters guarding the consume critical section."""

from ratelock.adapters.lock.base import AbstractDistributedLock, LockHandle
from ratelock.adapters.lock.in_memory import InMemoryDistributedLock
from ratelock.adapters.lock.redis import RedisDistributedLock

__all__ = [
    "AbstractDistributedLock",
    "InMemoryDistributedLock",
    "LockHandle",
    "RedisDistributedLock",
]
