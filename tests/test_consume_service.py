"""Tests for the lock-guarded consume protocol."""

from unittest.mock import MagicMock

import pytest

from ratelock.adapters.lock.in_memory import InMemoryDistributedLock
from ratelock.adapters.store.base import AbstractCounterStore
from ratelock.adapters.store.in_memory import InMemoryCounterStore
from ratelock.core.errors import LockAcquisitionError, StoreError
from ratelock.schemas.limiter import LimiterConfig, Policy, SlidingWindowState, load_state
from ratelock.services import consume
from ratelock.services.consume import RateLimitGuard


class CountingLock(InMemoryDistributedLock):
    """In-memory lock that records acquisitions and releases."""

    def __init__(self) -> None:
        super().__init__()
        self.acquired: list[str] = []
        self.released: list[str] = []
        self.ttls: list[float] = []

    def acquire(self, name, ttl):
        handle = super().acquire(name, ttl)
        self.acquired.append(handle.token)
        self.ttls.append(ttl)
        return handle

    def release(self, handle):
        self.released.append(handle.token)
        super().release(handle)


class FailingStore(AbstractCounterStore):
    def __init__(self, *, fail_get: bool = False, fail_put: bool = False) -> None:
        self.fail_get = fail_get
        self.fail_put = fail_put

    def get(self, key):
        if self.fail_get:
            raise StoreError("read failed")
        return None

    def put(self, key, value):
        if self.fail_put:
            raise OSError("disk full")


def _config(limiter_id: str = "api", limit: int = 1, interval: float = 1.0) -> LimiterConfig:
    return LimiterConfig(id=limiter_id, policy=Policy.SLIDING_WINDOW, limit=limit, interval=interval)


def test_first_accepted_second_rejected_with_retry_close_to_interval(clock) -> None:
    guard = RateLimitGuard(InMemoryCounterStore(), InMemoryDistributedLock(), clock=clock)
    config = _config(limit=1, interval=1.0)

    first = guard.attempt_consume(config)
    clock.advance(0.001)
    second = guard.attempt_consume(config)

    assert first.accepted is True
    assert second.accepted is False
    assert 990 <= second.retry_after_ms <= 1000


def test_rejected_attempt_still_persists_state(clock) -> None:
    store = InMemoryCounterStore()
    guard = RateLimitGuard(store, InMemoryDistributedLock(), clock=clock)
    config = _config(limit=1, interval=10)

    guard.attempt_consume(config)
    put_spy = MagicMock(wraps=store.put)
    store.put = put_spy

    decision = guard.attempt_consume(config)

    assert decision.accepted is False
    put_spy.assert_called_once()
    assert load_state(store.get("api"), key="api") == SlidingWindowState(window_start=1000.0, count=1)


def test_distinct_ids_do_not_interfere(clock) -> None:
    guard = RateLimitGuard(InMemoryCounterStore(), InMemoryDistributedLock(), clock=clock)
    one = _config("client-1")
    two = _config("client-2")

    assert guard.attempt_consume(one).accepted is True
    assert guard.attempt_consume(one).accepted is False

    assert guard.attempt_consume(two).accepted is True
    assert guard.attempt_consume(two).accepted is False


def test_lock_released_exactly_once_on_success_and_rejection(clock) -> None:
    lock = CountingLock()
    guard = RateLimitGuard(InMemoryCounterStore(), lock, clock=clock)

    guard.attempt_consume(_config())
    guard.attempt_consume(_config())

    assert lock.acquired == lock.released
    assert len(lock.released) == 2
    assert lock.ttls == [consume.DEFAULT_LOCK_TTL_SECONDS] * 2


@pytest.mark.parametrize(
    "store",
    [FailingStore(fail_get=True), FailingStore(fail_put=True)],
)
def test_store_failure_propagates_and_releases_lock(store, clock) -> None:
    lock = CountingLock()
    guard = RateLimitGuard(store, lock, clock=clock)

    with pytest.raises(StoreError):
        guard.attempt_consume(_config())

    assert lock.acquired == lock.released
    assert lock.is_locked("api") is False


def test_algorithm_failure_releases_lock(monkeypatch: pytest.MonkeyPatch, clock) -> None:
    lock = CountingLock()
    guard = RateLimitGuard(InMemoryCounterStore(), lock, clock=clock)
    monkeypatch.setattr(consume, "apply_policy", MagicMock(side_effect=ArithmeticError("bad")))

    with pytest.raises(ArithmeticError):
        guard.attempt_consume(_config())

    assert lock.acquired == lock.released


def test_lock_failure_leaves_state_untouched(clock) -> None:
    store = MagicMock(spec=AbstractCounterStore)
    lock = MagicMock()
    lock.acquire.side_effect = LockAcquisitionError()
    guard = RateLimitGuard(store, lock, clock=clock)

    with pytest.raises(LockAcquisitionError):
        guard.attempt_consume(_config())

    store.get.assert_not_called()
    store.put.assert_not_called()
    lock.release.assert_not_called()


def test_lock_name_uses_prefix(clock) -> None:
    lock = MagicMock()
    store = InMemoryCounterStore()
    guard = RateLimitGuard(store, lock, lock_prefix="limiter:", lock_ttl=5, clock=clock)

    guard.attempt_consume(_config("github"))

    lock.acquire.assert_called_once_with("limiter:github", 5)
    lock.release.assert_called_once_with(lock.acquire.return_value)


def test_invalid_lock_ttl() -> None:
    with pytest.raises(ValueError):
        RateLimitGuard(InMemoryCounterStore(), InMemoryDistributedLock(), lock_ttl=0)


def test_hosts_sharing_wall_clock_admit_after_advertised_wait(clock) -> None:
    store = InMemoryCounterStore()
    lock = InMemoryDistributedLock()
    host_a = RateLimitGuard(store, lock, clock=clock)
    host_b = RateLimitGuard(store, lock, clock=clock)
    config = _config(limit=1, interval=1.0)

    assert host_a.attempt_consume(config).accepted is True
    rejected = host_b.attempt_consume(config)
    clock.advance(rejected.retry_after_ms / 1000)

    assert rejected.accepted is False
    assert host_b.attempt_consume(config).accepted is True


def test_host_behind_writer_is_admitted_once_skew_elapses(clock) -> None:
    store = InMemoryCounterStore()
    lock = InMemoryDistributedLock()
    host_a = RateLimitGuard(store, lock, clock=lambda: clock() + 0.3)
    host_b = RateLimitGuard(store, lock, clock=clock)
    config = _config(limit=1, interval=1.0)

    host_a.attempt_consume(config)
    waits = []
    for _ in range(3):
        decision = host_b.attempt_consume(config)
        if decision.accepted:
            break
        waits.append(decision.retry_after_ms)
        clock.advance(decision.retry_after_ms / 1000)

    assert decision.accepted is True
    assert sum(waits) < 1400
