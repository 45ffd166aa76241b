"""Unit tests for the pure limiter algorithms."""

import pytest
from pydantic import ValidationError

from ratelock.schemas.limiter import (
    LimiterConfig,
    Policy,
    SlidingWindowState,
    TokenBucketState,
)
from ratelock.services.algorithms import (
    apply_policy,
    sliding_window,
    to_retry_ms,
    token_bucket,
)


def _window(limit: int = 1, interval: float = 1.0) -> LimiterConfig:
    return LimiterConfig(id="w", policy=Policy.SLIDING_WINDOW, limit=limit, interval=interval)


def _bucket(limit: int = 3, interval: float = 1.0, refill_amount: int | None = 1) -> LimiterConfig:
    return LimiterConfig(
        id="b",
        policy=Policy.TOKEN_BUCKET,
        limit=limit,
        interval=interval,
        refill_amount=refill_amount,
    )


def test_to_retry_ms_rounds_up_and_clamps() -> None:
    assert to_retry_ms(0.0) == 0
    assert to_retry_ms(-0.5) == 0
    assert to_retry_ms(0.0001) == 1
    assert to_retry_ms(1.0) == 1000
    assert to_retry_ms(0.9991) == 1000


def test_sliding_window_admits_up_to_limit_then_rejects() -> None:
    config = _window(limit=3, interval=60)
    state = None
    for expected_remaining in (2, 1, 0):
        state, decision = sliding_window(state, 100.0, config)
        assert decision.accepted is True
        assert decision.retry_after_ms is None
        assert decision.remaining == expected_remaining

    state, decision = sliding_window(state, 110.0, config)
    assert decision.accepted is False
    assert decision.retry_after_ms == 50_000
    assert state.count == 3


def test_sliding_window_single_slot_retry_close_to_interval() -> None:
    config = _window(limit=1, interval=1.0)
    state, first = sliding_window(None, 5.0, config)
    state, second = sliding_window(state, 5.002, config)

    assert first.accepted is True
    assert second.accepted is False
    assert 990 <= second.retry_after_ms <= 1000


def test_sliding_window_resets_after_interval() -> None:
    config = _window(limit=1, interval=10)
    state, _ = sliding_window(None, 0.0, config)
    state, blocked = sliding_window(state, 9.0, config)
    assert blocked.accepted is False

    state, decision = sliding_window(state, 10.0, config)
    assert decision.accepted is True
    assert state.window_start == 10.0
    assert state.count == 1


def test_sliding_window_admitted_after_waiting_advertised_delay() -> None:
    config = _window(limit=2, interval=0.7)
    state, _ = sliding_window(None, 3.3, config)
    state, _ = sliding_window(state, 3.41, config)
    state, blocked = sliding_window(state, 3.5, config)
    assert blocked.accepted is False

    _, decision = sliding_window(state, 3.5 + blocked.retry_after_ms / 1000, config)
    assert decision.accepted is True


def test_sliding_window_clock_going_backwards_never_grants_capacity() -> None:
    config = _window(limit=1, interval=10)
    state, _ = sliding_window(None, 50.0, config)

    state, decision = sliding_window(state, 45.0, config)

    assert decision.accepted is False
    assert decision.retry_after_ms == 10_000
    assert state.window_start == 50.0


def test_token_bucket_burst_then_retry_close_to_refill_period() -> None:
    config = _bucket(limit=3, interval=1.0, refill_amount=1)
    state = None
    for _ in range(3):
        state, decision = token_bucket(state, 0.0, config)
        assert decision.accepted is True

    state, decision = token_bucket(state, 0.0, config)
    assert decision.accepted is False
    assert decision.retry_after_ms == 1000
    assert 0.0 <= state.tokens <= config.limit


def test_token_bucket_default_refill_is_limit_per_interval() -> None:
    config = _bucket(limit=4, interval=2.0, refill_amount=None)
    assert config.refill_rate == pytest.approx(2.0)

    state = TokenBucketState(tokens=0.0, last_refill=0.0)
    _, decision = token_bucket(state, 0.0, config)
    assert decision.accepted is False
    assert decision.retry_after_ms == 500


def test_token_bucket_refill_is_capped_at_burst() -> None:
    config = _bucket(limit=3, interval=1.0)
    state = TokenBucketState(tokens=0.0, last_refill=0.0)

    state, decision = token_bucket(state, 3600.0, config)

    assert decision.accepted is True
    assert state.tokens == pytest.approx(2.0)
    assert decision.remaining == 2


def test_token_bucket_admitted_after_waiting_advertised_delay() -> None:
    config = _bucket(limit=1, interval=0.3)
    state, _ = token_bucket(None, 7.1, config)
    state, blocked = token_bucket(state, 7.2, config)
    assert blocked.accepted is False

    _, decision = token_bucket(state, 7.2 + blocked.retry_after_ms / 1000, config)
    assert decision.accepted is True


def test_token_bucket_long_run_rate_approaches_refill() -> None:
    config = _bucket(limit=5, interval=1.0, refill_amount=2)
    state = None
    admitted = 0
    now = 0.0
    # Attempt every 10ms for 100 seconds.
    for _ in range(10_000):
        state, decision = token_bucket(state, now, config)
        admitted += decision.accepted
        now += 0.01

    # Initial burst of 5 plus ~2 per second.
    assert 200 <= admitted <= 206


def test_apply_policy_dispatches_and_discards_foreign_state() -> None:
    config = _window(limit=1, interval=60)
    foreign = TokenBucketState(tokens=0.0, last_refill=0.0)

    state, decision = apply_policy(foreign, 1.0, config)

    assert isinstance(state, SlidingWindowState)
    assert decision.accepted is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"id": "", "policy": Policy.SLIDING_WINDOW, "limit": 1, "interval": 1},
        {"id": "x", "policy": Policy.SLIDING_WINDOW, "limit": 0, "interval": 1},
        {"id": "x", "policy": Policy.TOKEN_BUCKET, "limit": 1, "interval": 0},
        {"id": "x", "policy": Policy.TOKEN_BUCKET, "limit": 1, "interval": 1, "refill_amount": 0},
    ],
)
def test_invalid_config_rejected(kwargs: dict) -> None:
    with pytest.raises(ValidationError):
        LimiterConfig(**kwargs)


def test_config_is_immutable() -> None:
    config = _window()
    with pytest.raises(ValidationError):
        config.limit = 5
