"""Pure rate-limiting algorithms.

Each policy maps ``(state, now, config)`` to ``(new_state, decision)`` with no
side effects; the consume protocol is responsible for loading and persisting
state under the lock. Times are seconds from the injected clock.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable

from ratelock.schemas.limiter import (
    LimiterConfig,
    Policy,
    SlidingWindowState,
    TokenBucketState,
)

# Absorbs float error so a caller who waits the advertised delay is admitted.
_EPSILON = 1e-9

State = SlidingWindowState | TokenBucketState


@dataclass(frozen=True)
class ConsumeDecision:
    """Outcome of one consume attempt.

    Attributes:
        accepted: Whether the attempt may proceed.
        retry_after_ms: Whole milliseconds to wait before retrying; set only
            when rejected.
        limit: Configured limit of the budget.
        remaining: Whole units still available after this attempt.
    """

    accepted: bool
    retry_after_ms: int | None
    limit: int
    remaining: int


def to_retry_ms(seconds: float) -> int:
    """Convert a delay to whole milliseconds, rounding up and never negative."""

    return max(0, math.ceil(seconds * 1000))


def sliding_window(
    state: SlidingWindowState | None,
    now: float,
    config: LimiterConfig,
) -> tuple[SlidingWindowState, ConsumeDecision]:
    """Admit at most ``config.limit`` units per ``config.interval`` window.

    The window opens at the first attempt after the previous one expired.
    """

    if state is None or now - state.window_start + _EPSILON >= config.interval:
        state = SlidingWindowState(window_start=now, count=0)
    elif now < state.window_start:
        # Clock stepped backwards; keep the window anchored where it was.
        now = state.window_start

    if state.count < config.limit:
        new_state = SlidingWindowState(window_start=state.window_start, count=state.count + 1)
        return new_state, ConsumeDecision(
            accepted=True,
            retry_after_ms=None,
            limit=config.limit,
            remaining=config.limit - new_state.count,
        )

    retry_after = state.window_start + config.interval - now
    return state, ConsumeDecision(
        accepted=False,
        retry_after_ms=to_retry_ms(retry_after),
        limit=config.limit,
        remaining=0,
    )


def token_bucket(
    state: TokenBucketState | None,
    now: float,
    config: LimiterConfig,
) -> tuple[TokenBucketState, ConsumeDecision]:
    """Refill tokens continuously at ``config.refill_rate``, capped at the burst.

    A fresh bucket starts full so the first burst is admitted immediately.
    """

    capacity = float(config.limit)
    rate = config.refill_rate

    if state is None:
        tokens = capacity
    else:
        elapsed = max(0.0, now - state.last_refill)
        tokens = min(capacity, state.tokens + elapsed * rate)
        if state.last_refill > now:
            now = state.last_refill

    if tokens + _EPSILON >= 1.0:
        tokens = max(0.0, tokens - 1.0)
        return TokenBucketState(tokens=tokens, last_refill=now), ConsumeDecision(
            accepted=True,
            retry_after_ms=None,
            limit=config.limit,
            remaining=int(tokens + _EPSILON),
        )

    retry_after = (1.0 - tokens) / rate
    return TokenBucketState(tokens=tokens, last_refill=now), ConsumeDecision(
        accepted=False,
        retry_after_ms=to_retry_ms(retry_after),
        limit=config.limit,
        remaining=0,
    )


_POLICIES: dict[Policy, Callable[..., tuple[State, ConsumeDecision]]] = {
    Policy.SLIDING_WINDOW: sliding_window,
    Policy.TOKEN_BUCKET: token_bucket,
}


def apply_policy(
    state: State | None,
    now: float,
    config: LimiterConfig,
) -> tuple[State, ConsumeDecision]:
    """Run the algorithm selected by ``config.policy``.

    State persisted under another policy (the budget was reconfigured) is
    discarded and the budget starts fresh.
    """

    if state is not None and state.policy != config.policy.value:
        state = None
    return _POLICIES[config.policy](state, now, config)
