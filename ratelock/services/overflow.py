"""Strategies applied when a consume attempt is rejected.

A handler receives the advertised wait in milliseconds and returns an
explicit ``Signal``: ``Retry`` tells the middleware loop to attempt again,
``Abort`` ends the loop with a ``RateLimitExceeded`` the caller can act on.

Delay shaping is shared by every handler:
1. Normalize: waits at or above ``normalize_ms`` round up to the next
   multiple of it; shorter waits pass through unchanged.
2. Jitter: add up to ``jitter * wait`` random milliseconds (off by default).
3. Clamp to ``[min_ms, max_ms]``.
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from ratelock.core.errors import RateLimitExceeded, ValidationAppError

logger = logging.getLogger(__name__)

DEFAULT_NORMALIZE_MS = 2000
DEFAULT_MIN_MS = 0
DEFAULT_MAX_MS = 300_000


@dataclass(frozen=True)
class Retry:
    """Attempt the consume step again."""

    waited_ms: int = 0


@dataclass(frozen=True)
class Abort:
    """Stop the loop and surface ``error`` to the caller."""

    error: RateLimitExceeded


Signal = Retry | Abort


def normalize_delay(wait_ms: int, threshold: int | None) -> int:
    """Round ``wait_ms`` up to a multiple of ``threshold`` once it reaches it."""

    if threshold is None or wait_ms < threshold:
        return wait_ms
    return int(math.ceil(wait_ms / threshold) * threshold)


class OverflowHandler(ABC):
    """Base class computing the handled delay; subclasses decide what to do with it.

    Args:
        normalize_ms: Normalization threshold and boundary; None disables it.
        min_ms: Minimum handled delay.
        max_ms: Maximum handled delay.
        jitter: Fraction in [0, 1] of extra random delay.
        rng: Random source for jitter.

    Raises:
        ValidationAppError: If bounds or jitter are out of range.
    """

    def __init__(
        self,
        *,
        normalize_ms: int | None = DEFAULT_NORMALIZE_MS,
        min_ms: int = DEFAULT_MIN_MS,
        max_ms: int = DEFAULT_MAX_MS,
        jitter: float = 0.0,
        rng: random.Random | None = None,
    ) -> None:
        if not 0.0 <= jitter <= 1.0:
            raise ValidationAppError(
                code="invalid_jitter",
                message="Jitter must be between 0 and 1",
            )
        if normalize_ms is not None and normalize_ms < 1:
            raise ValidationAppError(
                code="invalid_normalize",
                message="normalize_ms must be >= 1",
            )
        if min_ms < 0 or max_ms < min_ms:
            raise ValidationAppError(
                code="invalid_delay_bounds",
                message="Delay bounds must satisfy 0 <= min_ms <= max_ms",
            )
        self.normalize_ms = normalize_ms
        self.min_ms = min_ms
        self.max_ms = max_ms
        self.jitter = jitter
        self._rng = rng or random.Random()

    def compute_delay(self, wait_ms: int) -> int:
        """Return the delay this handler will honour for an advertised wait."""

        delay = normalize_delay(max(0, wait_ms), self.normalize_ms)
        if self.jitter and delay:
            delay += int(math.ceil(self._rng.uniform(0, self.jitter * delay)))
        return min(self.max_ms, max(self.min_ms, delay))

    @abstractmethod
    def handle(self, wait_ms: int) -> Signal:
        """Decide what happens after a rejection advertising ``wait_ms``."""
        raise NotImplementedError


class SleepHandler(OverflowHandler):
    """Block the calling thread for the handled delay, then retry.

    Use this handler when blocking the current thread is acceptable
    (CLI scripts, workers, synchronous clients).

    Args:
        cancel: Optional event; setting it interrupts the wait and aborts.
        sleep: Sleep function used when no cancel event is given.
    """

    def __init__(
        self,
        *,
        cancel: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.cancel = cancel
        self._sleep = sleep

    def handle(self, wait_ms: int) -> Signal:
        delay = self.compute_delay(wait_ms)
        logger.info("overflow.sleep", extra={"wait_ms": wait_ms, "delay_ms": delay})

        if self.cancel is None:
            if delay > 0:
                self._sleep(delay / 1000)
            return Retry(waited_ms=delay)

        started = time.monotonic()
        if self.cancel.wait(timeout=delay / 1000 if delay > 0 else 0):
            remaining = max(0, delay - int((time.monotonic() - started) * 1000))
            logger.info("overflow.cancelled", extra={"remaining_ms": remaining})
            return Abort(RateLimitExceeded(remaining, "Rate limit wait cancelled"))
        return Retry(waited_ms=delay)


class FailFastHandler(OverflowHandler):
    """Abort immediately with the handled delay as a retry hint.

    Use this handler when the caller owns retry scheduling, e.g. requeueing
    a message with a delay in a message queue.
    """

    def handle(self, wait_ms: int) -> Signal:
        delay = self.compute_delay(wait_ms)
        logger.info("overflow.abort", extra={"wait_ms": wait_ms, "delay_ms": delay})
        return Abort(RateLimitExceeded(delay))
