"""Limiter configuration and persisted state models.

State models are serialized to JSON bytes for the counter store. The
``policy`` tag lets a loader detect state written under a different policy.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ratelock.core.errors import StoreError


class Policy(str, Enum):
    """Rate-limiting algorithm applied to a budget."""

    SLIDING_WINDOW = "sliding_window"
    TOKEN_BUCKET = "token_bucket"


class LimiterConfig(BaseModel):
    """Immutable description of one shared budget.

    Attributes:
        id: Unique name of the budget; also names its lock and store key.
        policy: Algorithm used to admit or reject attempts.
        limit: Units per window (sliding window) or burst size (token bucket).
        interval: Window length or refill period in seconds.
        refill_amount: Tokens added per ``interval`` (token bucket only);
            defaults to ``limit`` so a drained bucket refills in one interval.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    policy: Policy
    limit: int = Field(..., ge=1)
    interval: float = Field(..., gt=0)
    refill_amount: int | None = Field(None, ge=1)

    @property
    def refill_rate(self) -> float:
        """Tokens gained per second."""
        return (self.refill_amount or self.limit) / self.interval


class SlidingWindowState(BaseModel):
    policy: Literal["sliding_window"] = "sliding_window"
    window_start: float
    count: int = Field(0, ge=0)


class TokenBucketState(BaseModel):
    policy: Literal["token_bucket"] = "token_bucket"
    tokens: float = Field(..., ge=0)
    last_refill: float


LimiterState = Annotated[
    Union[SlidingWindowState, TokenBucketState],
    Field(discriminator="policy"),
]

_state_adapter: TypeAdapter[LimiterState] = TypeAdapter(LimiterState)


def dump_state(state: SlidingWindowState | TokenBucketState) -> bytes:
    """Serialize limiter state to the bytes stored under the limiter key."""

    return state.model_dump_json().encode("utf-8")


def load_state(raw: bytes, *, key: str) -> SlidingWindowState | TokenBucketState:
    """Deserialize stored bytes into limiter state.

    Raises:
        StoreError: If the stored payload is not valid limiter state. Corrupt
            state cannot be silently replaced without losing accounting.
    """

    try:
        return _state_adapter.validate_json(raw)
    except ValidationError as exc:
        raise StoreError(
            "Stored limiter state is corrupt",
            code="store_corrupt_state",
            details={"store_key": key, "hint": str(exc.errors()[:1])},
        ) from exc
