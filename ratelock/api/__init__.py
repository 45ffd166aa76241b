"""FastAPI integration."""

from ratelock.api.dependencies import RateLimitDependency

__all__ = ["RateLimitDependency"]
