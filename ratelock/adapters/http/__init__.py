"""HTTP client integrations."""

from ratelock.adapters.http.transport import RateLimitedTransport

__all__ = ["RateLimitedTransport"]
