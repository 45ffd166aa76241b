"""httpx transport that rate limits every outgoing request.

Usage:
    middleware = per_second(5, store=store, lock=lock, limiter_id="github")
    client = httpx.Client(transport=RateLimitedTransport(middleware))
"""

from __future__ import annotations

import httpx

from ratelock.services.middleware import RateLimiterMiddleware


class RateLimitedTransport(httpx.BaseTransport):
    """Gate ``handle_request`` on a shared rate-limit budget.

    The request itself is never inspected; the wrapped transport sees it
    only after the middleware admits it.

    Args:
        middleware: Limiter deciding when a request may go out.
        transport: Transport performing the request; a default
            ``httpx.HTTPTransport`` when omitted.
    """

    def __init__(
        self,
        middleware: RateLimiterMiddleware,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._middleware = middleware
        self._transport = transport if transport is not None else httpx.HTTPTransport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self._middleware.run(self._transport.handle_request, request)

    def close(self) -> None:
        self._transport.close()
