"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept limiter errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes.

Design:
- RateLimitExceeded → 429 with Retry-After and X-RateLimit-* headers
- StoreError / LockAcquisitionError → 503 (limiter backend unavailable)
- ValidationAppError and other AppError → 400
- Unexpected Exception → generic 500 (safety net)
"""

from __future__ import annotations

import logging
import math

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ratelock.core.config import settings
from ratelock.core.errors import (
    AppError,
    LockAcquisitionError,
    RateLimitExceeded,
    StoreError,
)
from ratelock.core.logging import get_limiter_id

logger = logging.getLogger(__name__)


def _error_content(exc: AppError) -> dict:
    details = exc.details or {}
    content = {
        "code": exc.code,
        "message": exc.message,
        "limiter_id": details.get("limiter_id") or get_limiter_id(),
    }
    if exc.details:
        content["details"] = exc.details
    return {"error": content}


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render an aborted limiter loop as 429 Too Many Requests.

    Retry-After is whole seconds rounded up so clients never retry early.
    """

    headers: dict[str, str] = {}
    if settings.app.rate_limit_include_headers:
        details = exc.details or {}
        headers["Retry-After"] = str(math.ceil(exc.retry_after_ms / 1000))
        if "limit" in details:
            headers["X-RateLimit-Limit"] = str(details["limit"])
        headers["X-RateLimit-Remaining"] = str(details.get("remaining", 0))

    return JSONResponse(status_code=429, content=_error_content(exc), headers=headers or None)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain errors with consistent JSON format.

    Routes domain errors to HTTP status codes:
    - StoreError, LockAcquisitionError → 503 Service Unavailable
    - any other AppError → 400 Bad Request
    """

    status_code = 400
    if isinstance(exc, (StoreError, LockAcquisitionError)):
        status_code = 503

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    return JSONResponse(status_code=status_code, content=_error_content(exc))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors; never leaks internals."""

    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Specific handlers are registered before the general fallback.
    """

    app.exception_handler(RateLimitExceeded)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
