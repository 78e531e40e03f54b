"""Per-client request throttling.

Every route shares one default limit (``RATE_LIMIT_REQUESTS`` per
``RATE_LIMIT_WINDOW_SECONDS``), enforced in-process by SlowAPI. Counters live
in each worker's memory, so a multi-worker deployment multiplies the budget by
the worker count.

Clients are keyed by the first ``X-Forwarded-For`` entry when the service sits
behind a proxy, else by the socket peer address.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from app.errors import error_response
from app.settings import get_rate_limit, get_settings


def client_key(request: Request) -> str:
    """Return the best-effort client address used as the limiter key."""

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return get_remote_address(request)


def build_limiter(default_limit: str | None = None, *, enabled: bool | None = None) -> Limiter:
    if enabled is None:
        enabled = get_settings().rate_limit_enabled
    return Limiter(
        key_func=client_key,
        default_limits=[default_limit or get_rate_limit()],
        enabled=enabled,
        storage_uri="memory://",
    )


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return error_response(
        request,
        status_code=429,
        code="RATE_LIMITED",
        message="Too many requests. Please try again later.",
    )


def init_rate_limiting(app: FastAPI, limiter: Limiter | None = None) -> Limiter:
    """Attach the limiter, its 429 handler and the SlowAPI middleware."""

    limiter = limiter or build_limiter()
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)  # type: ignore[arg-type]
    app.add_middleware(SlowAPIMiddleware)
    return limiter
