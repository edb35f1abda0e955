"""Admission-control middleware for the Sagip API.

Resolves a best-effort client identifier, picks the rate-limit class for
the route, and asks the process-wide :class:`AdmissionLimiter` (stored on
``app.state.admission_limiter`` by the lifespan) whether to admit the
request.  Denied requests get a 429 with a machine-readable retry delay.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Final

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from config.rate_limits import EMERGENCY, READONLY, STANDARD, RateLimit
from sagip.services.errors import AdmissionDenied

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# Shared bucket for callers whose address cannot be determined.
UNKNOWN_CLIENT: Final[str] = "unknown"

# Paths exempt from rate limiting (health checks, docs).
_EXEMPT_PATHS: Final[frozenset[str]] = frozenset({
    "/api/v1/health",
    "/api/v1/health/ready",
    "/",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/metrics",
})

_SUBMISSIONS_PREFIX: Final[str] = "/api/v1/submissions"
_READ_METHODS: Final[frozenset[str]] = frozenset({"GET", "HEAD", "OPTIONS"})

CORS_HEADERS: Final[dict[str, str]] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def resolve_client_identifier(
    headers: Mapping[str, str],
    client_host: str | None,
    trusted_proxy_count: int = 0,
) -> str:
    """Extract the caller's address, falling back to a shared bucket.

    Order: ``X-Forwarded-For``, ``X-Real-IP``, ``CF-Connecting-IP``,
    the direct peer address, then ``"unknown"``.  With
    ``trusted_proxy_count = N`` the rightmost N forwarded entries are
    proxies and the client is ``ips[-(N + 1)]``; with 0 the leftmost
    entry is used.
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        ips = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]
        if ips:
            if trusted_proxy_count > 0:
                client_index = -(trusted_proxy_count + 1)
                if abs(client_index) <= len(ips):
                    return ips[client_index]
            return ips[0]

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = headers.get(header)
        if value and value.strip():
            return value.strip()

    if client_host:
        return client_host

    return UNKNOWN_CLIENT


def classify_request(method: str, path: str) -> RateLimit | None:
    """Pick the rate-limit class for a route; ``None`` means exempt."""
    if path in _EXEMPT_PATHS:
        return None
    method = method.upper()
    if path.startswith(_SUBMISSIONS_PREFIX) and method == "POST":
        return EMERGENCY
    if method in _READ_METHODS:
        return READONLY
    return STANDARD


def rate_limited_response(exc: AdmissionDenied) -> JSONResponse:
    """429 body and headers clients use to back off."""
    result = exc.result
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests",
            "message": "Rate limit exceeded. Please try again later.",
            "retryAfter": exc.retry_after,
        },
        headers={
            "Retry-After": str(exc.retry_after),
            "X-RateLimit-Limit": str(result.limit.max_requests),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(math.ceil(result.reset_at)),
            **CORS_HEADERS,
        },
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window admission control keyed by client address.

    Parameters
    ----------
    app:
        The ASGI application.
    trusted_proxy_count:
        Number of trusted reverse proxies in front of the service; see
        :func:`resolve_client_identifier`.
    """

    def __init__(self, app: object, trusted_proxy_count: int = 0) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._trusted_proxy_count = trusted_proxy_count

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        limit = classify_request(request.method, request.url.path)
        if limit is None:
            return await call_next(request)

        limiter = getattr(request.app.state, "admission_limiter", None)
        if limiter is None:
            logger.warning("rate_limit.limiter_not_initialised", path=request.url.path)
            return await call_next(request)

        identifier = resolve_client_identifier(
            request.headers,
            request.client.host if request.client else None,
            self._trusted_proxy_count,
        )

        try:
            result = limiter.enforce(identifier, limit)
        except AdmissionDenied as exc:
            return rate_limited_response(exc)

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)

        return response
