"""API security middleware."""

import logging
import secrets
import time
from collections import defaultdict, deque

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from waypoint.utils.config import get_settings

logger = logging.getLogger(__name__)

# Paths that don't require authentication
PUBLIC_PATHS = {
    "/",
    "/health",
    "/api/docs",
    "/api/redoc",
    "/openapi.json",
}

# Methods held to the strict rate limit
_MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
_WINDOW_SECONDS = 60


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Require API key for all non-public endpoints.

    Set WAYPOINT_SECURITY__API_KEY to enable. When not set (local
    development), all requests are allowed.

    Clients pass the key via:
    - Header: Authorization: Bearer <key>
    - Header: X-API-Key: <key>
    """

    async def dispatch(self, request: Request, call_next):
        required_key = get_settings().security.api_key

        # If no key configured, allow all (local dev)
        if not required_key:
            return await call_next(request)

        path = request.url.path.rstrip("/")
        if path in PUBLIC_PATHS or path == "":
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        api_key_header = request.headers.get("x-api-key", "")

        provided_key = ""
        if auth_header.startswith("Bearer "):
            provided_key = auth_header[7:]
        elif api_key_header:
            provided_key = api_key_header

        if not provided_key or not secrets.compare_digest(provided_key, required_key):
            logger.warning(
                "Unauthorized request to %s from %s",
                request.url.path,
                request.client.host if request.client else "unknown",
            )
            return JSONResponse(
                status_code=401,
                content={"error": "Invalid or missing API key"},
            )

        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window rate limiter.

    Keyed by client IP; identity headers are unauthenticated at this point
    and are ignored. Mutating requests use the strict limit. Disabled in
    the test environment.
    """

    def __init__(self, app):
        super().__init__(app)
        self._windows: dict[str, deque] = defaultdict(deque)
        self._last_sweep = time.monotonic()

    def _get_client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _sweep(self, now: float) -> None:
        """Drop windows with no request inside the last minute."""
        if now - self._last_sweep < _WINDOW_SECONDS:
            return
        cutoff = now - _WINDOW_SECONDS
        stale = [key for key, window in self._windows.items() if not window or window[-1] < cutoff]
        for key in stale:
            del self._windows[key]
        self._last_sweep = now

    async def dispatch(self, request: Request, call_next):
        settings = get_settings()
        path = request.url.path
        if settings.environment == "test" or path in PUBLIC_PATHS or path == "":
            return await call_next(request)

        client_key = self._get_client_ip(request)
        if request.method in _MUTATING_METHODS:
            bucket, limit = "strict", settings.rate_limit.strict_per_minute
        else:
            bucket, limit = "default", settings.rate_limit.default_per_minute
        now = time.monotonic()
        self._sweep(now)

        # Sliding window: track request timestamps per client and limit class
        window = self._windows[f"{client_key}:{bucket}"]

        cutoff = now - _WINDOW_SECONDS
        while window and window[0] < cutoff:
            window.popleft()

        if len(window) >= limit:
            retry_after = int(window[0] - cutoff) + 1
            logger.warning(
                "Rate limit exceeded for %s on %s (%d/%d)",
                client_key, path, len(window), limit,
            )
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests"},
                headers={"Retry-After": str(retry_after)},
            )

        window.append(now)
        return await call_next(request)
