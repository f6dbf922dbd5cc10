"""
OrgTrack Backend — Rate Limiting Middleware
============================================

What:  Per-client sliding window limit for requests under one path prefix.
How:   Asks the injected RateLimitStore to record the hit atomically; when
       the store reports the window is full the request is answered with 429
       and never reaches the later stages or the router.
When:  Right after the security headers stage, before the body is read.

Scope:
    Only paths equal to the prefix (without trailing slash) or below it are
    limited. Every other path bypasses the store entirely, so /health and the
    docs never consume a client's budget.

Response on rate limit:
    HTTP 429
    Body:    {"status": "Error", "message": "You have exceeded the allowed
              rate limit for this endpoint. Please try again in an hour."}
    Headers: Retry-After plus the RateLimit-* headers below

Headers on every limited-path response:
    RateLimit-Limit, RateLimit-Remaining, RateLimit-Reset (seconds)

Client identity is the socket peer address. Behind a reverse proxy run
uvicorn with --proxy-headers so that address is the real client.
"""

import logging
from typing import Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings
from app.exceptions import RateLimitExceededError
from app.middleware.errors import error_response
from app.services.rate_limit_store import (
    MemoryRateLimitStore,
    RateLimitResult,
    RateLimitStore,
)

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Configuration (defaults from settings):
        prefix:         rate_limit_path_prefix (default "/api/")
        max_requests:   rate_limit_requests (default 100)
        window_seconds: rate_limit_window (default 900 = 15 minutes)

    Store failures fail open: the request proceeds and the error is logged.
    """

    def __init__(
        self,
        app,
        store: Optional[RateLimitStore] = None,
        prefix: Optional[str] = None,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        super().__init__(app)
        self.store = store or MemoryRateLimitStore()
        self.prefix = (prefix or settings.rate_limit_path_prefix).rstrip("/")
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window

    def applies_to(self, path: str) -> bool:
        if not self.prefix:
            return True
        return path == self.prefix or path.startswith(self.prefix + "/")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.applies_to(request.url.path):
            return await call_next(request)

        client_ip = (
            getattr(request.client, "host", "unknown")
            if request.client
            else "unknown"
        )

        try:
            result = await self.store.hit(client_ip, self.max_requests, self.window_seconds)
        except Exception as e:
            logger.error("Rate limit store unavailable, allowing request: %s", str(e))
            return await call_next(request)

        headers = self._headers(result)

        if not result.allowed:
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                result.count,
                self.window_seconds,
            )
            exc = RateLimitExceededError(retry_after=result.reset_after)
            headers["Retry-After"] = str(exc.retry_after)
            return error_response(exc, headers=headers)

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response

    @staticmethod
    def _headers(result: RateLimitResult) -> Dict[str, str]:
        return {
            "RateLimit-Limit": str(result.limit),
            "RateLimit-Remaining": str(result.remaining),
            "RateLimit-Reset": str(max(result.reset_after, 0)),
        }
