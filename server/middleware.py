"""
MODULE OVERVIEW:
Sliding-window rate limiting for every HTTP request.

WHAT IS HAPPENING HERE:
Before a request reaches a route we key it by client address and ask the
limiter for room in the window. Over the limit, we answer 429 ourselves with a
`Retry-After` header so well-behaved clients (including our own
`retry_with_rate_limit`) know how long to cool down.
"""

from datetime import datetime, timezone

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from resilience.rate_limit import SlidingWindowRateLimiter


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client is not None:
        return request.client.host
    return "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: SlidingWindowRateLimiter, exempt_paths: tuple[str, ...] = ("/healthz",)):
        super().__init__(app)
        self.limiter = limiter
        self.exempt_paths = exempt_paths

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        key = client_key(request)
        decision = self.limiter.check(key)
        reset_iso = datetime.fromtimestamp(decision.reset_at, tz=timezone.utc).isoformat()

        if not decision.allowed:
            logger.warning(f"client={key} path={request.url.path} event=rate_limited retry_after={decision.retry_after_s}")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "retryAfter": decision.retry_after_s,
                    "limit": decision.limit,
                    "window": f"{self.limiter.window_ms / 1000:g}s",
                },
                headers={
                    "Retry-After": str(decision.retry_after_s),
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": reset_iso,
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        response.headers["X-RateLimit-Reset"] = reset_iso
        return response
