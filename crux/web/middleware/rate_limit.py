"""ASGI middleware enforcing the per client IP rate limit."""

from __future__ import annotations

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from crux.core.logging import current_trace_id
from crux.core.net.client_ip import format_peer
from crux.core.ratelimit import RateLimiter
from crux.web.models import ErrorResponse


def client_key(scope: Scope) -> str:
    """Client identity for rate limiting: the RealIP result, else the socket peer."""
    state = scope.get("state") or {}
    ip = state.get("client_ip")
    if ip:
        return ip
    return format_peer(scope.get("client"))


class RateLimitMiddleware:
    """Rejects requests over the limit with HTTP 429."""

    def __init__(self, app: ASGIApp, *, limiter: RateLimiter) -> None:
        self.app = app
        self.limiter = limiter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if not self.limiter.admit(client_key(scope)):
            body = ErrorResponse(error="rate_limit_exceeded", message="Rate limit exceeded")
            response = JSONResponse(
                status_code=429,
                content=body.model_dump(mode="json"),
                headers={"Retry-After": "1", "X-Request-ID": current_trace_id()},
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
