"""ASGI middleware."""

from crux.web.middleware.rate_limit import RateLimitMiddleware, client_key
from crux.web.middleware.real_ip import RealIPMiddleware

__all__ = ["RateLimitMiddleware", "RealIPMiddleware", "client_key"]
