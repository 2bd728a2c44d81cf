"""Per client rate limiting."""

from crux.core.ratelimit.limiter import RateLimiter, Visitor

__all__ = ["RateLimiter", "Visitor"]
