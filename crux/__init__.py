"""crux - market-aware tiered caching and per-client rate limiting.

The cache stretches price-data TTLs while the US equity market is closed;
the rate limiter admits a fixed number of requests per client IP per second.
"""

from crux.core.cache import (
    CacheLookup,
    CachePolicy,
    CachePolicyRegistry,
    DataSource,
    DuckDBCacheStore,
    InMemoryCacheStore,
    TieredCache,
    default_cache_policies,
)
from crux.core.market import MarketCalendar, is_market_open, is_market_open_at
from crux.core.ratelimit import RateLimiter
from crux.core.services import CachedFetcher

__version__ = "0.1.0"

__all__ = [
    "CacheLookup",
    "CachePolicy",
    "CachePolicyRegistry",
    "CachedFetcher",
    "DataSource",
    "DuckDBCacheStore",
    "InMemoryCacheStore",
    "MarketCalendar",
    "RateLimiter",
    "TieredCache",
    "default_cache_policies",
    "is_market_open",
    "is_market_open_at",
]
