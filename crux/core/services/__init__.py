"""Application services built on the cache core."""

from crux.core.services.cached_fetch import CachedFetcher

__all__ = ["CachedFetcher"]
