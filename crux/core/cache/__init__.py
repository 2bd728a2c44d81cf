"""Tiered cache with market-aware TTLs."""

from crux.core.cache.policy import (
    OFF_HOURS_MULTIPLIER,
    CachePolicy,
    CachePolicyRegistry,
    DataSource,
    default_cache_policies,
)
from crux.core.cache.store import (
    CacheRow,
    CacheStore,
    DuckDBCacheStore,
    InMemoryCacheStore,
    open_store,
)
from crux.core.cache.tiered import MISS, CacheLookup, TieredCache

__all__ = [
    "OFF_HOURS_MULTIPLIER",
    "CacheLookup",
    "CachePolicy",
    "CachePolicyRegistry",
    "CacheRow",
    "CacheStore",
    "DataSource",
    "DuckDBCacheStore",
    "InMemoryCacheStore",
    "MISS",
    "TieredCache",
    "default_cache_policies",
    "open_store",
]
