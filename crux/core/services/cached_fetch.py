"""Read-through helper putting the tiered cache in front of an origin fetch."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from loguru import logger

from crux.core.cache.tiered import TieredCache
from crux.core.exceptions import CacheError, UnknownDataTypeError

T = TypeVar("T")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    try:
        return len(value) == 0
    except TypeError:
        return False


class CachedFetcher:
    """Serves values from cache and falls back to the origin on any cache failure.

    The cache is an optimization: misses, stale rows, store outages,
    timeouts and undecodable payloads all fall through to ``fetch``. Only
    writing under an unregistered data type is surfaced to the caller.
    """

    def __init__(self, cache: TieredCache) -> None:
        self.cache = cache

    async def get_or_fetch(
        self,
        data_type: str,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        *,
        model: Any = None,
        store_empty: bool = False,
    ) -> T:
        try:
            lookup = await self.cache.get(data_type, key, model=model)
        except CacheError as e:
            logger.warning(f"cache read error: {e}", data_type=data_type, key=key, error_code=e.error_code)
        else:
            if lookup.found:
                return lookup.value

        value = await fetch()
        if store_empty or not _is_empty(value):
            await self._store(data_type, key, value)
        return value

    async def _store(self, data_type: str, key: str, value: Any) -> None:
        try:
            await self.cache.set(data_type, key, value)
        except UnknownDataTypeError:
            raise
        except CacheError as e:
            logger.warning(f"cache write error: {e}", data_type=data_type, key=key, error_code=e.error_code)


__all__ = ["CachedFetcher"]
