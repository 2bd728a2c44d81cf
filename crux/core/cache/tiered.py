"""Tiered cache with market-aware TTLs.

Expiry is not stored per row. A row is fresh while
``updated_at + effective_ttl`` lies in the future, with the effective TTL
computed from the market state at read time, so a price entry can become
fresh again the moment the market closes. Rows also carry
``max_expires_at`` (the longest TTL the policy can produce) so that
:meth:`TieredCache.purge_expired` can drop rows stale under every regime.
"""

from __future__ import annotations

import asyncio
import json
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, TypeAdapter, ValidationError

from crux.core.cache.policy import CachePolicyRegistry
from crux.core.cache.store import CacheRow, CacheStore
from crux.core.exceptions import (
    CacheSerializationError,
    CacheTimeoutError,
    UnknownDataTypeError,
)
from crux.core.market.calendar import utc_now
from crux.core.monitoring.metrics import MetricsCollector

T = TypeVar("T")

DEFAULT_TIMEOUT = 5.0


@dataclass(frozen=True)
class CacheLookup:
    """Result of :meth:`TieredCache.get`; truthy on a hit."""

    found: bool
    value: Any = None
    age: timedelta | None = None

    def __bool__(self) -> bool:
        return self.found


MISS = CacheLookup(found=False)


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_payload(value: Any) -> str:
    return json.dumps(value, default=_json_default, allow_nan=False, separators=(",", ":"))


class TieredCache:
    """Data-type aware cache in front of a :class:`CacheStore`.

    Store calls block, so they run on a worker thread and are bounded by a
    deadline. Each call carries its own cancel event: when the deadline
    passes or the caller is cancelled, that call is withdrawn from the store
    whether it is still queued on the store lock or already running.
    """

    def __init__(
        self,
        store: CacheStore,
        policies: CachePolicyRegistry | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        timeout: float = DEFAULT_TIMEOUT,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.store = store
        self.policies = policies if policies is not None else CachePolicyRegistry()
        self.clock = clock
        self.timeout = timeout
        self.metrics = metrics

    async def _run(
        self,
        func: Callable[..., T],
        *args: Any,
        data_type: str | None = None,
        key: str | None = None,
        timeout: float | None = None,
    ) -> T:
        limit = self.timeout if timeout is None else timeout
        cancel = threading.Event()
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args, cancel=cancel), limit)
        except TimeoutError:
            self.store.interrupt(cancel)
            raise CacheTimeoutError(
                f"cache operation timed out after {limit}s", data_type, key, timeout=limit
            ) from None
        except asyncio.CancelledError:
            self.store.interrupt(cancel)
            raise

    def _record_read(self, data_type: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_read(data_type, outcome)

    def _record_write(self, data_type: str, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_write(data_type, success=success)

    async def get(
        self,
        data_type: str,
        key: str,
        *,
        model: Any = None,
        timeout: float | None = None,
    ) -> CacheLookup:
        """Look up ``(data_type, key)``.

        Returns a miss for absent rows, stale rows and unregistered data
        types. Stale rows are left in place. ``model`` optionally validates
        the decoded payload into a pydantic-compatible type.

        Raises:
            StoreUnavailableError: the store failed
            CacheTimeoutError: the deadline passed
            CacheSerializationError: the payload could not be decoded
        """
        if data_type not in self.policies:
            logger.warning("unknown cache data type, treating as expired", data_type=data_type)
            self._record_read(data_type, "unknown")
            return MISS

        try:
            row = await self._run(self.store.get_row, data_type, key, data_type=data_type, key=key, timeout=timeout)
        except Exception:
            self._record_read(data_type, "error")
            raise

        if row is None:
            self._record_read(data_type, "miss")
            return MISS

        now = self.clock()
        ttl = self.policies.effective_ttl(data_type, now)
        age = now - row.updated_at
        if now > row.updated_at + ttl:
            logger.debug("cache stale", data_type=data_type, key=key, age=str(age), ttl=str(ttl))
            self._record_read(data_type, "stale")
            return MISS

        try:
            value = json.loads(row.payload)
            if model is not None:
                value = TypeAdapter(model).validate_python(value)
        except (ValueError, ValidationError) as e:
            self._record_read(data_type, "error")
            raise CacheSerializationError(f"unmarshaling cached value: {e}", data_type, key) from e

        logger.debug("cache hit", data_type=data_type, key=key)
        self._record_read(data_type, "hit")
        return CacheLookup(found=True, value=value, age=age)

    async def set(self, data_type: str, key: str, value: Any, *, timeout: float | None = None) -> None:
        """Serialize ``value`` and upsert it, stamping ``updated_at`` with now.

        Raises:
            UnknownDataTypeError: no policy is registered for ``data_type``
            CacheSerializationError: ``value`` is not JSON serializable
            StoreUnavailableError: the store failed
            CacheTimeoutError: the deadline passed
        """
        policy = self.policies.get(data_type)
        if policy is None:
            self._record_write(data_type, False)
            raise UnknownDataTypeError(data_type)

        try:
            payload = encode_payload(value)
        except (TypeError, ValueError) as e:
            self._record_write(data_type, False)
            raise CacheSerializationError(f"marshaling value: {e}", data_type, key) from e

        now = self.clock()
        row = CacheRow(
            data_type=data_type,
            key=key,
            payload=payload,
            provider=policy.source.value,
            updated_at=now,
            max_expires_at=now + policy.max_ttl(self.policies.off_hours_multiplier),
        )
        try:
            await self._run(self.store.upsert_row, row, data_type=data_type, key=key, timeout=timeout)
        except Exception:
            self._record_write(data_type, False)
            raise
        self._record_write(data_type, True)
        logger.debug("cache set", data_type=data_type, key=key)

    async def invalidate(self, data_type: str, key: str, *, timeout: float | None = None) -> bool:
        """Delete ``(data_type, key)``. Returns whether a row was removed."""
        removed = await self._run(self.store.delete_row, data_type, key, data_type=data_type, key=key, timeout=timeout)
        logger.debug("cache invalidate", data_type=data_type, key=key, removed=removed)
        return removed

    async def purge_expired(self, *, timeout: float | None = None) -> int:
        """Delete rows whose ``max_expires_at`` has passed."""
        removed = await self._run(self.store.delete_expired, self.clock(), timeout=timeout)
        logger.info(f"purged {removed} expired cache rows")
        return removed

    async def stats(self) -> dict[str, Any]:
        now = self.clock()
        return {
            "entries": await self._run(self.store.count),
            "data_types": len(self.policies),
            "market_open": self.policies.calendar.is_open(now),
            "off_hours_multiplier": self.policies.off_hours_multiplier,
        }

    def close(self) -> None:
        self.store.close()


__all__ = ["CacheLookup", "MISS", "TieredCache", "encode_payload"]
