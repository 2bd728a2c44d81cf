"""Tests for the market-aware tiered cache."""

from __future__ import annotations

import asyncio
import math
import threading
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from pydantic import BaseModel

from crux.core.cache import CacheRow, DuckDBCacheStore, InMemoryCacheStore, TieredCache
from crux.core.exceptions import (
    CacheSerializationError,
    CacheTimeoutError,
    StoreUnavailableError,
    UnknownDataTypeError,
)
from crux.core.monitoring import MetricsCollector


ET = ZoneInfo("America/New_York")


def at_et(hour: int, minute: int, day: int = 2) -> datetime:
    """February 2026 wall time in New York; the 2nd is a Monday."""
    return datetime(2026, 2, day, hour, minute, tzinfo=ET).astimezone(UTC)


class Snapshot(BaseModel):
    symbol: str
    price: float


class SlowStore(InMemoryCacheStore):
    """Store whose reads block until interrupted or released."""

    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()
        self.interrupted = False

    def get_row(self, data_type: str, key: str, *, cancel: threading.Event | None = None) -> CacheRow | None:
        self.release.wait(5)
        return super().get_row(data_type, key, cancel=cancel)

    def interrupt(self, cancel: threading.Event) -> None:
        self.interrupted = True
        super().interrupt(cancel)
        self.release.set()


class BrokenStore(InMemoryCacheStore):
    def get_row(self, data_type: str, key: str, *, cancel: threading.Event | None = None) -> CacheRow | None:
        raise StoreUnavailableError("database is locked", data_type, key)

    def upsert_row(self, row: CacheRow, *, cancel: threading.Event | None = None) -> None:
        raise StoreUnavailableError("database is locked", row.data_type, row.key)


@pytest.fixture()
def store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture()
def cache(store: InMemoryCacheStore, wall_clock) -> TieredCache:
    return TieredCache(store, clock=wall_clock)


@pytest.mark.asyncio
async def test_set_then_get(cache: TieredCache) -> None:
    await cache.set("snapshot", "AAPL", {"symbol": "AAPL", "price": 190.5})

    lookup = await cache.get("snapshot", "AAPL")

    assert lookup
    assert lookup.value == {"symbol": "AAPL", "price": 190.5}
    assert lookup.age == timedelta(0)


@pytest.mark.asyncio
async def test_get_absent_is_miss(cache: TieredCache) -> None:
    lookup = await cache.get("snapshot", "MSFT")

    assert not lookup
    assert lookup.value is None


@pytest.mark.asyncio
async def test_set_stamps_row(cache: TieredCache, store: InMemoryCacheStore, wall_clock) -> None:
    await cache.set("snapshot", "AAPL", {"price": 1})
    await cache.set("profile", "AAPL", {"name": "Apple"})

    snapshot = store.get_row("snapshot", "AAPL")
    profile = store.get_row("profile", "AAPL")

    assert snapshot is not None and profile is not None
    assert snapshot.provider == "massive"
    assert snapshot.updated_at == wall_clock.now
    assert snapshot.max_expires_at == wall_clock.now + timedelta(minutes=30)
    assert profile.provider == "fmp"
    assert profile.max_expires_at == wall_clock.now + timedelta(days=7)


@pytest.mark.asyncio
async def test_snapshot_during_market_hours(cache: TieredCache, wall_clock) -> None:
    wall_clock.set(at_et(10, 58))
    await cache.set("snapshot", "AAPL", {"price": 1})

    wall_clock.set(at_et(11, 2))
    assert (await cache.get("snapshot", "AAPL")).found

    wall_clock.set(at_et(11, 5))
    assert not (await cache.get("snapshot", "AAPL")).found


@pytest.mark.asyncio
async def test_snapshot_after_close(cache: TieredCache, wall_clock) -> None:
    wall_clock.set(at_et(17, 40))
    await cache.set("snapshot", "AAPL", {"price": 1})

    wall_clock.set(at_et(18, 0))
    assert (await cache.get("snapshot", "AAPL")).found

    wall_clock.set(at_et(18, 15))
    assert not (await cache.get("snapshot", "AAPL")).found


@pytest.mark.asyncio
async def test_weekend_uses_off_hours_ttl(cache: TieredCache, wall_clock) -> None:
    wall_clock.set(at_et(11, 0, day=7))
    await cache.set("snapshot", "AAPL", {"price": 1})

    wall_clock.set(at_et(11, 20, day=7))
    assert (await cache.get("snapshot", "AAPL")).found


@pytest.mark.asyncio
async def test_stale_entry_becomes_fresh_at_close(
    cache: TieredCache, store: InMemoryCacheStore, wall_clock
) -> None:
    wall_clock.set(at_et(15, 50))
    await cache.set("snapshot", "AAPL", {"price": 1})

    wall_clock.set(at_et(15, 58))
    assert not (await cache.get("snapshot", "AAPL")).found
    # stale rows stay in the store
    assert store.count() == 1

    wall_clock.set(at_et(16, 1))
    assert (await cache.get("snapshot", "AAPL")).found


@pytest.mark.asyncio
async def test_fundamental_ttl_ignores_market(cache: TieredCache, wall_clock) -> None:
    wall_clock.set(at_et(11, 0))
    await cache.set("ratios_ttm", "AAPL", {"pe": 30})

    wall_clock.advance(hours=23, minutes=59)
    assert (await cache.get("ratios_ttm", "AAPL")).found

    wall_clock.advance(minutes=2)
    assert not (await cache.get("ratios_ttm", "AAPL")).found


@pytest.mark.asyncio
async def test_unknown_data_type_get_is_miss(cache: TieredCache, store: InMemoryCacheStore) -> None:
    metrics = MetricsCollector()
    cache.metrics = metrics

    lookup = await cache.get("bogus", "AAPL")

    assert not lookup
    assert metrics.registry.get_sample_value(
        "crux_cache_requests_total", {"data_type": "bogus", "outcome": "unknown"}
    ) == 1.0


@pytest.mark.asyncio
async def test_unknown_data_type_set_fails(cache: TieredCache, store: InMemoryCacheStore) -> None:
    with pytest.raises(UnknownDataTypeError) as exc_info:
        await cache.set("bogus", "AAPL", {"price": 1})

    assert exc_info.value.data_type == "bogus"
    assert "bogus" in str(exc_info.value)
    assert store.count() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [object(), {"price": math.nan}])
async def test_unserializable_value(cache: TieredCache, store: InMemoryCacheStore, value: object) -> None:
    with pytest.raises(CacheSerializationError):
        await cache.set("snapshot", "AAPL", value)

    assert store.count() == 0


@pytest.mark.asyncio
async def test_pydantic_models_round_trip(cache: TieredCache) -> None:
    await cache.set("snapshot", "AAPL", Snapshot(symbol="AAPL", price=190.5))

    lookup = await cache.get("snapshot", "AAPL", model=Snapshot)

    assert lookup.value == Snapshot(symbol="AAPL", price=190.5)


@pytest.mark.asyncio
async def test_undecodable_payload(cache: TieredCache, store: InMemoryCacheStore, wall_clock) -> None:
    store.upsert_row(
        CacheRow("snapshot", "AAPL", "{not json", "massive", wall_clock.now, wall_clock.now + timedelta(minutes=30))
    )

    with pytest.raises(CacheSerializationError):
        await cache.get("snapshot", "AAPL")


@pytest.mark.asyncio
async def test_payload_not_matching_model(cache: TieredCache) -> None:
    await cache.set("snapshot", "AAPL", {"symbol": "AAPL"})

    with pytest.raises(CacheSerializationError):
        await cache.get("snapshot", "AAPL", model=Snapshot)


@pytest.mark.asyncio
async def test_invalidate(cache: TieredCache) -> None:
    await cache.set("snapshot", "AAPL", {"price": 1})

    assert await cache.invalidate("snapshot", "AAPL") is True
    assert not (await cache.get("snapshot", "AAPL")).found
    assert await cache.invalidate("snapshot", "AAPL") is False


@pytest.mark.asyncio
async def test_store_failure_propagates(wall_clock) -> None:
    metrics = MetricsCollector()
    cache = TieredCache(BrokenStore(), clock=wall_clock, metrics=metrics)

    with pytest.raises(StoreUnavailableError):
        await cache.get("snapshot", "AAPL")
    with pytest.raises(StoreUnavailableError):
        await cache.set("snapshot", "AAPL", {"price": 1})

    assert metrics.registry.get_sample_value(
        "crux_cache_requests_total", {"data_type": "snapshot", "outcome": "error"}
    ) == 1.0
    assert metrics.registry.get_sample_value(
        "crux_cache_writes_total", {"data_type": "snapshot", "outcome": "error"}
    ) == 1.0


@pytest.mark.asyncio
async def test_timeout_interrupts_store(wall_clock) -> None:
    store = SlowStore()
    cache = TieredCache(store, clock=wall_clock, timeout=0.05)

    with pytest.raises(CacheTimeoutError) as exc_info:
        await cache.get("snapshot", "AAPL")

    assert exc_info.value.timeout == 0.05
    assert exc_info.value.error_code == "CACHE_TIMEOUT"
    assert store.interrupted


@pytest.mark.asyncio
async def test_cancellation_interrupts_store(wall_clock) -> None:
    store = SlowStore()
    cache = TieredCache(store, clock=wall_clock, timeout=5.0)

    task = asyncio.create_task(cache.get("snapshot", "AAPL"))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert store.interrupted


@pytest.mark.asyncio
async def test_timed_out_write_never_lands(wall_clock) -> None:
    store = DuckDBCacheStore()
    cache = TieredCache(store, clock=wall_clock)

    # another caller holds the connection, so the write queues on the lock
    store._lock.acquire()
    try:
        with pytest.raises(CacheTimeoutError):
            await cache.set("snapshot", "AAPL", {"price": 1}, timeout=0.05)
    finally:
        store._lock.release()

    await asyncio.sleep(0.2)
    try:
        assert store.get_row("snapshot", "AAPL") is None
    finally:
        store.close()


@pytest.mark.asyncio
async def test_timed_out_read_leaves_store_usable(wall_clock) -> None:
    store = DuckDBCacheStore()
    cache = TieredCache(store, clock=wall_clock)
    await cache.set("snapshot", "AAPL", {"price": 1})

    store._lock.acquire()
    try:
        with pytest.raises(CacheTimeoutError):
            await cache.get("snapshot", "AAPL", timeout=0.05)
    finally:
        store._lock.release()

    try:
        assert (await cache.get("snapshot", "AAPL")).value == {"price": 1}
    finally:
        store.close()


@pytest.mark.asyncio
async def test_purge_expired(cache: TieredCache, store: InMemoryCacheStore, wall_clock) -> None:
    await cache.set("snapshot", "AAPL", {"price": 1})
    await cache.set("profile", "AAPL", {"name": "Apple"})

    wall_clock.advance(minutes=31)

    assert await cache.purge_expired() == 1
    assert store.get_row("snapshot", "AAPL") is None
    assert store.get_row("profile", "AAPL") is not None


@pytest.mark.asyncio
async def test_metrics_for_reads(cache: TieredCache, wall_clock) -> None:
    metrics = MetricsCollector()
    cache.metrics = metrics

    await cache.set("snapshot", "AAPL", {"price": 1})
    await cache.get("snapshot", "AAPL")
    await cache.get("snapshot", "MSFT")
    wall_clock.advance(minutes=10)
    await cache.get("snapshot", "AAPL")

    def sample(outcome: str) -> float | None:
        return metrics.registry.get_sample_value(
            "crux_cache_requests_total", {"data_type": "snapshot", "outcome": outcome}
        )

    assert sample("hit") == 1.0
    assert sample("miss") == 1.0
    assert sample("stale") == 1.0
    assert metrics.registry.get_sample_value(
        "crux_cache_writes_total", {"data_type": "snapshot", "outcome": "ok"}
    ) == 1.0


@pytest.mark.asyncio
async def test_stats(cache: TieredCache) -> None:
    await cache.set("snapshot", "AAPL", {"price": 1})

    stats = await cache.stats()

    assert stats == {"entries": 1, "data_types": 11, "market_open": True, "off_hours_multiplier": 6}


@pytest.mark.asyncio
async def test_concurrent_writers(cache: TieredCache) -> None:
    symbols = [f"SYM{i}" for i in range(20)]

    await asyncio.gather(*(cache.set("daily_bars", s, [{"close": i}]) for i, s in enumerate(symbols)))
    lookups = await asyncio.gather(*(cache.get("daily_bars", s) for s in symbols))

    assert [lookup.value for lookup in lookups] == [[{"close": i}] for i in range(len(symbols))]
