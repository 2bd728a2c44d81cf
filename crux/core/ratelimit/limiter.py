"""Per client IP fixed-window rate limiter with idle visitor eviction."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from crux.core.monitoring.metrics import MetricsCollector
from crux.core.net.client_ip import strip_port

DEFAULT_REQUESTS_PER_SECOND = 100
DEFAULT_RETENTION = 60.0
DEFAULT_SWEEP_INTERVAL = 60.0
WINDOW_SECONDS = 1.0


@dataclass
class Visitor:
    """Tracking record for one normalized client IP."""

    window_start: float
    last_seen: float
    count: int = 1
    # set by the first rejection in the current window
    throttled: bool = False


class _Shard:
    __slots__ = ("lock", "visitors")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.visitors: dict[str, Visitor] = {}


class RateLimiter:
    """Admits at most ``requests_per_second`` requests per client IP per window.

    Keys are always the bare IP; the port of the peer address is stripped so
    ephemeral client ports collapse onto one visitor. With ``shards > 1``
    the visitor map is split into independently locked partitions.

    The idle sweep runs as an asyncio task between :meth:`start` and
    :meth:`stop`. Pass ``run_sweeper=False`` to drive :meth:`sweep` by hand.
    """

    def __init__(
        self,
        requests_per_second: int = DEFAULT_REQUESTS_PER_SECOND,
        *,
        retention: float = DEFAULT_RETENTION,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        shards: int = 1,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsCollector | None = None,
        run_sweeper: bool = True,
    ) -> None:
        if requests_per_second < 1:
            raise ValueError("requests_per_second must be >= 1")
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self.requests_per_second = requests_per_second
        self.retention = retention
        self.sweep_interval = sweep_interval
        self.clock = clock
        self.metrics = metrics
        self.run_sweeper = run_sweeper
        self._shards = [_Shard() for _ in range(shards)]
        self._task: asyncio.Task[None] | None = None
        self._stopping: asyncio.Event | None = None

    def _shard_for(self, ip: str) -> _Shard:
        if len(self._shards) == 1:
            return self._shards[0]
        return self._shards[hash(ip) % len(self._shards)]

    def admit(self, remote_addr: str) -> bool:
        """Record a request from ``remote_addr`` and decide whether to admit it."""
        ip = strip_port(remote_addr)
        now = self.clock()
        shard = self._shard_for(ip)

        first_rejection = False
        with shard.lock:
            visitor = shard.visitors.get(ip)
            if visitor is None:
                shard.visitors[ip] = Visitor(window_start=now, last_seen=now)
                allowed = True
            elif now - visitor.window_start >= WINDOW_SECONDS:
                visitor.window_start = now
                visitor.last_seen = now
                visitor.count = 1
                visitor.throttled = False
                allowed = True
            else:
                visitor.last_seen = now
                # count saturates at the limit; rejected requests do not grow it
                allowed = visitor.count < self.requests_per_second
                if allowed:
                    visitor.count += 1
                else:
                    first_rejection = not visitor.throttled
                    visitor.throttled = True

        if self.metrics is not None:
            self.metrics.record_admission(allowed)
        if first_rejection:
            logger.info("rate limit exceeded", client_ip=ip)
        elif not allowed:
            logger.debug("rate limit exceeded", client_ip=ip)
        return allowed

    def sweep(self, now: float | None = None) -> int:
        """Remove visitors idle for at least ``retention`` seconds."""
        if now is None:
            now = self.clock()
        removed = 0
        remaining = 0
        for shard in self._shards:
            with shard.lock:
                idle = [ip for ip, v in shard.visitors.items() if now - v.last_seen >= self.retention]
                for ip in idle:
                    del shard.visitors[ip]
                removed += len(idle)
                remaining += len(shard.visitors)

        if self.metrics is not None:
            self.metrics.record_sweep(removed, remaining)
        logger.debug(f"rate limiter sweep removed {removed} visitors, {remaining} remain")
        return removed

    def visitor_count(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.visitors)
        return total

    def get_visitor(self, remote_addr: str) -> Visitor | None:
        """Snapshot of the tracking record for ``remote_addr``, if any."""
        ip = strip_port(remote_addr)
        shard = self._shard_for(ip)
        with shard.lock:
            visitor = shard.visitors.get(ip)
            if visitor is None:
                return None
            return Visitor(visitor.window_start, visitor.last_seen, visitor.count, visitor.throttled)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _sweep_loop(self) -> None:
        assert self._stopping is not None
        while True:
            try:
                await asyncio.wait_for(self._stopping.wait(), self.sweep_interval)
                return
            except TimeoutError:
                self.sweep()

    async def start(self) -> None:
        """Start the background sweep task. A no-op when already running."""
        if not self.run_sweeper or self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._sweep_loop(), name="crux-rate-limiter-sweep")
        logger.debug(f"rate limiter sweep started, interval {self.sweep_interval}s")

    async def stop(self) -> None:
        """Stop the sweep task and drop all visitor state."""
        if self._task is not None:
            assert self._stopping is not None
            self._stopping.set()
            await self._task
            self._task = None
            self._stopping = None
        for shard in self._shards:
            with shard.lock:
                shard.visitors.clear()

    async def __aenter__(self) -> RateLimiter:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()


__all__ = [
    "DEFAULT_REQUESTS_PER_SECOND",
    "DEFAULT_RETENTION",
    "DEFAULT_SWEEP_INTERVAL",
    "RateLimiter",
    "Visitor",
    "WINDOW_SECONDS",
]
