"""Per data-type cache policies with market-aware TTLs."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType

from crux.core.market.calendar import MarketCalendar, US_EQUITY_CALENDAR

OFF_HOURS_MULTIPLIER = 6


class DataSource(str, Enum):
    """Where a cached payload comes from, which decides off-hours behaviour."""

    PRICE_SENSITIVE = "massive"
    FUNDAMENTAL = "fmp"
    COMPUTED = "computed"


@dataclass(frozen=True)
class CachePolicy:
    """Caching behaviour for a single data type."""

    base_ttl: timedelta
    source: DataSource

    @property
    def price_sensitive(self) -> bool:
        return self.source is DataSource.PRICE_SENSITIVE

    def effective_ttl(self, market_open: bool, multiplier: int = OFF_HOURS_MULTIPLIER) -> timedelta:
        """TTL applied at read time.

        Price data does not move outside trading hours, so its TTL is
        stretched by ``multiplier`` while the market is closed.
        """
        if self.price_sensitive and not market_open:
            return self.base_ttl * multiplier
        return self.base_ttl

    def max_ttl(self, multiplier: int = OFF_HOURS_MULTIPLIER) -> timedelta:
        """Longest TTL this policy can ever produce."""
        if self.price_sensitive:
            return self.base_ttl * multiplier
        return self.base_ttl


def default_cache_policies() -> dict[str, CachePolicy]:
    """The deployed data-type table."""
    massive, fmp, computed = DataSource.PRICE_SENSITIVE, DataSource.FUNDAMENTAL, DataSource.COMPUTED
    return {
        # price data, fresh during market hours
        "snapshot": CachePolicy(timedelta(minutes=5), massive),
        "daily_bars": CachePolicy(timedelta(hours=24), massive),
        "sma_20": CachePolicy(timedelta(minutes=15), massive),
        "sma_50": CachePolicy(timedelta(minutes=15), massive),
        "sma_200": CachePolicy(timedelta(hours=1), massive),
        "rsi_14": CachePolicy(timedelta(minutes=15), massive),
        # fundamentals change infrequently
        "profile": CachePolicy(timedelta(days=7), fmp),
        "ratios_ttm": CachePolicy(timedelta(hours=24), fmp),
        "screener": CachePolicy(timedelta(hours=24), fmp),
        # computed
        "sector_overview": CachePolicy(timedelta(minutes=15), computed),
        "rs_rank": CachePolicy(timedelta(hours=24), computed),
    }


class CachePolicyRegistry(Mapping[str, CachePolicy]):
    """Immutable mapping of data-type tag to :class:`CachePolicy`."""

    def __init__(
        self,
        policies: Mapping[str, CachePolicy] | None = None,
        *,
        off_hours_multiplier: int = OFF_HOURS_MULTIPLIER,
        calendar: MarketCalendar = US_EQUITY_CALENDAR,
    ) -> None:
        source = default_cache_policies() if policies is None else dict(policies)
        for data_type, policy in source.items():
            if policy.base_ttl <= timedelta(0):
                raise ValueError(f"cache policy {data_type!r} has non-positive TTL: {policy.base_ttl}")
        if off_hours_multiplier < 1:
            raise ValueError("off_hours_multiplier must be >= 1")
        self._policies = MappingProxyType(source)
        self.off_hours_multiplier = off_hours_multiplier
        self.calendar = calendar

    def __getitem__(self, data_type: str) -> CachePolicy:
        return self._policies[data_type]

    def __iter__(self) -> Iterator[str]:
        return iter(self._policies)

    def __len__(self) -> int:
        return len(self._policies)

    def effective_ttl(self, data_type: str, now: datetime) -> timedelta | None:
        """TTL for ``data_type`` judged against the market state at ``now``."""
        policy = self.get(data_type)
        if policy is None:
            return None
        market_open = self.calendar.is_open(now) if policy.price_sensitive else True
        return policy.effective_ttl(market_open, self.off_hours_multiplier)

    def max_ttl(self, data_type: str) -> timedelta | None:
        policy = self.get(data_type)
        if policy is None:
            return None
        return policy.max_ttl(self.off_hours_multiplier)

    def describe(self, now: datetime) -> list[dict[str, object]]:
        """Tabular view of every policy, used by the API and CLI."""
        rows = []
        for data_type, policy in sorted(self._policies.items()):
            rows.append(
                {
                    "data_type": data_type,
                    "source": policy.source.value,
                    "base_ttl_seconds": int(policy.base_ttl.total_seconds()),
                    "effective_ttl_seconds": int(self.effective_ttl(data_type, now).total_seconds()),
                    "max_ttl_seconds": int(policy.max_ttl(self.off_hours_multiplier).total_seconds()),
                }
            )
        return rows


__all__ = [
    "CachePolicy",
    "CachePolicyRegistry",
    "DataSource",
    "OFF_HOURS_MULTIPLIER",
    "default_cache_policies",
]
