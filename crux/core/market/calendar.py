"""US equity market-hours oracle used for cache freshness decisions.

Market holidays are not modelled: a weekday holiday is reported as a
regular trading session.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

US_EASTERN = "America/New_York"
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)

# Standard time offset, used when the tz database is missing.
EASTERN_FALLBACK = timezone(timedelta(hours=-5), "EST")

default_weekend = frozenset({5, 6})


@lru_cache(maxsize=None)
def load_timezone(name: str, fallback: tzinfo = EASTERN_FALLBACK) -> tzinfo:
    """Resolve ``name`` through zoneinfo, falling back to a fixed offset."""

    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"timezone {name!r} unavailable, using fixed offset {fallback}")
        return fallback


def _minute_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class MarketStatus:
    """Point-in-time view of the trading session."""

    is_open: bool
    local_time: datetime
    timezone: str

    def as_dict(self) -> dict[str, object]:
        return {
            "is_open": self.is_open,
            "local_time": self.local_time.isoformat(),
            "timezone": self.timezone,
        }


@dataclass(frozen=True)
class MarketCalendar:
    """Regular trading session definition for a single exchange timezone."""

    timezone_name: str = US_EASTERN
    open_time: time = MARKET_OPEN
    close_time: time = MARKET_CLOSE
    weekend_days: frozenset[int] = field(default=default_weekend)

    @property
    def tz(self) -> tzinfo:
        return load_timezone(self.timezone_name)

    def localize(self, moment: datetime) -> datetime:
        """Convert ``moment`` to exchange time; naive values are taken as UTC."""

        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return moment.astimezone(self.tz)

    def is_open(self, moment: datetime) -> bool:
        """Return True when ``moment`` falls inside the regular session.

        The session is half open: the opening minute is inside, the closing
        minute is not.
        """

        local = self.localize(moment)
        if local.weekday() in self.weekend_days:
            return False

        minute = local.hour * 60 + local.minute
        return _minute_of_day(self.open_time) <= minute < _minute_of_day(self.close_time)

    def status(self, moment: datetime) -> MarketStatus:
        local = self.localize(moment)
        return MarketStatus(is_open=self.is_open(moment), local_time=local, timezone=self.timezone_name)


US_EQUITY_CALENDAR = MarketCalendar()


def utc_now() -> datetime:
    return datetime.now(UTC)


def is_market_open_at(moment: datetime) -> bool:
    """Check whether the US equity market is open at ``moment``."""

    return US_EQUITY_CALENDAR.is_open(moment)


def is_market_open(clock: Callable[[], datetime] = utc_now) -> bool:
    """Check whether the US equity market is open right now."""

    return is_market_open_at(clock())


__all__ = [
    "EASTERN_FALLBACK",
    "MARKET_CLOSE",
    "MARKET_OPEN",
    "MarketCalendar",
    "MarketStatus",
    "US_EASTERN",
    "US_EQUITY_CALENDAR",
    "is_market_open",
    "is_market_open_at",
    "load_timezone",
    "utc_now",
]
