"""Trading calendar helpers."""

from crux.core.market.calendar import (
    US_EQUITY_CALENDAR,
    MarketCalendar,
    MarketStatus,
    is_market_open,
    is_market_open_at,
    utc_now,
)

__all__ = [
    "MarketCalendar",
    "MarketStatus",
    "US_EQUITY_CALENDAR",
    "is_market_open",
    "is_market_open_at",
    "utc_now",
]
