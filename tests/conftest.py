"""Pytest configuration for the crux test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

ET = ZoneInfo("America/New_York")


class FakeClock:
    """Manually advanced wall clock returning aware datetimes."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    """Manually advanced monotonic clock in seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def wall_clock() -> FakeClock:
    # Monday 2 Feb 2026, 11:00 ET, market open
    return FakeClock(datetime(2026, 2, 2, 11, 0, tzinfo=ET).astimezone(UTC))


@pytest.fixture()
def mono_clock() -> FakeMonotonic:
    return FakeMonotonic()


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--crux-run-integration",
        action="store_true",
        default=False,
        help="Run crux integration tests that require external services.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "integration: marks crux tests requiring network or external services",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--crux-run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="integration tests require --crux-run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)
