"""Tests for the crux command line interface."""

from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from typer.testing import CliRunner

from crux.cli import app
from crux.cli import cache as cache_commands
from crux.core.cache import CacheRow, DuckDBCacheStore, InMemoryCacheStore, TieredCache
from crux.core.exceptions import StoreUnavailableError
from crux.core.logging import configure_logging

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in ("CRUX_CACHE_DB_PATH", "CRUX_CACHE_OFF_HOURS_MULTIPLIER"):
        monkeypatch.delenv(name, raising=False)
    yield
    # the CLI points the log sink at the runner's stderr
    configure_logging()


def _jsonl(output: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in output.splitlines() if line.strip()]


def _seed(path: Path, *, age: timedelta) -> None:
    store = DuckDBCacheStore(str(path))
    updated_at = datetime.now(UTC) - age
    store.upsert_row(CacheRow("snapshot", "AAPL", "{}", "massive", updated_at, updated_at + timedelta(minutes=30)))
    store.close()


def test_market_status_at() -> None:
    result = runner.invoke(app, ["--format", "jsonl", "market", "status", "--at", "2026-02-02T15:00:00+00:00"])

    assert result.exit_code == 0, result.output
    assert _jsonl(result.stdout) == [
        {"is_open": True, "local_time": "2026-02-02T10:00:00-05:00", "timezone": "America/New_York"}
    ]


def test_market_status_naive_timestamp_is_utc() -> None:
    result = runner.invoke(app, ["-f", "jsonl", "market", "status", "--at", "2026-02-02T14:00:00"])

    assert result.exit_code == 0, result.output
    assert _jsonl(result.stdout)[0]["is_open"] is False


def test_market_status_invalid_timestamp() -> None:
    result = runner.invoke(app, ["market", "status", "--at", "yesterday"])

    assert result.exit_code == 2
    assert "INVALID_TIMESTAMP" in result.output


def test_market_status_table() -> None:
    result = runner.invoke(app, ["--no-color", "market", "status", "--at", "2026-02-07T15:00:00+00:00"])

    assert result.exit_code == 0, result.output
    assert "is_open" in result.stdout
    assert "False" in result.stdout


def test_unsupported_format() -> None:
    result = runner.invoke(app, ["--format", "xml", "market", "status"])

    assert result.exit_code == 2


def test_policies() -> None:
    result = runner.invoke(app, ["-f", "jsonl", "cache", "policies"])

    assert result.exit_code == 0, result.output
    rows = {row["data_type"]: row for row in _jsonl(result.stdout)}
    assert len(rows) == 11
    assert rows["snapshot"]["base_ttl_seconds"] == 300
    assert rows["snapshot"]["max_ttl_seconds"] == 1800
    assert rows["rs_rank"]["source"] == "computed"


def test_sweep(tmp_path: Path) -> None:
    db = tmp_path / "cache.duckdb"
    _seed(db, age=timedelta(hours=2))

    result = runner.invoke(app, ["-f", "jsonl", "cache", "sweep", "--db", str(db)])

    assert result.exit_code == 0, result.output
    assert _jsonl(result.stdout) == [{"removed": 1}]


def test_invalidate(tmp_path: Path) -> None:
    db = tmp_path / "cache.duckdb"
    _seed(db, age=timedelta(0))

    first = runner.invoke(app, ["-f", "jsonl", "cache", "invalidate", "snapshot", "AAPL", "--db", str(db)])
    second = runner.invoke(app, ["-f", "jsonl", "cache", "invalidate", "snapshot", "AAPL", "--db", str(db)])

    assert first.exit_code == 0, first.output
    assert _jsonl(first.stdout) == [{"data_type": "snapshot", "key": "AAPL", "removed": True}]
    assert _jsonl(second.stdout)[0]["removed"] is False


def test_invalidate_unknown_data_type(tmp_path: Path) -> None:
    result = runner.invoke(app, ["cache", "invalidate", "bogus", "AAPL", "--db", str(tmp_path / "cache.duckdb")])

    assert result.exit_code == 2
    assert "UNKNOWN_DATA_TYPE" in result.output


def test_store_failure_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    class BrokenStore(InMemoryCacheStore):
        def delete_expired(self, now: datetime, *, cancel: threading.Event | None = None) -> int:
            raise StoreUnavailableError("database is locked")

    monkeypatch.setattr(cache_commands, "get_cache", lambda db: TieredCache(BrokenStore()))

    result = runner.invoke(app, ["cache", "sweep"])

    assert result.exit_code == 1
    assert "STORE_UNAVAILABLE" in result.output
