"""Backing stores for the tiered cache.

A store only persists rows; freshness is decided by the caller from
``updated_at`` and the data-type policy at read time.

Every operation takes an optional ``cancel`` event. A caller that gives up
sets it through :meth:`CacheStore.interrupt`: an operation still waiting for
the store lock then never runs, and a running query is aborted only when it
belongs to that caller.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

import duckdb
from duckdb import DuckDBPyConnection

from crux.core.exceptions import StoreUnavailableError

PROVIDER_CACHE_TABLE = "provider_cache"


@dataclass(frozen=True)
class CacheRow:
    """One persisted cache entry, identified by ``(data_type, key)``."""

    data_type: str
    key: str
    payload: str
    provider: str
    updated_at: datetime
    max_expires_at: datetime


@runtime_checkable
class CacheStore(Protocol):
    """Blocking key-value contract consumed by :class:`TieredCache`."""

    def get_row(self, data_type: str, key: str, *, cancel: threading.Event | None = None) -> CacheRow | None: ...

    def upsert_row(self, row: CacheRow, *, cancel: threading.Event | None = None) -> None: ...

    def delete_row(self, data_type: str, key: str, *, cancel: threading.Event | None = None) -> bool: ...

    def delete_expired(self, now: datetime, *, cancel: threading.Event | None = None) -> int: ...

    def count(self, *, cancel: threading.Event | None = None) -> int: ...

    def interrupt(self, cancel: threading.Event) -> None: ...

    def close(self) -> None: ...


def _check_cancel(cancel: threading.Event | None, data_type: str | None = None, key: str | None = None) -> None:
    if cancel is not None and cancel.is_set():
        raise StoreUnavailableError("cache operation cancelled before it started", data_type, key)


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _to_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class DuckDBCacheStore:
    """``provider_cache`` table stored in DuckDB."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._lock = threading.Lock()
        # guards _running, which names the caller whose query is executing
        self._state_lock = threading.Lock()
        self._running: threading.Event | None = None
        try:
            self._conn: DuckDBPyConnection | None = duckdb.connect(db_path)
            self._init_database()
        except duckdb.Error as e:
            raise StoreUnavailableError(f"opening cache database {db_path}: {e}") from e

    def _init_database(self) -> None:
        conn = self._connection()
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {PROVIDER_CACHE_TABLE} (
                data_type VARCHAR(50) NOT NULL,
                key VARCHAR(100) NOT NULL,
                data JSON,
                provider VARCHAR(20),
                updated_at TIMESTAMP NOT NULL,
                expires_at TIMESTAMP NOT NULL,
                PRIMARY KEY (data_type, key)
            )
        """)
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_provider_cache_updated_at ON {PROVIDER_CACHE_TABLE}(updated_at)"
        )
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_provider_cache_expires_at ON {PROVIDER_CACHE_TABLE}(expires_at)"
        )

    def _connection(self) -> DuckDBPyConnection:
        if self._conn is None:
            raise StoreUnavailableError("cache database connection is closed")
        return self._conn

    def _fetchone(
        self,
        sql: str,
        params: list[Any],
        cancel: threading.Event | None,
        data_type: str | None = None,
        key: str | None = None,
    ) -> tuple[Any, ...] | None:
        """Run ``sql`` under the store lock unless ``cancel`` fired while waiting."""
        with self._lock:
            conn = self._connection()
            with self._state_lock:
                _check_cancel(cancel, data_type, key)
                self._running = cancel
            try:
                return conn.execute(sql, params).fetchone()
            finally:
                with self._state_lock:
                    self._running = None

    def get_row(self, data_type: str, key: str, *, cancel: threading.Event | None = None) -> CacheRow | None:
        try:
            result = self._fetchone(
                f"SELECT data, provider, updated_at, expires_at FROM {PROVIDER_CACHE_TABLE} "
                "WHERE data_type = ? AND key = ?",
                [data_type, key],
                cancel,
                data_type,
                key,
            )
        except duckdb.Error as e:
            raise StoreUnavailableError(f"querying cache: {e}", data_type, key) from e

        if result is None:
            return None
        payload, provider, updated_at, expires_at = result
        return CacheRow(
            data_type=data_type,
            key=key,
            payload=payload,
            provider=provider or "",
            updated_at=_to_aware_utc(updated_at),
            max_expires_at=_to_aware_utc(expires_at),
        )

    def upsert_row(self, row: CacheRow, *, cancel: threading.Event | None = None) -> None:
        try:
            self._fetchone(
                f"""
                INSERT OR REPLACE INTO {PROVIDER_CACHE_TABLE}
                    (data_type, key, data, provider, updated_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    row.data_type,
                    row.key,
                    row.payload,
                    row.provider,
                    _to_naive_utc(row.updated_at),
                    _to_naive_utc(row.max_expires_at),
                ],
                cancel,
                row.data_type,
                row.key,
            )
        except duckdb.Error as e:
            raise StoreUnavailableError(f"upserting cache: {e}", row.data_type, row.key) from e

    def delete_row(self, data_type: str, key: str, *, cancel: threading.Event | None = None) -> bool:
        try:
            result = self._fetchone(
                f"DELETE FROM {PROVIDER_CACHE_TABLE} WHERE data_type = ? AND key = ?",
                [data_type, key],
                cancel,
                data_type,
                key,
            )
        except duckdb.Error as e:
            raise StoreUnavailableError(f"invalidating cache: {e}", data_type, key) from e
        return bool(result and result[0])

    def delete_expired(self, now: datetime, *, cancel: threading.Event | None = None) -> int:
        """Physically remove rows that are stale under every TTL regime."""
        try:
            result = self._fetchone(
                f"DELETE FROM {PROVIDER_CACHE_TABLE} WHERE expires_at <= ?",
                [_to_naive_utc(now)],
                cancel,
            )
        except duckdb.Error as e:
            raise StoreUnavailableError(f"sweeping cache: {e}") from e
        return int(result[0]) if result else 0

    def count(self, *, cancel: threading.Event | None = None) -> int:
        try:
            result = self._fetchone(f"SELECT COUNT(*) FROM {PROVIDER_CACHE_TABLE}", [], cancel)
        except duckdb.Error as e:
            raise StoreUnavailableError(f"counting cache rows: {e}") from e
        return int(result[0]) if result else 0

    def interrupt(self, cancel: threading.Event) -> None:
        """Cancel the caller owning ``cancel``.

        Its pending operation will not start; its query is aborted if it is
        the one running. Queries of other callers are left alone.
        """
        with self._state_lock:
            cancel.set()
            if self._running is cancel and self._conn is not None:
                self._conn.interrupt()

    def is_connected(self) -> bool:
        return self._conn is not None

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class InMemoryCacheStore:
    """Thread-safe dictionary store."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str], CacheRow] = {}
        self._lock = threading.Lock()

    def get_row(self, data_type: str, key: str, *, cancel: threading.Event | None = None) -> CacheRow | None:
        with self._lock:
            _check_cancel(cancel, data_type, key)
            return self._rows.get((data_type, key))

    def upsert_row(self, row: CacheRow, *, cancel: threading.Event | None = None) -> None:
        with self._lock:
            _check_cancel(cancel, row.data_type, row.key)
            self._rows[(row.data_type, row.key)] = row

    def delete_row(self, data_type: str, key: str, *, cancel: threading.Event | None = None) -> bool:
        with self._lock:
            _check_cancel(cancel, data_type, key)
            return self._rows.pop((data_type, key), None) is not None

    def delete_expired(self, now: datetime, *, cancel: threading.Event | None = None) -> int:
        with self._lock:
            _check_cancel(cancel)
            expired = [k for k, row in self._rows.items() if row.max_expires_at <= now]
            for k in expired:
                del self._rows[k]
            return len(expired)

    def count(self, *, cancel: threading.Event | None = None) -> int:
        with self._lock:
            _check_cancel(cancel)
            return len(self._rows)

    def interrupt(self, cancel: threading.Event) -> None:
        cancel.set()

    def close(self) -> None:
        with self._lock:
            self._rows.clear()

    def __len__(self) -> int:
        return self.count()


def open_store(db_path: str) -> CacheStore:
    """Open the store named by ``db_path``; ``memory://`` selects the dict store."""
    if db_path == "memory://":
        return InMemoryCacheStore()
    return DuckDBCacheStore(db_path)


__all__ = [
    "CacheRow",
    "CacheStore",
    "DuckDBCacheStore",
    "InMemoryCacheStore",
    "PROVIDER_CACHE_TABLE",
    "open_store",
]
