"""Cache maintenance commands."""

from __future__ import annotations

import asyncio

import typer

from crux.core.cache import CachePolicyRegistry, TieredCache, open_store
from crux.core.config import ConfigManager
from crux.core.exceptions import CacheError
from crux.core.market import utc_now

from .utils import SYSTEM_EXIT_CODE, VALIDATION_EXIT_CODE, emit_error, render_rows

cache_app = typer.Typer(help="Tiered cache operations.")


def register(app: typer.Typer) -> None:
    app.add_typer(cache_app, name="cache", help="Inspect and maintain the tiered cache")


def get_cache(db_path: str | None) -> TieredCache:
    """Factory hook for the cache used by maintenance commands."""

    config = ConfigManager().get_config()
    policies = CachePolicyRegistry(off_hours_multiplier=config.cache.off_hours_multiplier)
    return TieredCache(open_store(db_path or config.cache.db_path), policies, timeout=config.cache.operation_timeout)


def _fail(exc: CacheError) -> typer.Exit:
    emit_error(exc.message, exc.error_code, details=exc.details)
    return typer.Exit(code=SYSTEM_EXIT_CODE)


@cache_app.command("policies")
def policies_command(ctx: typer.Context) -> None:
    """List registered data types with their base, effective and maximum TTL."""
    config = ConfigManager().get_config()
    policies = CachePolicyRegistry(off_hours_multiplier=config.cache.off_hours_multiplier)
    render_rows(ctx, policies.describe(utc_now()))


@cache_app.command("sweep")
def sweep_command(
    ctx: typer.Context,
    db: str | None = typer.Option(None, "--db", help="Cache database path."),
) -> None:
    """Delete rows that are stale under every TTL regime."""
    cache = get_cache(db)
    try:
        removed = asyncio.run(cache.purge_expired())
    except CacheError as exc:
        raise _fail(exc) from exc
    finally:
        cache.close()
    render_rows(ctx, [{"removed": removed}])


@cache_app.command("invalidate")
def invalidate_command(
    ctx: typer.Context,
    data_type: str = typer.Argument(..., help="Data type tag, e.g. snapshot."),
    key: str = typer.Argument(..., help="Cache key, e.g. AAPL."),
    db: str | None = typer.Option(None, "--db", help="Cache database path."),
) -> None:
    """Remove a single cache entry."""
    cache = get_cache(db)
    try:
        if data_type not in cache.policies:
            emit_error(f"unknown cache data type: {data_type}", "UNKNOWN_DATA_TYPE")
            raise typer.Exit(code=VALIDATION_EXIT_CODE)
        removed = asyncio.run(cache.invalidate(data_type, key))
    except CacheError as exc:
        raise _fail(exc) from exc
    finally:
        cache.close()
    render_rows(ctx, [{"data_type": data_type, "key": key, "removed": removed}])
