"""
FastAPI application factory
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from crux.core.cache import CachePolicyRegistry, CacheStore, TieredCache, open_store
from crux.core.config import ConfigManager, CruxConfig
from crux.core.exceptions import (
    CacheTimeoutError,
    ConfigurationError,
    CruxError,
    StoreUnavailableError,
    UnknownDataTypeError,
)
from crux.core.logging import current_trace_id, get_logger
from crux.core.market import utc_now
from crux.core.monitoring import MetricsCollector, get_metrics_collector
from crux.core.ratelimit import RateLimiter
from crux.web.middleware import RateLimitMiddleware, RealIPMiddleware
from crux.web.models import ErrorResponse
from crux.web.routes import cache_router, health_router, market_router, metrics_router

logger = get_logger("crux.web")


def _build_rate_limiter(config: CruxConfig, metrics: MetricsCollector) -> RateLimiter:
    settings = config.rate_limit
    return RateLimiter(
        settings.requests_per_second,
        retention=settings.retention_seconds,
        sweep_interval=settings.sweep_interval_seconds,
        shards=settings.shards,
        metrics=metrics,
    )


def create_app(
    config: CruxConfig | None = None,
    *,
    store: CacheStore | None = None,
    policies: CachePolicyRegistry | None = None,
    rate_limiter: RateLimiter | None = None,
    clock: Callable[[], datetime] = utc_now,
    metrics: MetricsCollector | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    The cache store is opened on startup and closed on shutdown; the rate
    limiter sweep task follows the same lifecycle.
    """
    config = config or ConfigManager().get_config()
    metrics = metrics or get_metrics_collector()
    policies = policies or CachePolicyRegistry(off_hours_multiplier=config.cache.off_hours_multiplier)
    limiter = rate_limiter or _build_rate_limiter(config, metrics)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        cache_store = store if store is not None else open_store(config.cache.db_path)
        app.state.cache = TieredCache(
            cache_store,
            policies,
            clock=clock,
            timeout=config.cache.operation_timeout,
            metrics=metrics,
        )
        await limiter.start()
        logger.info(
            f"crux started: cache={config.cache.db_path} "
            f"rate_limit={config.rate_limit.requests_per_second}/s enabled={config.rate_limit.enabled}"
        )

        yield

        await limiter.stop()
        app.state.cache.close()
        logger.info("crux stopped")

    app = FastAPI(title="crux", description="Market-aware cache and rate limiting service", lifespan=lifespan)
    app.state.config = config
    app.state.clock = clock
    app.state.metrics = metrics
    app.state.rate_limiter = limiter

    _setup_middleware(app, config, limiter)
    _setup_routes(app)
    _setup_exception_handlers(app)
    return app


def _setup_middleware(app: FastAPI, config: CruxConfig, limiter: RateLimiter) -> None:
    # Starlette runs the last added middleware first: RealIP must resolve the
    # client before the rate limiter keys on it.
    if config.rate_limit.enabled:
        app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(RealIPMiddleware, trust_forwarded_headers=config.server.trust_forwarded_headers)


def _setup_routes(app: FastAPI) -> None:
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(market_router, prefix="/api/v1", tags=["market"])
    app.include_router(cache_router, prefix="/api/v1/cache", tags=["cache"])


def _status_for(exc: CruxError) -> int:
    if isinstance(exc, UnknownDataTypeError):
        return 404
    if isinstance(exc, (StoreUnavailableError, CacheTimeoutError)):
        return 503
    if isinstance(exc, ConfigurationError):
        return 500
    return 400


def _setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CruxError)
    async def crux_exception_handler(request: Request, exc: CruxError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.warning(f"{request.url.path} failed: {exc.message}", error_code=exc.error_code)
        return JSONResponse(
            status_code=status_code,
            headers={"X-Request-ID": current_trace_id()},
            content=ErrorResponse(
                error=exc.__class__.__name__,
                message=exc.message,
                details={"error_code": exc.error_code, **exc.details},
            ).model_dump(mode="json"),
        )
