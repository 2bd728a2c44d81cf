"""
Health check routes
"""

from fastapi import APIRouter, Request
from loguru import logger

from crux.core.exceptions import CacheError
from crux.web.models import APIResponse

router = APIRouter()


@router.get("/health", response_model=APIResponse)
async def health_check(request: Request) -> APIResponse:
    """Liveness plus a cache store check."""
    cache = request.app.state.cache
    limiter = request.app.state.rate_limiter
    checks: dict[str, object] = {"rate_limiter": {"visitors": limiter.visitor_count(), "sweeping": limiter.running}}

    try:
        stats = await cache.stats()
        checks["cache"] = {"status": "ok", "entries": stats["entries"]}
        status = "ok"
    except CacheError as e:
        logger.warning(f"health check cache store query failed: {e}", error_code=e.error_code)
        checks["cache"] = {"status": "unavailable", "error": e.error_code}
        status = "degraded"

    return APIResponse(success=True, data={"status": status, "checks": checks}, message="health check complete")
