"""
API routes
"""

from crux.web.routes.cache_routes import router as cache_router
from crux.web.routes.health_routes import router as health_router
from crux.web.routes.market_routes import router as market_router
from crux.web.routes.metrics_routes import router as metrics_router

__all__ = ["cache_router", "health_router", "market_router", "metrics_router"]
