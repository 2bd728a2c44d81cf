"""FastAPI route exposing Prometheus metrics."""

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST

router = APIRouter()


@router.get("/metrics", include_in_schema=False, summary="Prometheus metrics endpoint")
def metrics_endpoint(request: Request) -> Response:
    """Expose collected metrics in Prometheus text format."""

    collector = request.app.state.metrics
    collector.record_sweep(0, request.app.state.rate_limiter.visitor_count())
    return Response(content=collector.render(), media_type=CONTENT_TYPE_LATEST)
