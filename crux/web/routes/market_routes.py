"""
Market status routes
"""

from fastapi import APIRouter, Request

from crux.web.models import APIResponse

router = APIRouter()


@router.get("/market/status", response_model=APIResponse)
async def market_status(request: Request) -> APIResponse:
    """Whether the US equity market is in its regular session right now."""
    calendar = request.app.state.cache.policies.calendar
    status = calendar.status(request.app.state.clock())
    return APIResponse(success=True, data=status.as_dict())
