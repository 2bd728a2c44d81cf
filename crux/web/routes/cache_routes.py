"""
Cache inspection and invalidation routes
"""

from fastapi import APIRouter, Request

from crux.core.exceptions import UnknownDataTypeError
from crux.web.models import APIResponse, CachePolicyInfo

router = APIRouter()


@router.get("/policies", response_model=APIResponse)
async def list_policies(request: Request) -> APIResponse:
    """Base, effective and maximum TTL for each registered data type."""
    cache = request.app.state.cache
    rows = cache.policies.describe(request.app.state.clock())
    return APIResponse(success=True, data=[CachePolicyInfo(**row) for row in rows])


@router.get("/stats", response_model=APIResponse)
async def cache_stats(request: Request) -> APIResponse:
    return APIResponse(success=True, data=await request.app.state.cache.stats())


@router.delete("/{data_type}/{key}", response_model=APIResponse)
async def invalidate_entry(request: Request, data_type: str, key: str) -> APIResponse:
    """Drop a single cache entry. Deleting an absent entry is not an error."""
    cache = request.app.state.cache
    if data_type not in cache.policies:
        raise UnknownDataTypeError(data_type)
    removed = await cache.invalidate(data_type, key)
    return APIResponse(success=True, data={"data_type": data_type, "key": key, "removed": removed})
