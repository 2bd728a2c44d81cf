"""
Web API response models
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(UTC)


class APIResponse(BaseModel):
    """Standard API response envelope"""

    success: bool = Field(..., description="Whether the request succeeded")
    data: Any | None = Field(None, description="Response payload")
    message: str | None = Field(None, description="Response message")
    timestamp: datetime = Field(default_factory=_now, description="Response timestamp")


class ErrorResponse(BaseModel):
    """Error response envelope"""

    success: bool = Field(False, description="Always false")
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict[str, Any] | None = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_now, description="Error timestamp")


class CachePolicyInfo(BaseModel):
    """One row of the cache policy table"""

    data_type: str
    source: str
    base_ttl_seconds: int
    effective_ttl_seconds: int
    max_ttl_seconds: int


__all__ = ["APIResponse", "CachePolicyInfo", "ErrorResponse"]
