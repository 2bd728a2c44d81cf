"""
Web API module - FastAPI service
"""

from crux.web.app import create_app
from crux.web.models import APIResponse, ErrorResponse

__all__ = ["create_app", "APIResponse", "ErrorResponse"]
