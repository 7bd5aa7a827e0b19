"""
API Package
Contains FastAPI routes and models
"""

from api.routes import router, get_service
from api.models import (
    ExtractRequest,
    ExtractResponse,
    HybridRequest,
    HybridResponse,
    HealthResponse,
    ErrorResponse
)

__all__ = [
    'router',
    'get_service',
    'ExtractRequest',
    'ExtractResponse',
    'HybridRequest',
    'HybridResponse',
    'HealthResponse',
    'ErrorResponse'
]
