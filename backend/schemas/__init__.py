"""
DistrictRadar Pydantic Schemas
Request/Response models for API endpoints.
"""
from backend.schemas.search import (
    CommandRequestBody,
    CommandResponse,
    CommandSearchTelemetrySummary,
    DistrictWhyResponse,
    SearchHealthResponse,
)

__all__ = [
    "CommandRequestBody",
    "CommandResponse",
    "CommandSearchTelemetrySummary",
    "DistrictWhyResponse",
    "SearchHealthResponse",
]
