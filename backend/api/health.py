"""
DistrictRadar Health Check Endpoints
Liveness and readiness probes for infrastructure monitoring.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text

from backend.core.config import settings
from backend.database import AsyncSessionLocal

logger = logging.getLogger(__name__)


# =============================================================================
# Health Status Models
# =============================================================================


class HealthStatus(str, Enum):
    """Health status values for components and overall system."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status for an individual component."""

    status: HealthStatus
    latency_ms: Optional[float] = None
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Full health check response."""

    status: HealthStatus
    timestamp: str
    components: dict[str, Any]
    version: str


class LivenessResponse(BaseModel):
    """Simple liveness check response."""

    status: str


# =============================================================================
# Health Check Functions
# =============================================================================


async def check_database() -> ComponentHealth:
    """
    Check PostgreSQL database connectivity.

    Runs a simple query and measures latency.
    """
    start_time = time.perf_counter()
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            latency = (time.perf_counter() - start_time) * 1000
            return ComponentHealth(
                status=HealthStatus.HEALTHY,
                latency_ms=round(latency, 2),
                message="Database connection successful",
            )
    except Exception as e:
        latency = (time.perf_counter() - start_time) * 1000
        logger.error(f"Database health check failed: {e}")
        return ComponentHealth(
            status=HealthStatus.UNHEALTHY,
            latency_ms=round(latency, 2),
            message=f"Database connection failed: {str(e)}",
        )


async def check_embeddings() -> ComponentHealth:
    """Embeddings are degraded, not down, when no API key is configured."""
    if not settings.openai_api_key:
        return ComponentHealth(status=HealthStatus.DEGRADED, message="OPENAI_API_KEY not configured")
    return ComponentHealth(status=HealthStatus.HEALTHY, message=f"Using {settings.embedding_model}")


def determine_overall_status(components: dict[str, ComponentHealth]) -> HealthStatus:
    """
    Determine overall system health based on component statuses.

    - UNHEALTHY: If database is unhealthy (critical)
    - DEGRADED: If any other component is degraded or unhealthy
    - HEALTHY: If all components are healthy
    """
    db_status = components.get("database")
    if db_status and db_status.status == HealthStatus.UNHEALTHY:
        return HealthStatus.UNHEALTHY

    if any(component.status != HealthStatus.HEALTHY for component in components.values()):
        return HealthStatus.DEGRADED

    return HealthStatus.HEALTHY


# =============================================================================
# Router Definition
# =============================================================================

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "",
    response_model=LivenessResponse,
    summary="Basic liveness check",
    description="Simple health check that returns OK if the service is running.",
)
async def basic_health() -> LivenessResponse:
    return LivenessResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness check",
    description="Readiness check covering the database and embedding configuration.",
    responses={
        200: {"description": "All systems operational or degraded"},
        503: {"description": "Database unavailable"},
    },
)
async def readiness_check(response: Response) -> HealthResponse:
    """
    Readiness check.

    Returns 503 only when the database is unreachable; a missing
    embedding key reports degraded.
    """
    db_check, embedding_check = await asyncio.gather(check_database(), check_embeddings())

    components = {"database": db_check, "embeddings": embedding_check}
    overall_status = determine_overall_status(components)

    if overall_status == HealthStatus.UNHEALTHY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        components={name: check.model_dump(mode="json") for name, check in components.items()},
        version=settings.app_version,
    )
