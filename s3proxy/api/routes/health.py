"""Health check endpoints."""
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from s3proxy.core.config import settings
from s3proxy.core.exceptions import StorageError
from s3proxy.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    environment: str
    timestamp: datetime


class ReadinessResponse(BaseModel):
    """Readiness check response with component status."""

    ready: bool
    checks: dict[str, bool]
    timestamp: datetime


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check - always returns OK if the service is running."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment.value,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Kubernetes liveness probe."""
    return {"status": "alive"}


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> ReadinessResponse:
    """Kubernetes readiness probe - checks the storage backend answers."""
    checks: dict[str, bool] = {}

    checks["app"] = getattr(request.app.state, "ready", False)

    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        checks["storage"] = False
    else:
        try:
            await storage.list_all_buckets()
            checks["storage"] = True
        except StorageError as e:
            logger.warning("Storage readiness check failed", error=e.message)
            checks["storage"] = False

    return ReadinessResponse(
        ready=all(checks.values()),
        checks=checks,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/info")
async def info(request: Request) -> dict[str, Any]:
    """Application information endpoint."""
    storage = getattr(request.app.state, "storage", None)
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment.value,
        "storage": {
            "provider": storage.name if storage is not None else None,
            "region": settings.cloud_region,
            "endpoint": settings.cloud_endpoint,
        },
    }
