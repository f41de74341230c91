"""
Health Check Routes
Service health monitoring endpoints
Source: https://microservices.io/patterns/observability/health-check-api.html
"""

from typing import Any

from fastapi import APIRouter, Depends

from src.api.deps import get_storage
from src.db.connection import check_db_connection
from src.services.storage import StorageService
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])

SERVICE_NAME = "nhia-claims-portal"


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
    }


@router.get("/health/detailed")
async def detailed_health_check(
    storage: StorageService = Depends(get_storage),
) -> dict[str, Any]:
    """Health check with database and object storage status."""
    db_healthy = await check_db_connection()
    storage_healthy = await storage.is_available()

    overall_status = "healthy" if db_healthy and storage_healthy else "unhealthy"
    if overall_status != "healthy":
        logger.warning(f"Detailed health check: database={db_healthy}, storage={storage_healthy}")

    return {
        "status": overall_status,
        "service": SERVICE_NAME,
        "checks": {
            "database": "healthy" if db_healthy else "unhealthy",
            "storage": "healthy" if storage_healthy else "unhealthy",
        },
    }
