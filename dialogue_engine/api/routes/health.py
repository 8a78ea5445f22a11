"""
Health check endpoints.

Provides system health information for monitoring.
"""

from fastapi import APIRouter, HTTPException

from dialogue_engine import __version__
from dialogue_engine.core.config import settings
from dialogue_engine.persistence.database import check_database_health

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        System health status including database connectivity.
    """
    db_health = await check_database_health()

    overall_status = "healthy" if db_health["status"] == "healthy" else "unhealthy"

    return {
        "status": overall_status,
        "version": __version__,
        "debug": settings.debug,
        "components": {"database": db_health},
    }


@router.get("/health/live")
async def liveness():
    """Liveness probe: 200 while the process runs."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness():
    """Readiness probe: 503 until the database answers."""
    db_health = await check_database_health()
    if db_health["status"] != "healthy":
        raise HTTPException(status_code=503, detail="Database not ready")
    return {"status": "ready"}
