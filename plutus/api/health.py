"""
Health Check Endpoints

API health and readiness checks.
"""

from fastapi import APIRouter, Depends

from plutus.api.dependencies import get_engine
from plutus.config import get_settings
from plutus.services.engine import PlutusEngine

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check():
    """Basic health check."""
    return {
        "status": "healthy",
        "service": "plutus",
        "version": settings.app_version,
    }


@router.get("/ready")
async def readiness_check(engine: PlutusEngine = Depends(get_engine)):
    """Readiness check including the recalculation loop."""
    checks = {
        "engine": True,
        "scheduler": engine.scheduler.is_running,
    }
    return {
        "status": "ready" if all(checks.values()) else "degraded",
        "checks": checks,
        "last_recalculation": (
            engine.scheduler.last_run_at.isoformat() if engine.scheduler.last_run_at else None
        ),
    }


@router.get("/live")
async def liveness_check():
    """Kubernetes liveness probe."""
    return {"status": "live"}
