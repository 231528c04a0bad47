"""
Health Check Endpoints.

Provides health status for the API and its dependencies.
"""
import os
import time
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from ..models import HealthStatus
from ..deps import get_redis_client, storage_backend
from ...database.auth_db import get_auth_db

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

VERSION = os.getenv("APP_VERSION", "0.1.0")


def check_storage() -> str:
    """Probe the configured storage backend; raises if it is down."""
    if storage_backend() == "memory":
        return "healthy (in-memory)"

    start = time.time()
    with get_auth_db().get_session() as session:
        session.execute(text("SELECT 1"))
    latency = (time.time() - start) * 1000
    return f"healthy ({latency:.1f}ms)"


@router.get("", response_model=HealthStatus)
async def health_check():
    """
    Basic health check endpoint.

    Returns overall system status.
    """
    services = {}
    overall_healthy = True

    try:
        services["storage"] = check_storage()
    except Exception as e:
        services["storage"] = f"unhealthy: {str(e)}"
        overall_healthy = False

    try:
        redis_client = get_redis_client()
        if redis_client:
            start = time.time()
            redis_client.ping()
            latency = (time.time() - start) * 1000
            services["redis"] = f"healthy ({latency:.1f}ms)"
        else:
            services["redis"] = "fallback_mode (in-memory)"
    except Exception as e:
        services["redis"] = f"unhealthy: {str(e)}"
        # Redis failure is not critical - login rate limiting falls back to memory

    return HealthStatus(
        status="healthy" if overall_healthy else "unhealthy",
        version=VERSION,
        services=services,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/live")
async def liveness():
    """
    Kubernetes liveness probe.

    Returns 200 if the service is running.
    """
    return {"status": "alive"}


@router.get("/ready")
async def readiness():
    """
    Kubernetes readiness probe.

    Returns 200 if storage is reachable, 503 otherwise.
    """
    try:
        check_storage()
        return {"status": "ready"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not ready", "error": str(e)},
        )
