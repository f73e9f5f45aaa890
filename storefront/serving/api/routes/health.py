"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel
from redis.exceptions import RedisError

from storefront.config import get_settings
from storefront.database.connection import check_database_health
from storefront.serving.cache import get_redis, redis_available

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Database connectivity
    - Redis connectivity (when enabled)
    - Change feed transport and schema capabilities
    """
    settings = get_settings()
    checks: Dict[str, Any] = {}
    overall_status = "healthy"

    db_health = await check_database_health()
    checks["database"] = db_health
    if db_health.get("status") != "healthy":
        overall_status = "unhealthy"

    if not settings.redis.enabled:
        checks["redis"] = {"status": "disabled"}
    elif not redis_available():
        checks["redis"] = {"status": "unavailable"}
        if overall_status == "healthy":
            overall_status = "degraded"
    else:
        try:
            await get_redis().ping()
            checks["redis"] = {"status": "healthy"}
        except (RedisError, OSError) as e:
            checks["redis"] = {"status": "unhealthy", "error": str(e)}
            if overall_status == "healthy":
                overall_status = "degraded"

    services = getattr(request.app.state, "services", None)
    if services is not None:
        checks["change_feed"] = {"transport": services.hub.transport}
        checks["schema"] = {
            "missing_product_columns": sorted(services.capabilities.missing_product_columns),
            "delivery_charges_table": services.capabilities.has_delivery_charges,
        }

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Returns 200 once services are wired and the database answers.
    """
    if getattr(request.app.state, "services", None) is None:
        response.status_code = 503
        return {"status": "not_ready", "reason": "starting"}

    db_health = await check_database_health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    return {"status": "ready"}
