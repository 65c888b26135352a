"""Health check endpoints."""

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from appointment_service.config import settings
from appointment_service.core.redis_client import check_redis_connection
from appointment_service.database import check_database_connection

router = APIRouter()

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Health check including backing stores."""

    database: str
    redis: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Liveness probe. Does not touch the database or Redis."""
    return HealthResponse(
        status=HEALTHY,
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check(response: Response) -> DetailedHealthResponse:
    """
    Readiness probe.

    The database is required for every appointment operation, so an
    unreachable database answers 503. Redis only backs the doctor lookup
    fallback and reports ``degraded`` instead.
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()

    if not db_healthy:
        overall = UNHEALTHY
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif not redis_healthy:
        overall = "degraded"
    else:
        overall = HEALTHY

    return DetailedHealthResponse(
        status=overall,
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        database=HEALTHY if db_healthy else UNHEALTHY,
        redis=HEALTHY if redis_healthy else UNHEALTHY,
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    return {"message": "pong"}
