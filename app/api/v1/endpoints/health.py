"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from app.config import settings
from app.core.firebase import is_firebase_initialized
from app.core.redis_client import check_redis_connection
from app.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Health of the service and its backing stores."""

    database: str
    redis: str
    notifications: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Health including the database, Redis and push delivery.

    Redis only backs the provider cache, so an outage degrades the service
    without taking scheduling down. Notifications report ``disabled`` when
    switched off and ``unavailable`` when Firebase failed to start.
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()

    if not settings.notifications_enabled:
        notifications = "disabled"
    elif is_firebase_initialized():
        notifications = "healthy"
    else:
        notifications = "unavailable"

    if not db_healthy:
        overall = "unhealthy"
    elif not redis_healthy or notifications == "unavailable":
        overall = "degraded"
    else:
        overall = "healthy"

    return DetailedHealthResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        redis="healthy" if redis_healthy else "unhealthy",
        notifications=notifications,
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    return {"message": "pong"}
