"""Liveness and database status for the auth service."""

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from citizen_auth.core import check_db_connection, settings

router = APIRouter(tags=["health"])

_STARTED = time.monotonic()


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    database: str
    timestamp: datetime
    uptime_seconds: float


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Database unreachable"}},
)
@router.get("/auth/health", response_model=HealthResponse, include_in_schema=False)
async def health_check(response: Response) -> HealthResponse:
    """Report service status; 503 when the database cannot be reached."""
    db_ok = await check_db_connection()
    if not db_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if db_ok else "unhealthy",
        service="auth-service",
        version=settings.app_version,
        database="connected" if db_ok else "disconnected",
        timestamp=datetime.now(UTC),
        uptime_seconds=round(time.monotonic() - _STARTED, 3),
    )
