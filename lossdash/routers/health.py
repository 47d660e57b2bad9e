"""Health endpoint."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from lossdash.routers.dependencies import get_dashboard_service
from lossdash.services.dashboard import DashboardService

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    sessions: int
    cached_responses: int


@router.get("/health", response_model=HealthResponse)
async def health_check(
    service: Annotated[DashboardService, Depends(get_dashboard_service)],
) -> HealthResponse:
    """Liveness plus the size of the in-process caches."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(UTC),
        sessions=service.session_count,
        cached_responses=len(service.cache),
    )
