"""API routes for dashboard analytics over progressively loaded incidents."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from lossdash.filters import FilterFingerprint
from lossdash.routers.dependencies import get_bearer_token, get_dashboard_service, get_fingerprint
from lossdash.schemas.dashboard import DashboardSummary, IncidentRowsResponse, LoadStatusOut
from lossdash.services.dashboard import DashboardService, load_status

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/summary", response_model=DashboardSummary)
async def dashboard_summary(
    service: Annotated[DashboardService, Depends(get_dashboard_service)],
    token: Annotated[str, Depends(get_bearer_token)],
    fingerprint: Annotated[FilterFingerprint, Depends(get_fingerprint)],
    repeat_suspects: int = Query(5, ge=0, le=50, description="How many repeat suspects to list"),
) -> DashboardSummary:
    """
    All dashboard KPIs and charts for a date range and office.

    Waits until every page allowed by the page cap has resolved. The status
    block tells whether the numbers cover the full remote dataset.
    """
    snapshot = await service.snapshot(token, fingerprint)
    return snapshot.summary(repeat_suspects_limit=repeat_suspects)


@router.get("/status", response_model=LoadStatusOut)
async def dashboard_status(
    service: Annotated[DashboardService, Depends(get_dashboard_service)],
    token: Annotated[str, Depends(get_bearer_token)],
    fingerprint: Annotated[FilterFingerprint, Depends(get_fingerprint)],
) -> LoadStatusOut:
    """
    Loading progress for a filter, without waiting.

    Starts the load in the background on first call; poll until
    availability is no longer "loading".
    """
    return load_status(service.status(token, fingerprint))


@router.get("/incidents", response_model=IncidentRowsResponse)
async def dashboard_incidents(
    service: Annotated[DashboardService, Depends(get_dashboard_service)],
    token: Annotated[str, Depends(get_bearer_token)],
    fingerprint: Annotated[FilterFingerprint, Depends(get_fingerprint)],
    limit: int = Query(100, ge=1, le=1000),
) -> IncidentRowsResponse:
    """Loaded incidents with office and type names, most recent first."""
    snapshot = await service.snapshot(token, fingerprint)
    rows = snapshot.incident_rows()
    return IncidentRowsResponse(
        status=load_status(snapshot.state),
        incidents=rows[:limit],
        total=len(rows),
    )


@router.post("/retry", response_model=LoadStatusOut)
async def retry_failed_pages(
    service: Annotated[DashboardService, Depends(get_dashboard_service)],
    token: Annotated[str, Depends(get_bearer_token)],
    fingerprint: Annotated[FilterFingerprint, Depends(get_fingerprint)],
) -> LoadStatusOut:
    """Re-request the pages that failed for this filter."""
    snapshot = await service.retry_failed_pages(token, fingerprint)
    if snapshot.state.failed_pages:
        logger.warning(f"Pages still failing after retry: {sorted(snapshot.state.failed_pages)}")
    return load_status(snapshot.state)
