"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Header, Query, Request

from lossdash.errors import AuthenticationError
from lossdash.filters import FilterFingerprint
from lossdash.services.dashboard import DashboardService


def get_dashboard_service(request: Request) -> DashboardService:
    """The DashboardService created in the app lifespan."""
    return request.app.state.dashboard_service


def get_bearer_token(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Extract the caller's bearer token to forward to the record service."""
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() not in ("bearer", "token") or not token.strip():
        raise AuthenticationError("Authorization header must be 'Bearer <token>'")
    return token.strip()


def get_fingerprint(
    from_date: Annotated[str, Query(description="First day, YYYY-MM-DD")] = "",
    to_date: Annotated[str, Query(description="Last day, YYYY-MM-DD")] = "",
    office_id: Annotated[str, Query(description="Office id; empty for all offices")] = "",
) -> FilterFingerprint:
    """Build and validate the filter fingerprint from query parameters."""
    return FilterFingerprint(from_date=from_date, to_date=to_date, office_id=office_id)
