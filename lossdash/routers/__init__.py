"""API routers."""

from lossdash.routers.dashboard import router as dashboard_router
from lossdash.routers.health import router as health_router

__all__ = ["dashboard_router", "health_router"]
