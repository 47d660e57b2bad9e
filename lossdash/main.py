"""FastAPI application exposing dashboard analytics."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from lossdash import __version__
from lossdash.config import get_settings
from lossdash.errors import AuthenticationError, SupersededLoadError, TransportError, ValidationError
from lossdash.routers import dashboard_router, health_router
from lossdash.services.dashboard import DashboardService

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    enabled=settings.rate_limit_per_minute > 0,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting lossdash...")
    app.state.dashboard_service = DashboardService(settings)
    logger.info(f"Record service: {settings.record_service_url}")

    yield

    # Shutdown
    app.state.dashboard_service.clear()
    logger.info("lossdash shut down")


# Create FastAPI app
app = FastAPI(
    title="lossdash API",
    description="Loss-prevention dashboard analytics over the record-management service",
    version=__version__,
    lifespan=lifespan,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    """Malformed filters or page arguments."""
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(AuthenticationError)
async def authentication_exception_handler(request: Request, exc: AuthenticationError):
    """No credentials to forward."""
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(TransportError)
async def transport_exception_handler(request: Request, exc: TransportError):
    """The record service could not be reached or answered with an error."""
    logger.error(f"Record service failure: {exc}")
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "upstream_status": exc.status_code},
    )


@app.exception_handler(SupersededLoadError)
async def superseded_exception_handler(request: Request, exc: SupersededLoadError):
    """Another request from the same caller switched filters mid-load."""
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include routers
app.include_router(health_router)
app.include_router(dashboard_router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "lossdash API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lossdash.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
