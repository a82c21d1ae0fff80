"""
FastAPI application entry point.

Run with:
    uvicorn safewalk.main:app --reload --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from safewalk.core.config import Settings, settings as default_settings
from safewalk.core.logging_config import setup_logging, get_logger
from safewalk.core.errors import register_error_handlers
from safewalk.core.middleware import RequestLoggingMiddleware
from safewalk.core.health import HealthStatus, run_health_check
from safewalk.api.deps import CompanionRegistry

# ── API routers ──
from safewalk.api.v1.tracking import router as tracking_router
from safewalk.api.v1.route import router as route_router
from safewalk.api.v1.alerts import router as alerts_router
from safewalk.api.v1.contacts import router as contacts_router
from safewalk.api.v1.sos import router as sos_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


def create_app(
    registry: Optional[CompanionRegistry] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the application. ``registry`` injects collaborators (tests);
    otherwise they are created from ``settings`` at startup.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup and shutdown events."""
        logger.info(
            "Starting %s v%s [%s] store=%s sms=%s",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
            settings.DOCUMENT_STORE, settings.SMS_PROVIDER,
        )
        app.state.registry = registry or CompanionRegistry.from_settings(settings)
        yield
        await app.state.registry.close()
        logger.info("Shutting down %s", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Location & emergency alert engine for a personal-safety companion. "
            "Continuous position tracking, route-deviation detection, "
            "geofenced community alerts, and concurrent SOS notification "
            "of emergency contacts."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Middleware stack (outermost first) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers ──
    app.include_router(tracking_router)
    app.include_router(route_router)
    app.include_router(alerts_router)
    app.include_router(contacts_router)
    app.include_router(sos_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": [
                "location-tracking",
                "route-deviation",
                "community-alerts",
                "emergency-contacts",
                "sos-dispatch",
            ],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Deep health probe — checks all collaborators."""
        report = await run_health_check(request.app.state.registry.store, settings)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness(request: Request):
        """Kubernetes readiness probe — can we serve traffic?"""
        report = await run_health_check(request.app.state.registry.store, settings)
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()
