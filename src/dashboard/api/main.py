"""Main FastAPI application for the CareOps API.

This module sets up the FastAPI application with all routes, middleware,
and configuration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.dashboard.api.dependencies import get_container
from src.dashboard.api.logging_config import setup_logging
from src.dashboard.api.middleware import setup_middleware
from src.dashboard.api.routes import (
    accuracy,
    appointments,
    audit,
    beds,
    circuit_breaker,
    health,
    labels,
    notifications,
    skills,
    transfers,
    welfare,
)
from src.infrastructure.settings import settings

setup_logging(use_json=settings.json_logs, log_level=settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info(f"{settings.app_name} API starting up...")
    logger.info("API documentation available at /api/docs")
    logger.info(f"Logging level: {settings.log_level}")
    logger.info(f"Dashboard poll interval: {settings.poll_interval_seconds}s")
    yield
    logger.info(f"{settings.app_name} API shutting down...")
    if get_container.cache_info().currsize:
        get_container().close()
        get_container.cache_clear()


app = FastAPI(
    title=f"{settings.app_name} API",
    description="Bed management, transfers, welfare checks, reminders and AI skills",
    version=settings.app_version,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Process-Time", "X-RateLimit-Remaining"],
)

setup_middleware(app, rate_limit_per_minute=settings.rate_limit_per_minute)

app.include_router(health.router)
app.include_router(circuit_breaker.router)
app.include_router(audit.router)
app.include_router(beds.router)
app.include_router(transfers.router)
app.include_router(welfare.router)
app.include_router(appointments.router)
app.include_router(notifications.router)
app.include_router(skills.router)
app.include_router(accuracy.router)
app.include_router(labels.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.app_name} API",
        "version": settings.app_version,
        "docs": "/api/docs",
        "health": "/api/health",
        "pollIntervalSeconds": settings.poll_interval_seconds,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.dashboard.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level="info"
    )
