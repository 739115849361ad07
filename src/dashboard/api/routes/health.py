"""Health check endpoint for the CareOps API."""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter

from src.dashboard.api.dependencies import DatabaseDep, LLMRouterDep
from src.dashboard.models.health import DatabaseHealth, HealthResponse, LLMHealth
from src.domain.ports import DatabasePort
from src.infrastructure.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


def database_type(database: DatabasePort) -> str:
    return getattr(database, "db_type", "unknown")


def check_database_health(database: DatabasePort) -> DatabaseHealth:
    """Check database connectivity with a ping.

    Security Impact:
        - Only checks connectivity, no sensitive data exposed
    """
    db_type = database_type(database)
    start_time = time.perf_counter()
    result = database.ping()

    if result.is_success() and result.data:
        return DatabaseHealth(
            status="connected",
            type=db_type,
            response_time_ms=round((time.perf_counter() - start_time) * 1000, 2)
        )

    if result.is_failure():
        logger.warning(f"Database ping failed: {result.error.message}")
    return DatabaseHealth(status="disconnected", type=db_type, response_time_ms=None)


@router.get("/health", response_model=HealthResponse)
async def health_check(database: DatabaseDep, llm: LLMRouterDep) -> HealthResponse:
    """Health check endpoint.

    Used by monitoring tools and load balancers. The database decides
    healthy/unhealthy; an unconfigured model or an open circuit breaker
    only degrades, since every service keeps working without AI.
    """
    db_health = check_database_health(database)
    llm_health = LLMHealth(
        configured=llm.config.is_configured,
        circuit_open=llm.circuit_breaker.is_open(),
    )

    if db_health.status == "disconnected":
        overall_status = "unhealthy"
    elif not llm_health.configured or llm_health.circuit_open:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        database=db_health,
        llm=llm_health,
        poll_interval_seconds=settings.poll_interval_seconds,
    )
