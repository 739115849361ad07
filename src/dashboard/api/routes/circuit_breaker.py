"""Circuit breaker endpoints for the CareOps API."""

import logging

from fastapi import APIRouter, HTTPException

from src.dashboard.api.dependencies import DatabaseDep, LLMRouterDep
from src.dashboard.api.responses import status_for
from src.dashboard.models.circuit_breaker import CircuitBreakerStatus
from src.dashboard.services.circuit_breaker_service import CircuitBreakerService
from src.infrastructure.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/circuit-breaker", tags=["circuit-breaker"])


def _service(database, llm) -> CircuitBreakerService:
    breaker = llm.circuit_breaker if settings.circuit_breaker_enabled else None
    return CircuitBreakerService(database, breaker)


@router.get("/status", response_model=CircuitBreakerStatus)
async def get_circuit_breaker_status(database: DatabaseDep, llm: LLMRouterDep) -> CircuitBreakerStatus:
    """Get circuit breaker status.

    Returns whether the breaker guarding model calls is open, the current
    failure rate and the configured thresholds.
    """
    result = _service(database, llm).get_status()
    if result.is_failure():
        logger.error(f"Circuit breaker service error: {result.error.message}")
        raise HTTPException(status_code=status_for(result.error_code), detail=result.error.message)
    return result.data


@router.post("/reset", response_model=CircuitBreakerStatus)
async def reset_circuit_breaker(database: DatabaseDep, llm: LLMRouterDep) -> CircuitBreakerStatus:
    """Close the breaker and clear its failure window."""
    result = _service(database, llm).reset()
    if result.is_failure():
        raise HTTPException(status_code=status_for(result.error_code), detail=result.error.message)
    return result.data
