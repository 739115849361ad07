"""API Pydantic models for operational endpoints."""

from src.dashboard.models.audit import AuditLogEntry, AuditLogsResponse, PaginationMeta
from src.dashboard.models.circuit_breaker import CircuitBreakerStatus
from src.dashboard.models.health import DatabaseHealth, HealthResponse, LLMHealth

__all__ = [
    "AuditLogEntry",
    "AuditLogsResponse",
    "CircuitBreakerStatus",
    "DatabaseHealth",
    "HealthResponse",
    "LLMHealth",
    "PaginationMeta",
]
