"""Circuit breaker service for the CareOps API.

Reports the state of the breaker that guards language model calls. The
breaker lives in memory inside the LLM router, so each API worker reports
its own; without a router the failure rate is estimated from the last
hour of audit events.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from src.dashboard.models.circuit_breaker import CircuitBreakerStatus
from src.domain.guardrails import CircuitBreaker, CircuitBreakerConfig
from src.domain.ports import DatabasePort, ErrorCode, ServiceResult, TableQuery
from src.infrastructure.audit import AUDIT_TABLE

logger = logging.getLogger(__name__)


class CircuitBreakerService:
    """Service for querying and resetting circuit breaker status."""

    def __init__(self, database: DatabasePort, circuit_breaker: Optional[CircuitBreaker] = None):
        """Initialize CircuitBreakerService.

        Parameters:
            database: Database adapter (used for the audit-log estimate)
            circuit_breaker: Live breaker from the LLM router, when available
        """
        self.database = database
        self._circuit_breaker = circuit_breaker

    def get_status(self) -> ServiceResult[CircuitBreakerStatus]:
        if self._circuit_breaker is not None:
            stats = self._circuit_breaker.get_statistics()
            return ServiceResult.success_result(CircuitBreakerStatus(**stats, source="live"))
        return self._estimate_from_audit_log()

    def reset(self) -> ServiceResult[CircuitBreakerStatus]:
        """Close the live breaker and clear its window."""
        if self._circuit_breaker is None:
            return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "No live circuit breaker to reset")
        self._circuit_breaker.reset()
        logger.warning("Circuit breaker reset through the API")
        return self.get_status()

    def _estimate_from_audit_log(self) -> ServiceResult[CircuitBreakerStatus]:
        since = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
        default_config = CircuitBreakerConfig()

        total = self.database.count(TableQuery(AUDIT_TABLE).gte("created_at", since))
        errors = self.database.count(
            TableQuery(AUDIT_TABLE).gte("created_at", since).eq("severity", "ERROR")
        )
        if total.is_failure() or errors.is_failure():
            failed = total if total.is_failure() else errors
            logger.warning(f"Audit-log failure estimate unavailable: {failed.error.message}")
            total_count, error_count = 0, 0
        else:
            total_count, error_count = total.data or 0, errors.data or 0

        failure_rate = (error_count / total_count * 100.0) if total_count > 0 else 0.0
        is_open = (
            total_count >= default_config.min_records_before_check
            and failure_rate >= default_config.failure_threshold_percent
        )

        return ServiceResult.success_result(CircuitBreakerStatus(
            is_open=is_open,
            failure_rate=failure_rate,
            threshold=default_config.failure_threshold_percent,
            total_processed=total_count,
            total_failures=error_count,
            window_size=default_config.window_size,
            failures_in_window=error_count,
            records_in_window=total_count,
            min_records_before_check=default_config.min_records_before_check,
            source="audit_log",
        ))
