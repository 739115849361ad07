"""Audit Logger.

This module provides the audit trail used by every service: each significant
operation (bed assignment, transfer status change, reminder sent, welfare
queue access) is recorded as an ``audit_logs`` row with event type,
severity, category and structured details.

Security Impact:
    - Creates an append-only trail of clinical and operational actions
    - Free-text error messages are PHI-redacted before they are stored or logged
    - Required for HIPAA compliance reporting

Architecture:
    - Infrastructure layer component
    - Called from domain services; persists through DatabasePort
    - Audit failures are logged and never raised into the calling service
"""

import logging
from typing import Any, Optional, Union

from src.domain.guardrails import redact_phi
from src.domain.ports import DatabasePort
from src.domain.utils import utc_now_iso

logger = logging.getLogger(__name__)

AUDIT_TABLE = "audit_logs"

SEVERITY_INFO = "INFO"
SEVERITY_WARNING = "WARNING"
SEVERITY_ERROR = "ERROR"


class AuditLogger:
    """Writes audit events to the ``audit_logs`` table.

    Without a database (CLI dry runs, unit tests) events are only written to
    the application log.

    Example Usage:
        ```python
        audit = AuditLogger(database)
        audit.info("TRANSFER_APPROVED", {"transferId": transfer_id})
        audit.error("TRANSFER_APPROVE_FAILED", exc, {"transferId": transfer_id})
        ```
    """

    def __init__(self, database: Optional[DatabasePort] = None, category: str = "SYSTEM_EVENT"):
        self._database = database
        self._category = category

    def info(self, event_type: str, details: Optional[dict] = None, category: Optional[str] = None) -> None:
        self._record(SEVERITY_INFO, event_type, details, category)

    def warn(self, event_type: str, details: Optional[dict] = None, category: Optional[str] = None) -> None:
        self._record(SEVERITY_WARNING, event_type, details, category)

    def error(
        self,
        event_type: str,
        error: Union[Exception, str, None] = None,
        details: Optional[dict] = None,
        category: Optional[str] = None
    ) -> None:
        """Record a failure.

        Parameters:
            event_type: Upper snake case event name (e.g. TRANSFER_APPROVE_FAILED)
            error: Exception or message; stored PHI-redacted under ``error``
            details: Additional structured context
        """
        payload = dict(details or {})
        if error is not None:
            payload["error"] = redact_phi(str(error))
        self._record(SEVERITY_ERROR, event_type, payload, category)

    def _record(self, severity: str, event_type: str, details: Optional[dict], category: Optional[str]) -> None:
        row = {
            "event_type": event_type,
            "severity": severity,
            "category": category or self._category,
            "details": _json_safe(details or {}),
            "created_at": utc_now_iso(),
        }

        log_method = {
            SEVERITY_INFO: logger.info,
            SEVERITY_WARNING: logger.warning,
            SEVERITY_ERROR: logger.error,
        }[severity]
        log_method(f"Audit event {event_type}", extra={"audit_event": event_type, "severity": severity})

        if self._database is None:
            return

        result = self._database.insert(AUDIT_TABLE, row)
        if result.is_failure():
            logger.warning(f"Failed to persist audit event {event_type}: {result.error.message}")


def _json_safe(value: Any) -> Any:
    """Coerce values that JSON cannot carry (datetimes, sets, models) to strings."""
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
