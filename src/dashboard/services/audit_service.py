"""Audit log service for the CareOps API.

This service queries the ``audit_logs`` table written by AuditLogger with
filtering, pagination and sorting.
"""

import json
import logging
from datetime import datetime
from typing import Optional

from src.dashboard.models.audit import AuditLogEntry, AuditLogsResponse, PaginationMeta
from src.domain.ports import DatabasePort, ServiceResult, TableQuery
from src.infrastructure.audit import AUDIT_TABLE

logger = logging.getLogger(__name__)

ALLOWED_SORT_FIELDS = {"created_at", "event_type", "severity", "category"}


class AuditService:
    """Service for querying audit logs."""

    def __init__(self, database: DatabasePort):
        self.database = database

    def _filtered(
        self,
        severity: Optional[str],
        event_type: Optional[str],
        category: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime]
    ) -> TableQuery:
        query = TableQuery(AUDIT_TABLE)
        if severity:
            query.eq("severity", severity.upper())
        if event_type:
            query.eq("event_type", event_type)
        if category:
            query.eq("category", category.upper())
        if start_date:
            query.gte("created_at", start_date.isoformat())
        if end_date:
            query.lte("created_at", end_date.isoformat())
        return query

    def get_audit_logs(
        self,
        limit: int = 100,
        offset: int = 0,
        severity: Optional[str] = None,
        event_type: Optional[str] = None,
        category: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        sort_by: str = "created_at",
        sort_order: str = "DESC"
    ) -> ServiceResult[AuditLogsResponse]:
        """Get audit logs with filtering and pagination.

        Parameters:
            limit: Maximum number of records to return (1-1000)
            offset: Number of records to skip
            severity: Filter by severity (INFO, WARNING, ERROR)
            event_type: Filter by event type
            category: Filter by category
            start_date: Filter by start date (inclusive)
            end_date: Filter by end date (inclusive)
            sort_by: Field to sort by (unknown fields fall back to created_at)
            sort_order: Sort order (ASC or DESC)

        Returns:
            ServiceResult containing AuditLogsResponse or error
        """
        safe_sort_by = sort_by if sort_by in ALLOWED_SORT_FIELDS else "created_at"
        ascending = sort_order.upper() == "ASC"

        count = self.database.count(self._filtered(severity, event_type, category, start_date, end_date))
        if count.is_failure():
            return ServiceResult.from_failure(count)

        query = (
            self._filtered(severity, event_type, category, start_date, end_date)
            .order(safe_sort_by, ascending=ascending)
            .limit(limit)
            .offset(offset)
        )
        rows = self.database.select(query)
        if rows.is_failure():
            return ServiceResult.from_failure(rows)

        logs = [self._to_entry(row) for row in rows.data or []]
        total = count.data or 0
        return ServiceResult.success_result(AuditLogsResponse(
            logs=logs,
            pagination=PaginationMeta(
                total=total,
                limit=limit,
                offset=offset,
                has_next=offset + len(logs) < total,
                has_previous=offset > 0,
            ),
        ))

    @staticmethod
    def _to_entry(row: dict) -> AuditLogEntry:
        details = row.get("details")
        if isinstance(details, str):
            try:
                details = json.loads(details)
            except (json.JSONDecodeError, TypeError):
                details = {"raw": details}
        return AuditLogEntry(
            id=str(row["id"]),
            event_type=row["event_type"],
            severity=row.get("severity") or "INFO",
            category=row.get("category"),
            details=details if isinstance(details, dict) else None,
            created_at=row["created_at"],
        )
