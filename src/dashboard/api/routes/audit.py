"""Audit log endpoints for the CareOps API."""

import csv
import io
import json
from datetime import datetime, timezone
from typing import Iterator, Optional

from fastapi import APIRouter, HTTPException, Query, Response
from fastapi.responses import StreamingResponse

from src.dashboard.api.dependencies import DatabaseDep
from src.dashboard.api.responses import status_for
from src.dashboard.models.audit import AuditLogsResponse
from src.dashboard.services.audit_service import AuditService

router = APIRouter(prefix="/api", tags=["audit"])

EXPORT_LIMIT = 10000
CSV_COLUMNS = ["id", "event_type", "severity", "category", "created_at", "details"]


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} format: {value}")


def _query(service: AuditService, **filters) -> AuditLogsResponse:
    result = service.get_audit_logs(**filters)
    if result.is_failure():
        raise HTTPException(status_code=status_for(result.error_code), detail=result.error.message)
    return result.data


@router.get("/audit-logs", response_model=AuditLogsResponse)
async def get_audit_logs(
    database: DatabaseDep,
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of records to return"),
    offset: int = Query(0, ge=0, description="Number of records to skip"),
    severity: Optional[str] = Query(None, description="Filter by severity (INFO, WARNING, ERROR)"),
    event_type: Optional[str] = Query(None, description="Filter by event type"),
    category: Optional[str] = Query(None, description="Filter by category"),
    start_date: Optional[str] = Query(None, description="Filter by start date (ISO format)"),
    end_date: Optional[str] = Query(None, description="Filter by end date (ISO format)"),
    sort_by: str = Query("created_at", description="Field to sort by"),
    sort_order: str = Query("DESC", pattern="^(ASC|DESC)$", description="Sort order"),
):
    """Get audit logs with filtering and pagination."""
    return _query(
        AuditService(database),
        limit=limit,
        offset=offset,
        severity=severity,
        event_type=event_type,
        category=category,
        start_date=_parse_date(start_date, "start_date"),
        end_date=_parse_date(end_date, "end_date"),
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/audit-logs/export")
async def export_audit_logs(
    database: DatabaseDep,
    format: str = Query("json", pattern="^(json|csv)$", description="Export format"),
    severity: Optional[str] = Query(None, description="Filter by severity"),
    event_type: Optional[str] = Query(None, description="Filter by event type"),
    category: Optional[str] = Query(None, description="Filter by category"),
    start_date: Optional[str] = Query(None, description="Filter by start date (ISO format)"),
    end_date: Optional[str] = Query(None, description="Filter by end date (ISO format)"),
):
    """Export audit logs in JSON or CSV format (up to 10,000 rows, newest first)."""
    response_data = _query(
        AuditService(database),
        limit=EXPORT_LIMIT,
        offset=0,
        severity=severity,
        event_type=event_type,
        category=category,
        start_date=_parse_date(start_date, "start_date"),
        end_date=_parse_date(end_date, "end_date"),
    )
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")

    if format == "json":
        json_data = json.dumps([log.model_dump(mode="json") for log in response_data.logs], indent=2)
        return Response(
            content=json_data,
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="audit_logs_{timestamp}.json"'}
        )

    def generate_csv() -> Iterator[str]:
        """Stream CSV rows one at a time."""
        buffer = io.StringIO()
        writer = csv.writer(buffer)

        writer.writerow(CSV_COLUMNS)
        yield buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)

        for log in response_data.logs:
            writer.writerow([
                log.id,
                log.event_type,
                log.severity,
                log.category or "",
                log.created_at.isoformat(),
                json.dumps(log.details) if log.details else "",
            ])
            yield buffer.getvalue()
            buffer.seek(0)
            buffer.truncate(0)

        buffer.close()

    return StreamingResponse(
        generate_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="audit_logs_{timestamp}.csv"'}
    )
