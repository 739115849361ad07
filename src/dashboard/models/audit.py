"""Pydantic models for audit log endpoints."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditLogEntry(BaseModel):
    """Single audit log entry."""

    id: str = Field(..., description="Unique audit log identifier")
    event_type: str = Field(..., description="Type of event (e.g., TRANSFER_APPROVED, BED_ASSIGNED)")
    severity: str = Field(..., description="Severity level (INFO, WARNING, ERROR)")
    category: Optional[str] = Field(None, description="Event category (CLINICAL, ADMINISTRATIVE, ...)")
    details: Optional[dict[str, Any]] = Field(None, description="Additional event details (JSON)")
    created_at: datetime = Field(..., description="When the event occurred")


class PaginationMeta(BaseModel):
    """Pagination metadata."""

    total: int = Field(..., description="Total number of records")
    limit: int = Field(..., description="Number of records per page")
    offset: int = Field(..., description="Current offset")
    has_next: bool = Field(..., description="Whether there are more records")
    has_previous: bool = Field(..., description="Whether there are previous records")


class AuditLogsResponse(BaseModel):
    """Response model for audit logs query."""

    logs: list[AuditLogEntry] = Field(..., description="List of audit log entries")
    pagination: PaginationMeta = Field(..., description="Pagination metadata")
