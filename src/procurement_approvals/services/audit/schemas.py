"""Schemas for the approval audit trail."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AuditAction(str, Enum):
    """Audited approval actions."""

    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELEGATED = "delegated"
    ESCALATED = "escalated"
    RECALLED = "recalled"
    EXPIRED = "expired"


class AuditSeverity(str, Enum):
    """Severity levels for audit events."""

    INFO = "INFO"
    WARNING = "WARNING"


# Actions worth a WARNING in the log stream
WARNING_ACTIONS = frozenset({AuditAction.ESCALATED, AuditAction.EXPIRED})


class AuditEntry(BaseModel):
    """Audit log entry."""

    entry_id: str = Field(..., description="Unique entry ID")
    timestamp: datetime = Field(..., description="Event timestamp")
    action: str = Field(..., description="Action performed")
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO, description="Event severity"
    )
    actor_id: str | None = Field(None, description="User ID, None for system actions")
    actor_type: str = Field(default="user", description="Type: user or system")
    resource_type: str = Field(default="approval_request", description="Resource type")
    resource_id: str = Field(..., description="Approval request ID")
    description: str = Field(..., description="Human-readable description")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional data")


class AuditQuery(BaseModel):
    """Query parameters for audit log search."""

    start_time: datetime | None = Field(None, description="Start of time range")
    end_time: datetime | None = Field(None, description="End of time range")
    actions: list[str] | None = Field(None, description="Filter actions")
    actor_id: str | None = Field(None, description="Filter by actor")
    resource_id: str | None = Field(None, description="Filter by request ID")
    limit: int = Field(default=100, le=1000, description="Max results")
    offset: int = Field(default=0, description="Pagination offset")


class AuditStats(BaseModel):
    """Audit statistics."""

    total_entries: int = Field(..., description="Total entries")
    entries_by_action: dict[str, int] = Field(..., description="Count by action")
    unique_actors: int = Field(..., description="Unique actor count")
    time_range_start: datetime | None = Field(None, description="Earliest entry")
    time_range_end: datetime | None = Field(None, description="Latest entry")
