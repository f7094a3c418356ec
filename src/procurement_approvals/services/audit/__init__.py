"""Audit logging service module."""

from procurement_approvals.services.audit.logger import (
    AuditLogger,
    DatabaseAuditRecorder,
    get_audit_logger,
    get_audit_recorder,
)
from procurement_approvals.services.audit.schemas import (
    AuditAction,
    AuditEntry,
    AuditQuery,
    AuditSeverity,
    AuditStats,
)

__all__ = [
    # Schemas
    "AuditAction",
    "AuditSeverity",
    "AuditEntry",
    "AuditQuery",
    "AuditStats",
    # Recorders
    "AuditLogger",
    "DatabaseAuditRecorder",
    "get_audit_logger",
    "get_audit_recorder",
]
