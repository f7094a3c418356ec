"""SQLAlchemy ORM models."""

from procurement_approvals.models.approval import ApprovalRequestRecord
from procurement_approvals.models.audit import AuditLog
from procurement_approvals.models.base import Base, TimestampMixin

__all__ = ["Base", "TimestampMixin", "ApprovalRequestRecord", "AuditLog"]
