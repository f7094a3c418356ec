"""Data access repositories."""

from procurement_approvals.repositories.approval import ApprovalRequestRepository
from procurement_approvals.repositories.audit_log import AuditLogRepository
from procurement_approvals.repositories.base import BaseRepository

__all__ = ["BaseRepository", "ApprovalRequestRepository", "AuditLogRepository"]
