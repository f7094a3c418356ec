"""Approval workflow service module."""

from procurement_approvals.services.approval.chain_builder import ChainBuilder
from procurement_approvals.services.approval.exceptions import (
    ApprovalError,
    AuditRecordingError,
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidRequestError,
    NoEscalationPathError,
    NotFoundError,
    NotPendingError,
    StoreTimeoutError,
    UnauthorizedError,
)
from procurement_approvals.services.approval.expiry_policy import ExpiryPolicy
from procurement_approvals.services.approval.interfaces import (
    AuditRecorder,
    DepartmentDirectory,
    NotificationDispatcher,
    PermissionRegistry,
    PostApprovalHook,
    TransactionalStore,
)
from procurement_approvals.services.approval.schemas import (
    ApprovalPriority,
    ApprovalQuery,
    ApprovalRequest,
    ApprovalRequestCreate,
    ApprovalStatus,
    ApprovalStep,
    ApprovalType,
    ApproveRequest,
    DelegateRequest,
    EscalateRequest,
    RecallRequest,
    RejectRequest,
)
from procurement_approvals.services.approval.workflow import (
    ApprovalStateMachine,
    authorized_approver,
    effective_approver,
    get_approval_state_machine,
)

__all__ = [
    # Enums
    "ApprovalType",
    "ApprovalStatus",
    "ApprovalPriority",
    # Schemas
    "ApprovalStep",
    "ApprovalRequest",
    "ApprovalRequestCreate",
    "ApprovalQuery",
    "ApproveRequest",
    "RejectRequest",
    "DelegateRequest",
    "EscalateRequest",
    "RecallRequest",
    # Errors
    "ApprovalError",
    "InvalidRequestError",
    "NotFoundError",
    "NotPendingError",
    "ExpiredError",
    "UnauthorizedError",
    "ForbiddenError",
    "NoEscalationPathError",
    "ConflictError",
    "AuditRecordingError",
    "StoreTimeoutError",
    # Collaborators
    "TransactionalStore",
    "AuditRecorder",
    "NotificationDispatcher",
    "DepartmentDirectory",
    "PermissionRegistry",
    "PostApprovalHook",
    # Engine
    "ChainBuilder",
    "ExpiryPolicy",
    "ApprovalStateMachine",
    "authorized_approver",
    "effective_approver",
    "get_approval_state_machine",
]
