"""Approval workflow schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ApprovalType(str, Enum):
    """Types of approval requests."""

    PROCUREMENT_PLAN = "procurement_plan"
    RFQ_CREATION = "rfq_creation"
    VENDOR_SELECTION = "vendor_selection"
    AWARD_DECISION = "award_decision"
    CONTRACT_EXECUTION = "contract_execution"
    BUDGET_APPROVAL = "budget_approval"
    DOCUMENT_APPROVAL = "document_approval"
    POLICY_EXCEPTION = "policy_exception"


class ApprovalStatus(str, Enum):
    """Approval request status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELEGATED = "delegated"
    ESCALATED = "escalated"
    EXPIRED = "expired"
    RECALLED = "recalled"


TERMINAL_STATUSES = frozenset(
    {
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.EXPIRED,
        ApprovalStatus.RECALLED,
    }
)

ACTIVE_STATUSES = frozenset(
    {ApprovalStatus.PENDING, ApprovalStatus.DELEGATED, ApprovalStatus.ESCALATED}
)


class StepStatus(str, Enum):
    """Status of a single step in the approval chain."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELEGATED = "delegated"


class ApprovalPriority(str, Enum):
    """Priority class, derived at creation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ApproverRole(str, Enum):
    """Business roles of value-based chain steps."""

    DEPARTMENT_MANAGER = "department_manager"
    DEPARTMENT_DIRECTOR = "department_director"
    VP = "vp"
    CEO = "ceo"


class HistoryAction(str, Enum):
    """Actions recorded in the approval history."""

    APPROVED = "approved"
    REJECTED = "rejected"
    DELEGATED = "delegated"
    ESCALATED = "escalated"
    RECALLED = "recalled"
    EXPIRED = "expired"


class ApprovalStep(BaseModel):
    """One level of the approval chain."""

    level: int = Field(..., ge=1, description="1-based position in the chain")
    approver_id: str | None = Field(None, description="Assigned approver")
    role: str = Field(..., description="Business role label")
    status: StepStatus = Field(default=StepStatus.PENDING, description="Step status")
    delegated_to: str | None = Field(None, description="Delegate holding authority")
    delegated_at: datetime | None = Field(None, description="Delegation time")
    delegation_reason: str | None = Field(None, description="Delegation reason")
    assigned_at: datetime | None = Field(None, description="When the step became active")
    approved_at: datetime | None = Field(None, description="Approval time")
    rejected_at: datetime | None = Field(None, description="Rejection time")
    comments: str | None = Field(None, description="Approver comments")
    conditions: list[str] = Field(default_factory=list, description="Approval conditions")
    rejection_reason: str | None = Field(None, description="Rejection reason")


class CurrentApprover(BaseModel):
    """Logical reference to whoever may act on the current level."""

    user_id: str | None = Field(None, description="Authorized actor")
    level: int = Field(..., ge=1, description="Level the reference belongs to")
    assigned_at: datetime | None = Field(None, description="Assignment time")
    delegated_from: str | None = Field(None, description="Previous holder on delegation")
    is_escalation: bool = Field(default=False, description="Set by escalation")
    original_level: int | None = Field(None, description="Level at escalation time")
    expires_at: datetime | None = Field(None, description="Authority expiry")


class HistoryEntry(BaseModel):
    """Append-only record of a state-changing transition."""

    entry_id: str = Field(..., description="Entry ID")
    transition_id: str = Field(..., description="ID of the transition attempt")
    level: int = Field(..., description="Level acted on")
    user_id: str | None = Field(None, description="Actor (None for system)")
    action: HistoryAction = Field(..., description="Action taken")
    timestamp: datetime = Field(..., description="Action timestamp")
    comments: str | None = Field(None, description="Comments")
    conditions: list[str] = Field(default_factory=list, description="Conditions")
    rejection_reason: str | None = Field(None, description="Rejection reason")
    return_to_level: int | None = Field(None, description="Resubmission hint")
    allow_resubmission: bool | None = Field(None, description="Resubmission allowed")


class DelegationEntry(BaseModel):
    """Record of a delegation."""

    level: int
    from_user_id: str
    to_user_id: str
    reason: str | None = None
    comments: str | None = None
    timestamp: datetime
    expires_at: datetime | None = None


class EscalationEntry(BaseModel):
    """Record of an escalation."""

    from_level: int
    to_level: int
    from_user_id: str | None = None
    to_user_id: str
    reason: str | None = None
    timestamp: datetime
    escalated_by: str | None = None


class EscalationTarget(BaseModel):
    """Authority outside the normal chain receiving an escalation."""

    user_id: str = Field(..., description="Escalation target")
    level: int = Field(..., ge=1, description="Organizational level of the target")


class ApprovalRequest(BaseModel):
    """Approval request aggregate."""

    id: str = Field(..., description="Request ID")
    version: int = Field(default=0, ge=0, description="Optimistic concurrency version")
    type: ApprovalType = Field(..., description="Approval type")
    title: str = Field(..., description="Title")
    description: str = Field(..., description="Description")
    value: Decimal | None = Field(None, ge=0, description="Monetary value")
    department: str = Field(..., description="Department")
    cost_center: str | None = Field(None, description="Cost center")
    procurement_id: str | None = Field(None, description="Related procurement")
    contract_id: str | None = Field(None, description="Related contract")
    stakeholders: list[str] = Field(default_factory=list, description="Stakeholders")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Extra data")

    # Workflow state
    status: ApprovalStatus = Field(default=ApprovalStatus.PENDING, description="Status")
    approval_chain: list[ApprovalStep] = Field(..., description="Ordered chain")
    current_level: int = Field(default=1, ge=1, description="Current level")
    total_levels: int = Field(..., ge=1, description="Chain length")
    current_approver: CurrentApprover = Field(..., description="Current approver")
    priority: ApprovalPriority = Field(..., description="Priority")
    expires_at: datetime = Field(..., description="Expiry deadline")
    requested_by: str = Field(..., description="Requester")

    # Logs
    approval_history: list[HistoryEntry] = Field(default_factory=list)
    delegation_history: list[DelegationEntry] = Field(default_factory=list)
    escalation_history: list[EscalationEntry] = Field(default_factory=list)

    # Terminal metadata
    approved_at: datetime | None = None
    final_approver: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    allow_resubmission: bool | None = None
    return_to_level: int | None = None
    recalled_at: datetime | None = None
    recall_reason: str | None = None
    expired_at: datetime | None = None

    # Escalation metadata
    escalated_at: datetime | None = None
    escalated_by: str | None = None
    escalation_reason: str | None = None

    # Timestamps
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def current_step(self) -> ApprovalStep:
        """Step at ``current_level``; the last step once fully approved."""
        index = min(self.current_level, self.total_levels) - 1
        return self.approval_chain[index]


class ApprovalRequestCreate(BaseModel):
    """Submission data for a new approval request.

    Required fields are validated by the workflow so that failures surface as
    ``INVALID_REQUEST`` rather than schema errors.
    """

    type: str | None = Field(None, description="Approval type")
    title: str | None = Field(None, max_length=300, description="Title")
    description: str | None = Field(None, description="Description")
    department: str | None = Field(None, description="Department")
    value: Decimal | None = Field(None, description="Monetary value")
    cost_center: str | None = Field(None, description="Cost center")
    procurement_id: str | None = Field(None, description="Related procurement")
    contract_id: str | None = Field(None, description="Related contract")
    urgent: bool = Field(default=False, description="Urgent flag")
    emergency: bool = Field(default=False, description="Emergency flag")
    stakeholders: list[str] = Field(default_factory=list, description="Stakeholders")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Extra data")


class ApproveRequest(BaseModel):
    """Approve the current level."""

    comments: str | None = Field(None, max_length=2000, description="Comments")
    conditions: list[str] = Field(default_factory=list, description="Conditions")
    level: int | None = Field(
        None, ge=1, description="Level being approved; makes client retries idempotent"
    )


class RejectRequest(BaseModel):
    """Reject the request."""

    reason: str = Field(..., min_length=1, max_length=2000, description="Reason")
    comments: str | None = Field(None, max_length=2000, description="Comments")
    return_to_level: int = Field(default=0, ge=0, description="Resubmission hint")
    allow_resubmission: bool = Field(default=True, description="Resubmission allowed")


class DelegateRequest(BaseModel):
    """Hand the current level's authority to another user."""

    delegate_to: str = Field(..., min_length=1, description="Delegate user ID")
    reason: str | None = Field(None, max_length=2000, description="Reason")
    comments: str | None = Field(None, max_length=2000, description="Comments")
    expires_at: datetime | None = Field(None, description="Delegation expiry")


class EscalateRequest(BaseModel):
    """Escalate the current level."""

    reason: str = Field(..., min_length=1, max_length=2000, description="Reason")


class RecallRequest(BaseModel):
    """Withdraw a pending request."""

    reason: str | None = Field(None, max_length=2000, description="Reason")


class WorkflowPreview(BaseModel):
    """Chain that a request with the given attributes would receive."""

    workflow_type: str = Field(default="sequential", description="Workflow type")
    approval_type: ApprovalType
    department: str
    total_levels: int
    steps: list[ApprovalStep]
    priority: ApprovalPriority
    expiry_days: int


class ApprovalListItem(BaseModel):
    """Approval request in list response."""

    id: str
    type: ApprovalType
    title: str
    department: str
    value: str | None = None
    status: ApprovalStatus
    priority: ApprovalPriority
    current_level: int
    total_levels: int
    current_approver_id: str | None = None
    requested_by: str
    expires_at: datetime
    is_expired: bool
    created_at: datetime


class PaginationMeta(BaseModel):
    """Pagination metadata."""

    page: int = Field(..., ge=1, description="Current page")
    page_size: int = Field(..., ge=1, le=100, description="Page size")
    total_items: int = Field(..., ge=0, description="Total items")
    total_pages: int = Field(..., ge=0, description="Total pages")


class ApprovalListResponse(BaseModel):
    """Paginated approval list response."""

    items: list[ApprovalListItem]
    meta: PaginationMeta


class ApprovalQuery(BaseModel):
    """Filters for listing approval requests."""

    status: list[ApprovalStatus] | None = None
    type: list[ApprovalType] | None = None
    priority: ApprovalPriority | None = None
    department: str | None = None
    requested_by: str | None = None
    assigned_to: str | None = None
    include_expired: bool = False
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class ApprovalStats(BaseModel):
    """Approval workflow statistics."""

    total_requests: int = Field(default=0, description="Total requests")
    pending_requests: int = Field(default=0, description="Pending requests")
    escalated_requests: int = Field(default=0, description="Currently escalated")
    approved_requests: int = Field(default=0, description="Approved requests")
    rejected_requests: int = Field(default=0, description="Rejected requests")
    expired_requests: int = Field(default=0, description="Expired requests")
    recalled_requests: int = Field(default=0, description="Recalled requests")
    avg_processing_hours: float = Field(default=0.0, description="Avg creation-to-approval")
    total_value: str = Field(default="0", description="Sum of request values")


class AuditEvent(BaseModel):
    """Event handed to the audit recorder after each committed transition."""

    request_id: str
    action: str
    actor_id: str | None = None
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
