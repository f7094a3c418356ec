"""Approval Management API endpoints."""

import logging
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from procurement_approvals.services.approval import (
    ApprovalError,
    ApprovalPriority,
    ApprovalQuery,
    ApprovalRequest,
    ApprovalRequestCreate,
    ApprovalStateMachine,
    ApprovalStatus,
    ApprovalType,
    ApproveRequest,
    DelegateRequest,
    EscalateRequest,
    RecallRequest,
    RejectRequest,
    get_approval_state_machine,
)
from procurement_approvals.services.approval.schemas import (
    ApprovalListResponse,
    ApprovalStats,
    WorkflowPreview,
)
from procurement_approvals.services.audit import (
    AuditEntry,
    DatabaseAuditRecorder,
    get_audit_recorder,
)
from procurement_approvals.services.auth import (
    AuthenticatedUser,
    CurrentUser,
    require_permissions,
)
from procurement_approvals.services.rbac.definitions import Permission

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/approvals", tags=["Approvals"])

StateMachine = Annotated[ApprovalStateMachine, Depends(get_approval_state_machine)]
Reader = Annotated[
    AuthenticatedUser,
    Depends(require_permissions(Permission.APPROVALS_READ, Permission.APPROVALS_READ_ALL)),
]


async def approval_error_handler(request: Request, exc: ApprovalError) -> JSONResponse:
    """Map workflow errors to their HTTP status and stable error code."""
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
    return JSONResponse(
        status_code=exc.http_status,
        content={"code": exc.code, "message": exc.message, "retryable": exc.retryable},
    )


@router.get("", response_model=ApprovalListResponse)
async def list_approvals(
    user: Reader,
    state_machine: StateMachine,
    status_filter: list[ApprovalStatus] | None = Query(
        None, alias="status", description="Filter by status"
    ),
    approval_type: list[ApprovalType] | None = Query(
        None, alias="type", description="Filter by approval type"
    ),
    priority: ApprovalPriority | None = Query(None, description="Filter by priority"),
    department: str | None = Query(None, description="Filter by department"),
    requested_by: str | None = Query(None, description="Filter by requester"),
    assigned_to: str | None = Query(None, description="Filter by current approver"),
    include_expired: bool = Query(False, description="Include expired requests"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
) -> ApprovalListResponse:
    """List approval requests with filters and pagination.

    Users without ``approvals:read:all`` only see their own requests.
    """
    if not user.is_admin and not user.has_permission(Permission.APPROVALS_READ_ALL.value):
        requested_by = user.user_id

    return await state_machine.list_requests(
        ApprovalQuery(
            status=status_filter,
            type=approval_type,
            priority=priority,
            department=department,
            requested_by=requested_by,
            assigned_to=assigned_to,
            include_expired=include_expired,
            page=page,
            page_size=page_size,
        )
    )


@router.get("/stats", response_model=ApprovalStats)
async def get_approval_stats(
    user: Annotated[
        AuthenticatedUser, Depends(require_permissions(Permission.APPROVALS_READ_ALL))
    ],
    state_machine: StateMachine,
) -> ApprovalStats:
    """Get approval workflow statistics.

    Requires: approvals:read:all permission
    """
    return await state_machine.get_stats()


@router.get("/pending", response_model=ApprovalListResponse)
async def list_pending_for_me(
    user: CurrentUser,
    state_machine: StateMachine,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
) -> ApprovalListResponse:
    """List requests awaiting the current user's decision, most urgent first."""
    return await state_machine.get_pending_for_approver(
        user.user_id, page=page, page_size=page_size
    )


@router.get("/preview", response_model=WorkflowPreview)
async def preview_workflow(
    user: Reader,
    state_machine: StateMachine,
    approval_type: ApprovalType = Query(..., alias="type", description="Approval type"),
    department: str = Query(..., min_length=1, description="Requesting department"),
    value: Decimal | None = Query(None, ge=0, description="Monetary value"),
    urgent: bool = Query(False, description="Urgent flag"),
    emergency: bool = Query(False, description="Emergency flag"),
) -> WorkflowPreview:
    """Show the chain, priority and expiry window a submission would receive."""
    return state_machine.preview_workflow(
        approval_type, value, department, urgent=urgent, emergency=emergency
    )


@router.post("/sweep-expired")
async def sweep_expired(
    user: Annotated[
        AuthenticatedUser, Depends(require_permissions(Permission.APPROVALS_ADMIN))
    ],
    state_machine: StateMachine,
) -> dict:
    """Expire every overdue request now instead of waiting for the scheduled sweep.

    Requires: approvals:admin permission
    """
    expired = await state_machine.sweep_expired()
    logger.info(f"Manual expiry sweep by {user.user_id}: {len(expired)} expired")
    return {"expired": len(expired), "request_ids": expired}


@router.post("", response_model=ApprovalRequest, status_code=status.HTTP_201_CREATED)
async def submit_approval(
    data: ApprovalRequestCreate,
    user: Annotated[
        AuthenticatedUser, Depends(require_permissions(Permission.APPROVALS_CREATE))
    ],
    state_machine: StateMachine,
) -> ApprovalRequest:
    """Submit a new approval request.

    Requires: approvals:create permission
    """
    return await state_machine.submit_request(data, user.user_id)


@router.get("/{request_id}", response_model=ApprovalRequest)
async def get_approval(
    request_id: str,
    user: Reader,
    state_machine: StateMachine,
) -> ApprovalRequest:
    """Get an approval request with its chain and full history."""
    return await state_machine.get_request(request_id)


@router.get("/{request_id}/audit", response_model=list[AuditEntry])
async def get_approval_audit_trail(
    request_id: str,
    user: Annotated[AuthenticatedUser, Depends(require_permissions(Permission.AUDIT_READ))],
    recorder: Annotated[DatabaseAuditRecorder, Depends(get_audit_recorder)],
    limit: int = Query(100, ge=1, le=500, description="Maximum entries"),
) -> list[AuditEntry]:
    """Get the audit trail of a request, newest first.

    Requires: audit:read permission
    """
    return await recorder.get_trail(request_id, limit=limit)


@router.post("/{request_id}/approve", response_model=ApprovalRequest)
async def approve(
    request_id: str,
    user: CurrentUser,
    state_machine: StateMachine,
    data: ApproveRequest | None = None,
) -> ApprovalRequest:
    """Approve the current level.

    Only the current level's approver, delegate or escalation target may act.
    Sending ``level`` makes retries of the same approval idempotent.
    """
    return await state_machine.approve(request_id, user.user_id, data)


@router.post("/{request_id}/reject", response_model=ApprovalRequest)
async def reject(
    request_id: str,
    data: RejectRequest,
    user: CurrentUser,
    state_machine: StateMachine,
) -> ApprovalRequest:
    """Reject the request at its current level."""
    return await state_machine.reject(request_id, user.user_id, data)


@router.post("/{request_id}/delegate", response_model=ApprovalRequest)
async def delegate(
    request_id: str,
    data: DelegateRequest,
    user: Annotated[
        AuthenticatedUser, Depends(require_permissions(Permission.APPROVALS_DELEGATE))
    ],
    state_machine: StateMachine,
) -> ApprovalRequest:
    """Delegate the current level to another user.

    Requires: approvals:delegate permission
    """
    return await state_machine.delegate(request_id, user.user_id, data)


@router.post("/{request_id}/escalate", response_model=ApprovalRequest)
async def escalate(
    request_id: str,
    data: EscalateRequest,
    user: Annotated[
        AuthenticatedUser, Depends(require_permissions(Permission.APPROVALS_ESCALATE))
    ],
    state_machine: StateMachine,
) -> ApprovalRequest:
    """Escalate the current level to a higher authority.

    Requires: approvals:escalate permission
    """
    return await state_machine.escalate(request_id, data.reason, user.user_id)


@router.post("/{request_id}/recall", response_model=ApprovalRequest)
async def recall(
    request_id: str,
    user: CurrentUser,
    state_machine: StateMachine,
    data: RecallRequest | None = None,
) -> ApprovalRequest:
    """Withdraw a pending request. Only the requester may recall."""
    return await state_machine.recall(
        request_id, user.user_id, data.reason if data else None
    )


@router.post("/{request_id}/check-expiry", response_model=ApprovalRequest)
async def check_expiry(
    request_id: str,
    user: Reader,
    state_machine: StateMachine,
) -> ApprovalRequest:
    """Expire the request now if its deadline has passed."""
    return await state_machine.check_expiry(request_id)
