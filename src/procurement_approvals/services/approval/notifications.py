"""Workflow notifications built from approval requests.

Notices are computed while a transition is applied and dispatched only
after the transition has been committed.
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, Field

from procurement_approvals.services.approval.authority import authorized_approver
from procurement_approvals.services.approval.interfaces import NotificationDispatcher
from procurement_approvals.services.approval.schemas import (
    ApprovalPriority,
    ApprovalRequest,
    EscalationTarget,
)

logger = logging.getLogger(__name__)

NOTIFICATION_TITLES = {
    "new_approval": "New Approval Required",
    "approval_required": "Approval Required",
    "approval_reminder": "Approval Reminder",
    "approval_escalated": "Approval Escalated",
    "approval_delegated": "Approval Delegated To You",
    "approval_completed": "Approval Completed",
    "approval_rejected": "Approval Rejected",
    "approval_recalled": "Approval Recalled",
    "approval_expired": "Approval Expired",
}


class Notice(BaseModel):
    """One notification waiting for dispatch."""

    recipient_id: str
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)


def _type_label(request: ApprovalRequest) -> str:
    return request.type.value.replace("_", " ")


def approval_required_message(request: ApprovalRequest) -> str:
    """Message shown to the approver of the current level."""
    worth = f" worth ${request.value:,}" if request.value else ""
    return f'{_type_label(request)} approval required{worth}: "{request.title}"'


class ApprovalNotifier:
    """Builds and dispatches approval workflow notifications."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        frontend_url: str = "",
        timeout: float = 15.0,
    ):
        """Initialize notifier.

        @param dispatcher - Delivery backend
        @param frontend_url - Base URL for action links
        @param timeout - Timeout per dispatch in seconds
        """
        self.dispatcher = dispatcher
        self.frontend_url = frontend_url.rstrip("/")
        self.timeout = timeout

    def _payload(
        self,
        request: ApprovalRequest,
        event_type: str,
        message: str,
        priority: ApprovalPriority | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        payload = {
            "title": NOTIFICATION_TITLES.get(event_type, "Approval Notification"),
            "message": message,
            "priority": (priority or request.priority).value,
            "request_id": request.id,
            "request_title": request.title,
            "type": request.type.value,
            "value": str(request.value) if request.value is not None else None,
            "department": request.department,
            "requested_by": request.requested_by,
            "action_url": f"{self.frontend_url}/approvals/{request.id}",
        }
        payload.update(extra)
        return payload

    def approver_notices(self, request: ApprovalRequest, event_type: str) -> list[Notice]:
        """Notify whoever currently holds authority over the request."""
        recipient = authorized_approver(request)
        if not recipient:
            logger.warning(f"No approver to notify for {request.id} level {request.current_level}")
            return []
        return [
            Notice(
                recipient_id=recipient,
                event_type=event_type,
                payload=self._payload(
                    request,
                    event_type,
                    approval_required_message(request),
                    level=request.current_level,
                ),
            )
        ]

    def completion_notices(self, request: ApprovalRequest) -> list[Notice]:
        """Requester and stakeholders after final approval."""
        notices = [
            Notice(
                recipient_id=request.requested_by,
                event_type="approval_completed",
                payload=self._payload(
                    request,
                    "approval_completed",
                    f'Your {_type_label(request)} request "{request.title}" has been fully approved',
                    priority=ApprovalPriority.MEDIUM,
                    completed_at=request.approved_at.isoformat() if request.approved_at else None,
                ),
            )
        ]
        notices.extend(
            self._stakeholder_notices(
                request,
                "approval_completed",
                f'Approval "{request.title}" has been completed',
            )
        )
        return notices

    def rejection_notices(self, request: ApprovalRequest) -> list[Notice]:
        return [
            Notice(
                recipient_id=request.requested_by,
                event_type="approval_rejected",
                payload=self._payload(
                    request,
                    "approval_rejected",
                    f'Your {_type_label(request)} request "{request.title}" has been rejected',
                    priority=ApprovalPriority.HIGH,
                    rejection_reason=request.rejection_reason,
                    allow_resubmission=request.allow_resubmission,
                    return_to_level=request.return_to_level,
                ),
            )
        ]

    def delegation_notices(self, request: ApprovalRequest, delegated_from: str) -> list[Notice]:
        delegate = request.current_step.delegated_to
        if not delegate:
            return []
        return [
            Notice(
                recipient_id=delegate,
                event_type="approval_delegated",
                payload=self._payload(
                    request,
                    "approval_delegated",
                    approval_required_message(request),
                    delegated_from=delegated_from,
                    level=request.current_level,
                ),
            )
        ]

    def escalation_notices(
        self, request: ApprovalRequest, target: EscalationTarget
    ) -> list[Notice]:
        return [
            Notice(
                recipient_id=target.user_id,
                event_type="approval_escalated",
                payload=self._payload(
                    request,
                    "approval_escalated",
                    approval_required_message(request),
                    escalation_reason=request.escalation_reason,
                    level=request.current_level,
                ),
            )
        ]

    def recall_notices(self, request: ApprovalRequest, previous_approver: str | None) -> list[Notice]:
        """Stakeholders and the approver who no longer needs to act."""
        message = f'Approval "{request.title}" was recalled by the requester'
        notices = self._stakeholder_notices(request, "approval_recalled", message)
        if previous_approver and previous_approver not in request.stakeholders:
            notices.append(
                Notice(
                    recipient_id=previous_approver,
                    event_type="approval_recalled",
                    payload=self._payload(
                        request,
                        "approval_recalled",
                        message,
                        recall_reason=request.recall_reason,
                    ),
                )
            )
        return notices

    def expiry_notices(self, request: ApprovalRequest) -> list[Notice]:
        return [
            Notice(
                recipient_id=request.requested_by,
                event_type="approval_expired",
                payload=self._payload(
                    request,
                    "approval_expired",
                    f'Your {_type_label(request)} request "{request.title}" expired '
                    f"before level {request.current_level} was decided",
                    priority=ApprovalPriority.HIGH,
                ),
            )
        ]

    def _stakeholder_notices(
        self, request: ApprovalRequest, event_type: str, message: str
    ) -> list[Notice]:
        return [
            Notice(
                recipient_id=stakeholder,
                event_type=event_type,
                payload=self._payload(
                    request, event_type, message, priority=ApprovalPriority.LOW
                ),
            )
            for stakeholder in request.stakeholders
            if stakeholder != request.requested_by
        ]

    async def dispatch(self, notices: list[Notice]) -> None:
        """Send notices one by one; failures are logged and skipped.

        @param notices - Notices produced by a committed transition
        """
        for notice in notices:
            try:
                await asyncio.wait_for(
                    self.dispatcher.notify(
                        notice.recipient_id, notice.event_type, notice.payload
                    ),
                    timeout=self.timeout,
                )
            except Exception:
                logger.error(
                    f"Failed to send {notice.event_type} notification "
                    f"to {notice.recipient_id}",
                    exc_info=True,
                    extra={"request_id": notice.payload.get("request_id")},
                )
