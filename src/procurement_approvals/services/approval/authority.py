"""Resolution of who may act on an approval request."""

from procurement_approvals.services.approval.schemas import ApprovalRequest, ApprovalStep


def effective_approver(step: ApprovalStep) -> str | None:
    """Delegate if the step was delegated, otherwise the assigned approver."""
    return step.delegated_to or step.approver_id


def authorized_approver(request: ApprovalRequest) -> str | None:
    """Identity entitled to act on the request's current level.

    An escalation overrides the chain until the level is decided; otherwise
    the current step's effective approver holds authority. Since delegation
    and escalation both rewrite the current-approver reference, the most
    recent redirection always wins.
    """
    current = request.current_approver
    if current.is_escalation and current.level == request.current_level:
        return current.user_id
    return effective_approver(request.current_step)
