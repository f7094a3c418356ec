"""Priority classification and approval deadlines."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from procurement_approvals.services.approval.schemas import ApprovalPriority, ApprovalType

HIGH_PRIORITY_VALUE = Decimal("500000")
CRITICAL_PRIORITY_VALUE = Decimal("1000000")

# Days allowed per priority class
BASE_DAYS: dict[ApprovalPriority, int] = {
    ApprovalPriority.CRITICAL: 1,
    ApprovalPriority.HIGH: 3,
    ApprovalPriority.MEDIUM: 7,
    ApprovalPriority.LOW: 14,
}

# Upper bound in days per approval type
TYPE_MAX_DAYS: dict[ApprovalType, int] = {
    ApprovalType.POLICY_EXCEPTION: 2,
    ApprovalType.BUDGET_APPROVAL: 5,
    ApprovalType.CONTRACT_EXECUTION: 10,
}
DEFAULT_MAX_DAYS = 14


class ExpiryPolicy:
    """Derives priority and expiry deadline at request creation."""

    def priority(
        self,
        value: Decimal | None,
        approval_type: ApprovalType,
        urgent: bool = False,
        emergency: bool = False,
    ) -> ApprovalPriority:
        """Classify a request.

        @param value - Monetary value, None when not applicable
        @param approval_type - Request type
        @param urgent - Urgent flag
        @param emergency - Emergency flag
        @returns Priority; critical overrides high
        """
        amount = value if value is not None else Decimal(0)
        if amount >= CRITICAL_PRIORITY_VALUE or emergency:
            return ApprovalPriority.CRITICAL
        if (
            amount >= HIGH_PRIORITY_VALUE
            or approval_type == ApprovalType.POLICY_EXCEPTION
            or urgent
        ):
            return ApprovalPriority.HIGH
        return ApprovalPriority.MEDIUM

    def window_days(self, approval_type: ApprovalType, priority: ApprovalPriority) -> int:
        return min(BASE_DAYS[priority], TYPE_MAX_DAYS.get(approval_type, DEFAULT_MAX_DAYS))

    def expiry(
        self,
        approval_type: ApprovalType,
        priority: ApprovalPriority,
        now: datetime | None = None,
    ) -> datetime:
        """Compute the approval deadline.

        @param approval_type - Request type
        @param priority - Priority derived by ``priority()``
        @param now - Reference time
        @returns ``now`` plus the shorter of the priority and type windows
        """
        now = now or datetime.now(timezone.utc)
        return now + timedelta(days=self.window_days(approval_type, priority))
