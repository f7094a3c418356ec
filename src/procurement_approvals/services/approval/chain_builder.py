"""Approval chain construction from business value and department rules."""

from datetime import datetime, timezone
from decimal import Decimal

from procurement_approvals.services.approval.expiry_policy import ExpiryPolicy
from procurement_approvals.services.approval.interfaces import DepartmentDirectory
from procurement_approvals.services.approval.schemas import (
    ApprovalStep,
    ApprovalType,
    ApproverRole,
    StepStatus,
    WorkflowPreview,
)

# Types whose chain grows with the requested value
VALUE_SCALED_TYPES = frozenset({ApprovalType.PROCUREMENT_PLAN, ApprovalType.BUDGET_APPROVAL})

EXECUTIVE_THRESHOLD = Decimal("1000000")
VP_THRESHOLD = Decimal("100000")


class ChainBuilder:
    """Builds the ordered approval chain for a new request.

    Value-scaled types get a longer chain as the amount grows; every other
    type uses the standard manager/director chain. Department-mandated
    approvers always come first.
    """

    def __init__(self, directory: DepartmentDirectory):
        """Initialize chain builder.

        @param directory - Department lookups for approver identities
        """
        self.directory = directory

    def _value_chain(
        self,
        approval_type: ApprovalType,
        value: Decimal | None,
        department: str,
    ) -> list[tuple[str | None, str]]:
        """Value-based (approver_id, role) pairs, before mandatory approvers."""
        chain = [
            (self.directory.manager_of(department), ApproverRole.DEPARTMENT_MANAGER.value),
            (self.directory.director_of(department), ApproverRole.DEPARTMENT_DIRECTOR.value),
        ]
        if approval_type not in VALUE_SCALED_TYPES:
            return chain

        amount = value if value is not None else Decimal(0)
        if amount >= VP_THRESHOLD:
            chain.append((self.directory.vp_of(department), ApproverRole.VP.value))
        if amount >= EXECUTIVE_THRESHOLD:
            chain.append((self.directory.ceo(), ApproverRole.CEO.value))
        return chain

    def build_chain(
        self,
        approval_type: ApprovalType,
        value: Decimal | None,
        department: str,
        now: datetime | None = None,
    ) -> list[ApprovalStep]:
        """Build the approval chain.

        @param approval_type - Request type
        @param value - Monetary value, None when not applicable
        @param department - Requesting department
        @param now - Assignment time of the first step
        @returns Steps numbered 1..N, only the first one assigned
        """
        now = now or datetime.now(timezone.utc)
        entries: list[tuple[str | None, str]] = list(
            self.directory.mandatory_approvers(department, approval_type)
        )
        entries.extend(self._value_chain(approval_type, value, department))

        return [
            ApprovalStep(
                level=index,
                approver_id=approver_id,
                role=role,
                status=StepStatus.PENDING,
                assigned_at=now if index == 1 else None,
            )
            for index, (approver_id, role) in enumerate(entries, start=1)
        ]

    def describe(
        self,
        approval_type: ApprovalType,
        value: Decimal | None,
        department: str,
        urgent: bool = False,
        emergency: bool = False,
        expiry_policy: ExpiryPolicy | None = None,
    ) -> WorkflowPreview:
        """Preview the chain and deadline a request would receive.

        @param approval_type - Request type
        @param value - Monetary value
        @param department - Requesting department
        @param urgent - Urgent flag
        @param emergency - Emergency flag
        @param expiry_policy - Policy used for priority and expiry window
        @returns Workflow preview
        """
        policy = expiry_policy or ExpiryPolicy()
        steps = self.build_chain(approval_type, value, department)
        priority = policy.priority(value, approval_type, urgent, emergency)
        return WorkflowPreview(
            approval_type=approval_type,
            department=department,
            total_levels=len(steps),
            steps=steps,
            priority=priority,
            expiry_days=policy.window_days(approval_type, priority),
        )
