"""Role and permission definitions for approval RBAC.

Users hold system roles; each role grants a fixed set of permissions.
Approval authority is checked per approval type through
``REQUIRED_APPROVAL_PERMISSION``.
"""

from enum import Enum
from typing import FrozenSet

from procurement_approvals.services.approval.schemas import ApprovalType


class SystemRole(str, Enum):
    """System roles managed by the approval service."""

    ADMIN = "admin"  # Full access
    PROCUREMENT_OFFICER = "procurement_officer"  # Creates and tracks requests
    APPROVER = "approver"  # Standard approval authority
    SENIOR_APPROVER = "senior_approver"  # Award and policy decisions
    FINANCE_APPROVER = "finance_approver"  # Budgets
    LEGAL_APPROVER = "legal_approver"  # Contracts
    AUDITOR = "auditor"  # Read-only audit access
    VIEWER = "viewer"  # View own requests only


class Permission(str, Enum):
    """Approval permissions.

    Format: <resource>:<action>[:<scope>]
    """

    APPROVALS_READ = "approvals:read"
    APPROVALS_READ_ALL = "approvals:read:all"
    APPROVALS_CREATE = "approvals:create"
    APPROVALS_DELEGATE = "approvals:delegate"
    APPROVALS_ESCALATE = "approvals:escalate"
    APPROVALS_ADMIN = "approvals:admin"

    # Approval authority by area
    APPROVE_PROCUREMENT = "approvals:approve:procurement"
    APPROVE_AWARD = "approvals:approve:award"
    APPROVE_CONTRACT = "approvals:approve:contract"
    APPROVE_BUDGET = "approvals:approve:budget"
    APPROVE_DOCUMENT = "approvals:approve:document"
    APPROVE_POLICY = "approvals:approve:policy"

    AUDIT_READ = "audit:read"


REQUIRED_APPROVAL_PERMISSION: dict[ApprovalType, Permission] = {
    ApprovalType.PROCUREMENT_PLAN: Permission.APPROVE_PROCUREMENT,
    ApprovalType.RFQ_CREATION: Permission.APPROVE_PROCUREMENT,
    ApprovalType.VENDOR_SELECTION: Permission.APPROVE_PROCUREMENT,
    ApprovalType.AWARD_DECISION: Permission.APPROVE_AWARD,
    ApprovalType.CONTRACT_EXECUTION: Permission.APPROVE_CONTRACT,
    ApprovalType.BUDGET_APPROVAL: Permission.APPROVE_BUDGET,
    ApprovalType.DOCUMENT_APPROVAL: Permission.APPROVE_DOCUMENT,
    ApprovalType.POLICY_EXCEPTION: Permission.APPROVE_POLICY,
}

_BASE_APPROVER = frozenset([
    Permission.APPROVALS_READ,
    Permission.APPROVALS_CREATE,
    Permission.APPROVALS_DELEGATE,
    Permission.APPROVALS_ESCALATE,
    Permission.APPROVE_PROCUREMENT,
    Permission.APPROVE_DOCUMENT,
])

SYSTEM_ROLE_PERMISSIONS: dict[SystemRole, FrozenSet[Permission]] = {
    SystemRole.ADMIN: frozenset(Permission),
    SystemRole.PROCUREMENT_OFFICER: frozenset([
        Permission.APPROVALS_READ,
        Permission.APPROVALS_CREATE,
        Permission.APPROVALS_ESCALATE,
    ]),
    SystemRole.APPROVER: _BASE_APPROVER,
    SystemRole.SENIOR_APPROVER: _BASE_APPROVER | {
        Permission.APPROVALS_READ_ALL,
        Permission.APPROVE_AWARD,
        Permission.APPROVE_POLICY,
    },
    SystemRole.FINANCE_APPROVER: _BASE_APPROVER | {Permission.APPROVE_BUDGET},
    SystemRole.LEGAL_APPROVER: _BASE_APPROVER | {Permission.APPROVE_CONTRACT},
    SystemRole.AUDITOR: frozenset([
        Permission.APPROVALS_READ,
        Permission.APPROVALS_READ_ALL,
        Permission.AUDIT_READ,
    ]),
    SystemRole.VIEWER: frozenset([Permission.APPROVALS_READ]),
}


def get_permissions_for_system_role(role: SystemRole) -> FrozenSet[Permission]:
    """Get all permissions for a system role.

    Args:
        role: System role

    Returns:
        Set of permissions for the role
    """
    return SYSTEM_ROLE_PERMISSIONS.get(role, frozenset())


def get_combined_permissions(system_roles: list[SystemRole]) -> set[Permission]:
    """Get the union of permissions granted by several roles."""
    permissions: set[Permission] = set()
    for role in system_roles:
        permissions.update(get_permissions_for_system_role(role))
    return permissions


def required_permission_for(approval_type: ApprovalType) -> Permission:
    """Permission a user needs to act on requests of the given type."""
    return REQUIRED_APPROVAL_PERMISSION[approval_type]
