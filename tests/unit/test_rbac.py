"""Tests for RBAC services."""

import pytest

from procurement_approvals.core.config import Settings
from procurement_approvals.services.approval import ApprovalType
from procurement_approvals.services.rbac.definitions import (
    REQUIRED_APPROVAL_PERMISSION,
    SYSTEM_ROLE_PERMISSIONS,
    Permission,
    SystemRole,
    get_combined_permissions,
    get_permissions_for_system_role,
    required_permission_for,
)
from procurement_approvals.services.rbac.rbac_service import RBACService, UserRoles


class TestRoleDefinitions:
    """Tests for role and permission definitions."""

    def test_every_role_has_permissions(self):
        """Test all system roles map to a permission set."""
        for role in SystemRole:
            assert role in SYSTEM_ROLE_PERMISSIONS
            assert get_permissions_for_system_role(role)

    def test_admin_has_all_permissions(self):
        permissions = get_permissions_for_system_role(SystemRole.ADMIN)
        assert len(permissions) == len(Permission)

    def test_every_type_requires_a_permission(self):
        """Test each approval type maps to an approval permission."""
        for approval_type in ApprovalType:
            assert approval_type in REQUIRED_APPROVAL_PERMISSION
            assert required_permission_for(approval_type).value.startswith(
                "approvals:approve:"
            )

    @pytest.mark.parametrize(
        "approval_type,permission",
        [
            (ApprovalType.PROCUREMENT_PLAN, Permission.APPROVE_PROCUREMENT),
            (ApprovalType.AWARD_DECISION, Permission.APPROVE_AWARD),
            (ApprovalType.CONTRACT_EXECUTION, Permission.APPROVE_CONTRACT),
            (ApprovalType.BUDGET_APPROVAL, Permission.APPROVE_BUDGET),
            (ApprovalType.POLICY_EXCEPTION, Permission.APPROVE_POLICY),
        ],
    )
    def test_required_permission(self, approval_type, permission):
        assert required_permission_for(approval_type) == permission

    def test_procurement_officer_cannot_approve(self):
        permissions = get_permissions_for_system_role(SystemRole.PROCUREMENT_OFFICER)

        assert Permission.APPROVALS_CREATE in permissions
        assert not any(p.value.startswith("approvals:approve:") for p in permissions)

    def test_specialist_approvers(self):
        finance = get_permissions_for_system_role(SystemRole.FINANCE_APPROVER)
        legal = get_permissions_for_system_role(SystemRole.LEGAL_APPROVER)

        assert Permission.APPROVE_BUDGET in finance
        assert Permission.APPROVE_CONTRACT not in finance
        assert Permission.APPROVE_CONTRACT in legal

    def test_auditor_is_read_only(self):
        permissions = get_permissions_for_system_role(SystemRole.AUDITOR)

        assert Permission.AUDIT_READ in permissions
        assert Permission.APPROVALS_CREATE not in permissions


class TestCombinedPermissions:
    """Tests for combined permission calculation."""

    def test_combine_system_roles(self):
        permissions = get_combined_permissions([SystemRole.APPROVER, SystemRole.AUDITOR])

        assert Permission.APPROVE_PROCUREMENT in permissions
        assert Permission.AUDIT_READ in permissions

    def test_empty_roles(self):
        assert get_combined_permissions([]) == set()


class TestRBACService:
    """Tests for RBAC service."""

    def setup_method(self):
        """Set up test fixtures."""
        self.rbac_service = RBACService(
            settings=Settings(environment="testing"),
            user_roles={"mgr-1": [SystemRole.APPROVER]},
        )

    def test_initial_roles(self):
        assert self.rbac_service.get_system_roles("mgr-1") == [SystemRole.APPROVER]
        assert self.rbac_service.get_system_roles("nobody") == []

    def test_assign_system_role(self):
        """Test assigning system role."""
        assert self.rbac_service.assign_system_role("u1", SystemRole.FINANCE_APPROVER) is True
        assert self.rbac_service.assign_system_role("u1", SystemRole.FINANCE_APPROVER) is False
        assert self.rbac_service.get_system_roles("u1") == [SystemRole.FINANCE_APPROVER]

    def test_revoke_system_role(self):
        """Test revoking system role."""
        assert self.rbac_service.revoke_system_role("mgr-1", SystemRole.APPROVER) is True
        assert self.rbac_service.revoke_system_role("mgr-1", SystemRole.APPROVER) is False
        assert not self.rbac_service.has_permission("mgr-1", "approvals:approve:procurement")

    def test_has_permission(self):
        assert self.rbac_service.has_permission("mgr-1", "approvals:approve:document")
        assert not self.rbac_service.has_permission("mgr-1", "approvals:approve:budget")

    def test_unknown_permission_is_denied(self):
        assert not self.rbac_service.has_permission("mgr-1", "approvals:approve:everything")

    def test_get_user_roles(self):
        user_roles = self.rbac_service.get_user_roles("mgr-1")

        assert isinstance(user_roles, UserRoles)
        assert user_roles.system_roles == [SystemRole.APPROVER]
        assert Permission.APPROVALS_DELEGATE in user_roles.permissions
        assert user_roles.permissions == sorted(user_roles.permissions)

    def test_cross_department_delegation_policy(self):
        assert self.rbac_service.cross_department_delegation_allowed(
            ApprovalType.DOCUMENT_APPROVAL
        )
        assert not self.rbac_service.cross_department_delegation_allowed(
            ApprovalType.BUDGET_APPROVAL
        )

    def test_cross_department_policy_from_settings(self):
        service = RBACService(
            settings=Settings(
                environment="testing",
                approval_cross_department_delegation=["budget_approval"],
            )
        )

        assert service.cross_department_delegation_allowed(ApprovalType.BUDGET_APPROVAL)
        assert not service.cross_department_delegation_allowed(
            ApprovalType.DOCUMENT_APPROVAL
        )
