"""RBAC service backing approval permission checks."""

import logging

from pydantic import BaseModel

from procurement_approvals.core.config import Settings, get_settings
from procurement_approvals.services.approval.schemas import ApprovalType
from procurement_approvals.services.rbac.definitions import (
    Permission,
    SystemRole,
    get_combined_permissions,
)

logger = logging.getLogger(__name__)


class UserRoles(BaseModel):
    """Roles and effective permissions of a user."""

    user_id: str
    system_roles: list[SystemRole] = []
    permissions: list[Permission] = []


class RBACService:
    """Role-based permission registry.

    Implements the ``PermissionRegistry`` contract used by delegation checks.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        user_roles: dict[str, list[SystemRole]] | None = None,
    ):
        """Initialize RBAC service.

        Args:
            settings: Settings providing the cross-department delegation policy
            user_roles: Initial user to roles assignment
        """
        self.settings = settings or get_settings()
        self._user_system_roles: dict[str, list[SystemRole]] = {
            user_id: list(roles) for user_id, roles in (user_roles or {}).items()
        }

    def assign_system_role(self, user_id: str, role: SystemRole) -> bool:
        """Assign a system role to a user.

        Args:
            user_id: User identifier
            role: System role to assign

        Returns:
            True if role was assigned
        """
        roles = self._user_system_roles.setdefault(user_id, [])
        if role not in roles:
            roles.append(role)
            logger.info(f"Assigned role {role.value} to user {user_id}")
            return True
        return False

    def revoke_system_role(self, user_id: str, role: SystemRole) -> bool:
        """Revoke a system role from a user.

        Args:
            user_id: User identifier
            role: System role to revoke

        Returns:
            True if role was revoked
        """
        roles = self._user_system_roles.get(user_id, [])
        if role in roles:
            roles.remove(role)
            logger.info(f"Revoked role {role.value} from user {user_id}")
            return True
        return False

    def get_system_roles(self, user_id: str) -> list[SystemRole]:
        return self._user_system_roles.get(user_id, [])

    def get_user_roles(self, user_id: str) -> UserRoles:
        """Get roles and combined permissions for a user."""
        system_roles = self.get_system_roles(user_id)
        return UserRoles(
            user_id=user_id,
            system_roles=system_roles,
            permissions=sorted(get_combined_permissions(system_roles)),
        )

    def has_permission(self, user_id: str, permission: str) -> bool:
        """Check if user holds a permission via any of their roles.

        Args:
            user_id: User identifier
            permission: Permission value, e.g. ``approvals:approve:budget``

        Returns:
            True if user has the permission
        """
        try:
            wanted = Permission(permission)
        except ValueError:
            logger.warning(f"Unknown permission checked: {permission}")
            return False
        return wanted in get_combined_permissions(self.get_system_roles(user_id))

    def cross_department_delegation_allowed(self, approval_type: ApprovalType) -> bool:
        """Check whether requests of this type may be delegated across departments."""
        return approval_type.value in self.settings.approval_cross_department_delegation


# Service factory
_rbac_service: RBACService | None = None


def get_rbac_service() -> RBACService:
    """Get or create RBAC service seeded with the organization chart roles.

    Returns:
        RBACService instance
    """
    global _rbac_service
    if _rbac_service is None:
        from procurement_approvals.services.organization.directory import (
            get_department_directory,
        )

        chart = get_department_directory().chart
        _rbac_service = RBACService(user_roles=chart.user_roles)
    return _rbac_service


def reset_rbac_service() -> None:
    """Reset RBAC service singleton (for testing)."""
    global _rbac_service
    _rbac_service = None
