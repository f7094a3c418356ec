"""RBAC (Role-Based Access Control) services module."""

from procurement_approvals.services.rbac.definitions import (
    Permission,
    SystemRole,
    get_combined_permissions,
    get_permissions_for_system_role,
    required_permission_for,
)
from procurement_approvals.services.rbac.rbac_service import (
    RBACService,
    UserRoles,
    get_rbac_service,
)

__all__ = [
    # Definitions
    "SystemRole",
    "Permission",
    "get_permissions_for_system_role",
    "get_combined_permissions",
    "required_permission_for",
    # RBAC service
    "RBACService",
    "UserRoles",
    "get_rbac_service",
]
