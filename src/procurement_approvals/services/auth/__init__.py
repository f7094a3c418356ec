"""Authentication services module."""

from procurement_approvals.services.auth.dependencies import (
    AuthenticatedUser,
    CurrentUser,
    get_current_user,
    require_permissions,
)
from procurement_approvals.services.auth.jwt_service import (
    JWTService,
    TokenPayload,
    get_jwt_service,
)

__all__ = [
    # JWT
    "JWTService",
    "TokenPayload",
    "get_jwt_service",
    # Dependencies
    "AuthenticatedUser",
    "get_current_user",
    "require_permissions",
    "CurrentUser",
]
