"""Authentication dependencies for FastAPI."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from procurement_approvals.services.auth.jwt_service import JWTService, get_jwt_service
from procurement_approvals.services.rbac.definitions import Permission
from procurement_approvals.services.rbac.rbac_service import RBACService, get_rbac_service

logger = logging.getLogger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticatedUser:
    """Represents an authenticated user."""

    def __init__(
        self,
        user_id: str,
        department: str | None = None,
        roles: list[str] | None = None,
        permissions: list[str] | None = None,
    ):
        """Initialize authenticated user.

        Args:
            user_id: User ID (subject from token)
            department: User's department
            roles: User roles
            permissions: User permissions
        """
        self.user_id = user_id
        self.department = department
        self.roles = roles or []
        self.permissions = permissions or []

    def has_permission(self, permission: str) -> bool:
        """Check if user has a specific permission."""
        return permission in self.permissions

    @property
    def is_admin(self) -> bool:
        """Check if user is admin."""
        return "admin" in self.roles


async def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    jwt_service: Annotated[JWTService, Depends(get_jwt_service)],
    rbac_service: Annotated[RBACService, Depends(get_rbac_service)],
) -> AuthenticatedUser:
    """Get current authenticated user from JWT token.

    Roles assigned in the RBAC service are merged with the token claims.

    Args:
        credentials: Bearer token from request
        jwt_service: JWT service for token verification
        rbac_service: RBAC service holding role assignments

    Returns:
        AuthenticatedUser if token is valid

    Raises:
        HTTPException: If token is missing or invalid
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = jwt_service.verify_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_roles = rbac_service.get_user_roles(payload.sub)
    roles = set(payload.roles) | {r.value for r in user_roles.system_roles}
    permissions = set(payload.permissions) | {p.value for p in user_roles.permissions}

    return AuthenticatedUser(
        user_id=payload.sub,
        department=payload.department,
        roles=sorted(roles),
        permissions=sorted(permissions),
    )


def require_permissions(*permissions: Permission):
    """Dependency factory for permission-based access control.

    Args:
        permissions: Required permissions (user must have at least one)

    Returns:
        Dependency function
    """

    async def permission_checker(
        user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    ) -> AuthenticatedUser:
        """Check if user has required permission."""
        if not user.is_admin and not any(user.has_permission(p.value) for p in permissions):
            logger.warning(f"Permission denied for {user.user_id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of permissions: {', '.join(p.value for p in permissions)}",
            )
        return user

    return permission_checker


# Type aliases for dependency injection
CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
