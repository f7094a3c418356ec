"""JWT token service for authentication."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from procurement_approvals.core.config import get_settings

logger = logging.getLogger(__name__)


class TokenPayload(BaseModel):
    """Claims carried by an approvals API access token."""

    sub: str  # User id
    exp: datetime
    iat: datetime
    type: str = "access"
    department: str | None = None
    roles: list[str] = []
    permissions: list[str] = []


class JWTService:
    """Issues and verifies access tokens for API callers."""

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str = "HS256",
        access_token_expire_minutes: int | None = None,
    ):
        """Initialize JWT service.

        Args:
            secret_key: Secret key for signing tokens
            algorithm: JWT algorithm (default: HS256)
            access_token_expire_minutes: Access token expiration in minutes
        """
        settings = get_settings()
        self.secret_key = secret_key or settings.secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = (
            access_token_expire_minutes or settings.access_token_expire_minutes
        )

    def create_access_token(
        self,
        subject: str,
        department: str | None = None,
        roles: list[str] | None = None,
        permissions: list[str] | None = None,
        extra_claims: dict[str, Any] | None = None,
    ) -> str:
        """Create an access token.

        Args:
            subject: User id
            department: User's department
            roles: System roles carried in the token
            permissions: Permissions carried in the token
            extra_claims: Additional claims to include

        Returns:
            Encoded JWT access token
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "iat": now,
            "type": "access",
            "department": department,
            "roles": roles or [],
            "permissions": permissions or [],
        }
        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> TokenPayload | None:
        """Verify and decode an access token.

        Args:
            token: JWT token to verify

        Returns:
            TokenPayload if valid, None if invalid or not an access token
        """
        try:
            payload = TokenPayload(
                **jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            )
        except (JWTError, ValidationError) as e:
            logger.warning(f"Rejected access token: {e}")
            return None
        if payload.type != "access":
            return None
        return payload


# Singleton instance
_jwt_service: JWTService | None = None


def get_jwt_service() -> JWTService:
    """Get or create JWT service singleton."""
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JWTService()
    return _jwt_service
