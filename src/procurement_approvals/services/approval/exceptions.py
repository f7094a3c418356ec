"""Typed errors raised by the approval workflow.

Every error carries a stable ``code`` so API clients never parse messages.
``retryable`` separates transient conflicts from terminal-state violations:

    ApprovalError
    +-- InvalidRequestError   INVALID_REQUEST     400
    +-- NotFoundError         NOT_FOUND           404
    +-- NotPendingError       NOT_PENDING         409
    +-- ExpiredError          EXPIRED             410
    +-- UnauthorizedError     UNAUTHORIZED        403
    +-- ForbiddenError        FORBIDDEN           403
    +-- NoEscalationPathError NO_ESCALATION_PATH  422
    +-- ConflictError         CONFLICT            409 (retryable)
    +-- AuditRecordingError   AUDIT_FAILED        500
    +-- StoreTimeoutError     TIMEOUT             504 (retryable)
"""

from typing import Any


class ApprovalError(Exception):
    """Base exception for all approval workflow errors."""

    code: str = "APPROVAL_ERROR"
    http_status: int = 400
    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class InvalidRequestError(ApprovalError):
    """Submission data is missing or malformed."""

    code = "INVALID_REQUEST"
    http_status = 400


class NotFoundError(ApprovalError):
    """Approval request does not exist."""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval {request_id} not found", request_id=request_id)


class NotPendingError(ApprovalError):
    """Operation is illegal for the request's current status."""

    code = "NOT_PENDING"
    http_status = 409

    def __init__(self, request_id: str, status: str, message: str | None = None):
        self.request_id = request_id
        self.status = status
        super().__init__(
            message or f"Approval {request_id} is no longer pending (status: {status})",
            request_id=request_id,
            status=status,
        )


class ExpiredError(ApprovalError):
    """Approval deadline has passed."""

    code = "EXPIRED"
    http_status = 410

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval {request_id} has expired", request_id=request_id)


class UnauthorizedError(ApprovalError):
    """Actor is not entitled to act at the current level."""

    code = "UNAUTHORIZED"
    http_status = 403


class ForbiddenError(ApprovalError):
    """Delegate lacks permission or a cross-department rule was violated."""

    code = "FORBIDDEN"
    http_status = 403


class NoEscalationPathError(ApprovalError):
    """No escalation target is available for the request."""

    code = "NO_ESCALATION_PATH"
    http_status = 422

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(
            f"No escalation path available for approval {request_id}",
            request_id=request_id,
        )


class ConflictError(ApprovalError):
    """Aggregate was modified by another transaction."""

    code = "CONFLICT"
    http_status = 409
    retryable = True

    def __init__(self, request_id: str, expected_version: int | None = None):
        self.request_id = request_id
        self.expected_version = expected_version
        super().__init__(
            f"Concurrent modification of approval {request_id}",
            request_id=request_id,
            expected_version=expected_version,
        )


class AuditRecordingError(ApprovalError):
    """Mandatory audit submission failed after the transition committed."""

    code = "AUDIT_FAILED"
    http_status = 500


class StoreTimeoutError(ApprovalError):
    """Store did not answer in time and the outcome could not be determined."""

    code = "TIMEOUT"
    http_status = 504
    retryable = True

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(
            f"Timed out waiting for the store on approval {request_id}",
            request_id=request_id,
        )
