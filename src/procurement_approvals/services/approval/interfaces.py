"""Collaborator contracts the approval workflow depends on.

Concrete implementations live next to the infrastructure they wrap
(``store.py``, ``services/audit``, ``services/notification``,
``services/organization``, ``services/rbac``); tests substitute fakes.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from procurement_approvals.services.approval.schemas import (
    ApprovalQuery,
    ApprovalRequest,
    ApprovalType,
    AuditEvent,
    EscalationTarget,
)

# Receives a private copy of the aggregate, validates and mutates it in place.
# Raising aborts the commit and leaves the stored aggregate untouched.
MutateFn = Callable[[ApprovalRequest], None]


@runtime_checkable
class TransactionalStore(Protocol):
    """Atomic read-modify-write of a single approval aggregate."""

    async def get(self, request_id: str) -> ApprovalRequest:
        """Return the aggregate or raise ``NotFoundError``."""
        ...

    async def insert(self, request: ApprovalRequest) -> ApprovalRequest:
        """Persist a new aggregate at version 0."""
        ...

    async def commit(
        self, request_id: str, expected_version: int, mutate: MutateFn
    ) -> ApprovalRequest:
        """Apply ``mutate`` and bump the version.

        Raises ``ConflictError`` when the stored version differs from
        ``expected_version``.
        """
        ...

    async def search(self, query: ApprovalQuery) -> list[ApprovalRequest]:
        """Return all aggregates matching the query filters (unpaginated)."""
        ...

    async def find_overdue(self, now: datetime) -> list[str]:
        """IDs of active aggregates whose deadline is before ``now``."""
        ...


@runtime_checkable
class AuditRecorder(Protocol):
    """Append-only audit event sink."""

    async def record(self, event: AuditEvent) -> None: ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Best-effort fan-out of workflow events."""

    async def notify(
        self, recipient_id: str, event_type: str, payload: dict[str, Any]
    ) -> None: ...


@runtime_checkable
class DepartmentDirectory(Protocol):
    """Organization lookups used for chain building and escalation."""

    def manager_of(self, department: str) -> str | None: ...

    def director_of(self, department: str) -> str | None: ...

    def vp_of(self, department: str) -> str | None: ...

    def ceo(self) -> str | None: ...

    def escalation_target_for(
        self, request: ApprovalRequest
    ) -> EscalationTarget | None: ...

    def mandatory_approvers(
        self, department: str, approval_type: ApprovalType
    ) -> list[tuple[str, str]]:
        """(user_id, role) pairs prepended to every chain for the department."""
        ...

    def department_of(self, user_id: str) -> str | None:
        """Department of a known user, None for unknown users."""
        ...


@runtime_checkable
class PermissionRegistry(Protocol):
    """Permission checks used by delegation."""

    def has_permission(self, user_id: str, permission: str) -> bool: ...

    def cross_department_delegation_allowed(
        self, approval_type: ApprovalType
    ) -> bool: ...


# Type-specific action run after final approval.
PostApprovalHook = Callable[[ApprovalRequest], Awaitable[None]]
