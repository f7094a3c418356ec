"""Repository for approval request persistence."""

from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import and_, select, update

from procurement_approvals.models.approval import ApprovalRequestRecord
from procurement_approvals.repositories.base import BaseRepository

ACTIVE_STATUS_VALUES = ("pending", "delegated", "escalated")


class ApprovalRequestRepository(BaseRepository[ApprovalRequestRecord]):
    """Repository for ApprovalRequestRecord database operations.

    Handles:
    - Versioned (optimistic) updates of the serialized aggregate
    - Filtered listing by the mirrored scalar columns
    - Deadline tracking for the expiry sweep
    """

    model = ApprovalRequestRecord

    async def update_versioned(
        self,
        request_id: str,
        expected_version: int,
        values: dict[str, Any],
    ) -> int:
        """Update a row only if it is still at ``expected_version``.

        @param request_id - Request ID
        @param expected_version - Version the caller read
        @param values - Column values, must include the bumped version
        @returns Number of updated rows (0 on version mismatch)
        """
        stmt = (
            update(self.model)
            .where(
                and_(
                    self.model.id == request_id,
                    self.model.version == expected_version,
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def search(
        self,
        *,
        statuses: list[str] | None = None,
        types: list[str] | None = None,
        priority: str | None = None,
        department: str | None = None,
        requested_by: str | None = None,
        current_approver_id: str | None = None,
    ) -> Sequence[ApprovalRequestRecord]:
        """Get requests matching the given filters, newest first.

        @param statuses - Status values to include
        @param types - Approval types to include
        @param priority - Priority filter
        @param department - Department filter
        @param requested_by - Requester filter
        @param current_approver_id - Current approver filter
        @returns Matching records
        """
        stmt = select(self.model)
        if statuses:
            stmt = stmt.where(self.model.status.in_(statuses))
        if types:
            stmt = stmt.where(self.model.type.in_(types))
        if priority:
            stmt = stmt.where(self.model.priority == priority)
        if department:
            stmt = stmt.where(self.model.department == department)
        if requested_by:
            stmt = stmt.where(self.model.requested_by == requested_by)
        if current_approver_id:
            stmt = stmt.where(self.model.current_approver_id == current_approver_id)
        stmt = stmt.order_by(self.model.created_at.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_overdue_ids(self, now: datetime) -> list[str]:
        """Get IDs of active requests past their deadline.

        @param now - Reference time
        @returns Request IDs ordered by deadline
        """
        stmt = (
            select(self.model.id)
            .where(
                and_(
                    self.model.status.in_(ACTIVE_STATUS_VALUES),
                    self.model.expires_at < now,
                )
            )
            .order_by(self.model.expires_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
