"""Repository for audit log operations."""

from typing import Sequence

from sqlalchemy import desc, select

from procurement_approvals.models.audit import AuditLog
from procurement_approvals.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[AuditLog]):
    """Repository for AuditLog database operations."""

    model = AuditLog

    async def get_by_resource(
        self,
        resource_type: str,
        resource_id: str | None = None,
        *,
        skip: int = 0,
        limit: int = 100,
    ) -> Sequence[AuditLog]:
        """Get logs by resource, newest first.

        @param resource_type - Resource type
        @param resource_id - Optional specific resource ID
        @param skip - Pagination offset
        @param limit - Maximum results
        @returns List of audit logs
        """
        stmt = select(self.model).where(self.model.resource_type == resource_type)
        if resource_id:
            stmt = stmt.where(self.model.resource_id == resource_id)
        stmt = stmt.order_by(desc(self.model.occurred_at)).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

