"""Base repository with common CRUD operations."""

from typing import Any, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from procurement_approvals.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Generic async repository for SQLAlchemy models.

    Example:
        repo = ApprovalRequestRepository(session)
        record = await repo.get_by_id("APR-1A2B3C4D")
    """

    model: type[ModelType]

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with async session.

        @param session - SQLAlchemy async session
        """
        self.session = session

    async def get_by_id(self, id: Any) -> ModelType | None:
        """Get record by primary key.

        @param id - Primary key value
        @returns Model instance or None if not found
        """
        return await self.session.get(self.model, id)

    async def create(self, obj_in: dict[str, Any] | ModelType) -> ModelType:
        """Create new record.

        @param obj_in - Dictionary or model instance with data
        @returns Created model instance
        """
        db_obj = self.model(**obj_in) if isinstance(obj_in, dict) else obj_in
        self.session.add(db_obj)
        await self.session.flush()
        await self.session.refresh(db_obj)
        return db_obj

