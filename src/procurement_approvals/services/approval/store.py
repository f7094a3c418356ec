"""Transactional stores for the approval aggregate.

Both stores implement optimistic concurrency: ``commit`` applies the
mutation only if the stored version still equals the version the caller
read, and bumps the version by one.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from procurement_approvals.infrastructure.database.session import get_session_factory
from procurement_approvals.repositories.approval import ApprovalRequestRepository
from procurement_approvals.services.approval.authority import authorized_approver
from procurement_approvals.services.approval.exceptions import ConflictError, NotFoundError
from procurement_approvals.services.approval.interfaces import MutateFn
from procurement_approvals.services.approval.schemas import (
    ACTIVE_STATUSES,
    ApprovalQuery,
    ApprovalRequest,
)

logger = logging.getLogger(__name__)


def matches_query(request: ApprovalRequest, query: ApprovalQuery) -> bool:
    """Check a request against the scalar filters of a query."""
    if query.status and request.status not in query.status:
        return False
    if query.type and request.type not in query.type:
        return False
    if query.priority and request.priority != query.priority:
        return False
    if query.department and request.department != query.department:
        return False
    if query.requested_by and request.requested_by != query.requested_by:
        return False
    if query.assigned_to:
        if request.is_terminal or authorized_approver(request) != query.assigned_to:
            return False
    return True


class InMemoryApprovalStore:
    """Process-local store serializing commits per aggregate with asyncio locks.

    Aggregates are copied on the way in and out so callers never share
    state with the stored version.
    """

    def __init__(self) -> None:
        self._records: dict[str, ApprovalRequest] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, request_id: str) -> asyncio.Lock:
        if request_id not in self._locks:
            self._locks[request_id] = asyncio.Lock()
        return self._locks[request_id]

    async def get(self, request_id: str) -> ApprovalRequest:
        record = self._records.get(request_id)
        if record is None:
            raise NotFoundError(request_id)
        return record.model_copy(deep=True)

    async def insert(self, request: ApprovalRequest) -> ApprovalRequest:
        async with self._lock(request.id):
            if request.id in self._records:
                raise ConflictError(request.id)
            stored = request.model_copy(deep=True, update={"version": 0})
            self._records[request.id] = stored
            return stored.model_copy(deep=True)

    async def commit(
        self, request_id: str, expected_version: int, mutate: MutateFn
    ) -> ApprovalRequest:
        async with self._lock(request_id):
            current = self._records.get(request_id)
            if current is None:
                raise NotFoundError(request_id)
            if current.version != expected_version:
                raise ConflictError(request_id, expected_version)

            working = current.model_copy(deep=True)
            mutate(working)
            working.version = expected_version + 1
            self._records[request_id] = working
            return working.model_copy(deep=True)

    async def search(self, query: ApprovalQuery) -> list[ApprovalRequest]:
        matched = [
            r.model_copy(deep=True)
            for r in self._records.values()
            if matches_query(r, query)
        ]
        matched.sort(key=lambda r: r.created_at, reverse=True)
        return matched

    async def find_overdue(self, now: datetime) -> list[str]:
        overdue = [
            r for r in self._records.values()
            if r.status in ACTIVE_STATUSES and r.expires_at < now
        ]
        overdue.sort(key=lambda r: r.expires_at)
        return [r.id for r in overdue]


def _to_row(request: ApprovalRequest) -> dict:
    """Column values for an aggregate."""
    return {
        "id": request.id,
        "version": request.version,
        "type": request.type.value,
        "status": request.status.value,
        "priority": request.priority.value,
        "department": request.department,
        "requested_by": request.requested_by,
        "current_approver_id": None if request.is_terminal else authorized_approver(request),
        "value": request.value,
        "expires_at": request.expires_at,
        "document": request.model_dump(mode="json"),
        "created_at": request.created_at,
        "updated_at": request.updated_at,
    }


def _from_row(record) -> ApprovalRequest:
    aggregate = ApprovalRequest.model_validate(record.document)
    aggregate.version = record.version
    return aggregate


class DatabaseApprovalStore:
    """PostgreSQL store using versioned UPDATEs for optimistic locking."""

    def __init__(self, session_factory: Callable[[], AsyncSession] | None = None):
        """Initialize database store.

        @param session_factory - Factory for database sessions
        """
        self._session_factory = session_factory or get_session_factory()

    async def get(self, request_id: str) -> ApprovalRequest:
        async with self._session_factory() as session:
            record = await ApprovalRequestRepository(session).get_by_id(request_id)
            if record is None:
                raise NotFoundError(request_id)
            return _from_row(record)

    async def insert(self, request: ApprovalRequest) -> ApprovalRequest:
        request = request.model_copy(deep=True, update={"version": 0})
        async with self._session_factory() as session:
            await ApprovalRequestRepository(session).create(_to_row(request))
            await session.commit()
        return request

    async def commit(
        self, request_id: str, expected_version: int, mutate: MutateFn
    ) -> ApprovalRequest:
        async with self._session_factory() as session:
            repo = ApprovalRequestRepository(session)
            record = await repo.get_by_id(request_id)
            if record is None:
                raise NotFoundError(request_id)
            if record.version != expected_version:
                raise ConflictError(request_id, expected_version)

            aggregate = _from_row(record)
            mutate(aggregate)
            aggregate.version = expected_version + 1

            values = _to_row(aggregate)
            values.pop("id")
            values.pop("created_at")
            updated = await repo.update_versioned(request_id, expected_version, values)
            if updated == 0:
                await session.rollback()
                logger.warning(
                    f"Version check failed for {request_id} at version {expected_version}"
                )
                raise ConflictError(request_id, expected_version)

            await session.commit()
            return aggregate

    async def search(self, query: ApprovalQuery) -> list[ApprovalRequest]:
        async with self._session_factory() as session:
            records = await ApprovalRequestRepository(session).search(
                statuses=[s.value for s in query.status] if query.status else None,
                types=[t.value for t in query.type] if query.type else None,
                priority=query.priority.value if query.priority else None,
                department=query.department,
                requested_by=query.requested_by,
                current_approver_id=query.assigned_to,
            )
            return [_from_row(r) for r in records]

    async def find_overdue(self, now: datetime) -> list[str]:
        async with self._session_factory() as session:
            return await ApprovalRequestRepository(session).get_overdue_ids(now)
