"""Audit recorders for approval transitions."""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from procurement_approvals.infrastructure.database.session import get_session_factory
from procurement_approvals.repositories.audit_log import AuditLogRepository
from procurement_approvals.services.approval.schemas import AuditEvent
from procurement_approvals.services.audit.schemas import (
    WARNING_ACTIONS,
    AuditAction,
    AuditEntry,
    AuditQuery,
    AuditSeverity,
    AuditStats,
)

logger = logging.getLogger(__name__)


def _severity(action: str) -> AuditSeverity:
    try:
        known = AuditAction(action)
    except ValueError:
        return AuditSeverity.INFO
    return AuditSeverity.WARNING if known in WARNING_ACTIONS else AuditSeverity.INFO


def _describe(event: AuditEvent) -> str:
    actor = event.actor_id or "system"
    return f"Approval {event.request_id} {event.action} by {actor}"


class AuditLogger:
    """In-memory audit trail mirrored to the standard logger."""

    def __init__(self, max_entries: int = 100000):
        """Initialize audit logger.

        Args:
            max_entries: Number of entries kept in memory
        """
        self._entries: list[AuditEntry] = []
        self._max_entries = max_entries

    async def record(self, event: AuditEvent) -> None:
        """Record an approval event.

        Args:
            event: Event emitted after a committed transition
        """
        self.log(event)

    def log(self, event: AuditEvent) -> AuditEntry:
        """Store an event and emit it as a log line.

        Args:
            event: Approval event

        Returns:
            The created audit entry
        """
        severity = _severity(event.action)
        entry = AuditEntry(
            entry_id=str(uuid4()),
            timestamp=event.timestamp,
            action=event.action,
            severity=severity,
            actor_id=event.actor_id,
            actor_type="user" if event.actor_id else "system",
            resource_id=event.request_id,
            description=_describe(event),
            details=dict(event.metadata),
        )

        self._entries.append(entry)
        if len(self._entries) > self._max_entries:
            self._entries = self._entries[-self._max_entries:]

        logger.log(
            logging.WARNING if severity == AuditSeverity.WARNING else logging.INFO,
            f"[AUDIT] approval/{entry.action}: {entry.description}",
            extra={
                "audit_entry_id": entry.entry_id,
                "actor_id": entry.actor_id,
                "resource_id": entry.resource_id,
            },
        )
        return entry

    def query(self, query: AuditQuery) -> list[AuditEntry]:
        """Query audit entries.

        Args:
            query: Query parameters

        Returns:
            Matching entries, newest first
        """
        results = self._entries.copy()

        if query.start_time:
            results = [e for e in results if e.timestamp >= query.start_time]
        if query.end_time:
            results = [e for e in results if e.timestamp <= query.end_time]
        if query.actions:
            results = [e for e in results if e.action in query.actions]
        if query.actor_id:
            results = [e for e in results if e.actor_id == query.actor_id]
        if query.resource_id:
            results = [e for e in results if e.resource_id == query.resource_id]

        results.sort(key=lambda e: e.timestamp, reverse=True)
        return results[query.offset : query.offset + query.limit]

    def get_trail(self, request_id: str) -> list[AuditEntry]:
        """All entries of one approval request in chronological order."""
        return [e for e in self._entries if e.resource_id == request_id]

    def get_stats(
        self,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> AuditStats:
        """Get audit statistics.

        Args:
            start_time: Start of time range
            end_time: End of time range

        Returns:
            Statistics
        """
        entries = self._entries.copy()
        if start_time:
            entries = [e for e in entries if e.timestamp >= start_time]
        if end_time:
            entries = [e for e in entries if e.timestamp <= end_time]

        if not entries:
            return AuditStats(total_entries=0, entries_by_action={}, unique_actors=0)

        by_action: dict[str, int] = defaultdict(int)
        actors: set[str] = set()
        for entry in entries:
            by_action[entry.action] += 1
            if entry.actor_id:
                actors.add(entry.actor_id)

        timestamps = [e.timestamp for e in entries]
        return AuditStats(
            total_entries=len(entries),
            entries_by_action=dict(by_action),
            unique_actors=len(actors),
            time_range_start=min(timestamps),
            time_range_end=max(timestamps),
        )

    def clear(self) -> int:
        """Clear all entries.

        Returns:
            Number of entries cleared
        """
        count = len(self._entries)
        self._entries = []
        return count


class DatabaseAuditRecorder:
    """Writes approval events to the ``audit_logs`` table."""

    def __init__(self, session_factory: Callable[[], AsyncSession] | None = None):
        """Initialize database recorder.

        Args:
            session_factory: Factory for database sessions
        """
        self._session_factory = session_factory or get_session_factory()

    async def record(self, event: AuditEvent) -> None:
        """Insert one audit row.

        Args:
            event: Approval event
        """
        async with self._session_factory() as session:
            await AuditLogRepository(session).create({
                "action": f"approval.{event.action}",
                "resource_type": "approval_request",
                "resource_id": event.request_id,
                "actor_id": event.actor_id,
                "details": event.model_dump(mode="json")["metadata"],
                "occurred_at": event.timestamp,
            })
            await session.commit()
        logger.debug(f"Audit row written for {event.request_id} ({event.action})")

    async def get_trail(self, request_id: str, limit: int = 100) -> list[AuditEntry]:
        """Audit entries of one approval request, newest first.

        Args:
            request_id: Approval request ID
            limit: Maximum entries

        Returns:
            Audit entries
        """
        async with self._session_factory() as session:
            rows = await AuditLogRepository(session).get_by_resource(
                "approval_request", request_id, limit=limit
            )

        entries = []
        for row in rows:
            action = row.action.removeprefix("approval.")
            actor = row.actor_id or "system"
            entries.append(
                AuditEntry(
                    entry_id=str(row.id),
                    timestamp=row.occurred_at,
                    action=action,
                    severity=_severity(action),
                    actor_id=row.actor_id,
                    actor_type="user" if row.actor_id else "system",
                    resource_id=row.resource_id or request_id,
                    description=f"Approval {request_id} {action} by {actor}",
                    details=row.details or {},
                )
            )
        return entries


# Singleton instance
_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    """Get singleton audit logger instance.

    Returns:
        The audit logger
    """
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def reset_audit_logger() -> None:
    """Reset audit logger singleton (for testing)."""
    global _audit_logger
    _audit_logger = None


_audit_recorder: DatabaseAuditRecorder | None = None


def get_audit_recorder() -> DatabaseAuditRecorder:
    """Get singleton database audit recorder."""
    global _audit_recorder
    if _audit_recorder is None:
        _audit_recorder = DatabaseAuditRecorder()
    return _audit_recorder
