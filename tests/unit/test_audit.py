"""Tests for audit logging service."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from procurement_approvals.services.approval.schemas import AuditEvent
from procurement_approvals.services.audit import (
    AuditLogger,
    AuditQuery,
    AuditSeverity,
    DatabaseAuditRecorder,
    get_audit_logger,
)

T0 = datetime(2025, 5, 5, 10, 0, tzinfo=timezone.utc)


def event(action: str, request_id: str = "APR-1", actor_id: str | None = "mgr-1", **kw):
    return AuditEvent(
        request_id=request_id,
        action=action,
        actor_id=actor_id,
        timestamp=kw.pop("timestamp", T0),
        metadata=kw,
    )


class TestAuditLogger:
    """Tests for the in-memory audit logger."""

    @pytest.fixture
    def logger(self):
        """Create fresh logger."""
        return AuditLogger()

    def test_log_basic(self, logger):
        """Test an approval event becomes an entry."""
        entry = logger.log(event("approved", level=1))

        assert entry.entry_id
        assert entry.action == "approved"
        assert entry.actor_type == "user"
        assert entry.resource_type == "approval_request"
        assert entry.resource_id == "APR-1"
        assert entry.details == {"level": 1}
        assert entry.description == "Approval APR-1 approved by mgr-1"

    def test_system_actor(self, logger):
        """Test expiry without an actor is attributed to the system."""
        entry = logger.log(event("expired", actor_id=None))

        assert entry.actor_type == "system"
        assert entry.description.endswith("by system")

    @pytest.mark.parametrize(
        "action,severity",
        [
            ("created", AuditSeverity.INFO),
            ("approved", AuditSeverity.INFO),
            ("escalated", AuditSeverity.WARNING),
            ("expired", AuditSeverity.WARNING),
            ("something_new", AuditSeverity.INFO),
        ],
    )
    def test_severity(self, logger, action, severity):
        assert logger.log(event(action)).severity == severity

    @pytest.mark.asyncio
    async def test_record_is_async_entry_point(self, logger):
        await logger.record(event("created", actor_id="alice"))

        assert [e.action for e in logger.get_trail("APR-1")] == ["created"]

    def test_max_entries(self):
        logger = AuditLogger(max_entries=3)
        for i in range(5):
            logger.log(event("approved", request_id=f"APR-{i}"))

        kept = {e.resource_id for e in logger.query(AuditQuery())}
        assert kept == {"APR-2", "APR-3", "APR-4"}

    def test_get_trail_in_order(self, logger):
        logger.log(event("created", actor_id="alice"))
        logger.log(event("approved", request_id="APR-2"))
        logger.log(event("approved", timestamp=T0 + timedelta(hours=1)))

        trail = logger.get_trail("APR-1")

        assert [e.action for e in trail] == ["created", "approved"]

    def test_clear(self, logger):
        logger.log(event("created"))

        assert logger.clear() == 1
        assert logger.get_trail("APR-1") == []


class TestAuditQuery:
    """Tests for audit querying."""

    @pytest.fixture
    def logger_with_entries(self):
        """Create logger with sample entries."""
        logger = AuditLogger()
        logger.log(event("created", actor_id="alice", timestamp=T0))
        logger.log(event("approved", actor_id="mgr-1", timestamp=T0 + timedelta(hours=1)))
        logger.log(
            event("rejected", request_id="APR-2", actor_id="dir-1", timestamp=T0 + timedelta(hours=2))
        )
        logger.log(
            event("expired", request_id="APR-3", actor_id=None, timestamp=T0 + timedelta(days=2))
        )
        return logger

    def test_query_newest_first(self, logger_with_entries):
        results = logger_with_entries.query(AuditQuery())

        assert [e.action for e in results] == ["expired", "rejected", "approved", "created"]

    def test_query_by_actor(self, logger_with_entries):
        results = logger_with_entries.query(AuditQuery(actor_id="alice"))

        assert len(results) == 1
        assert results[0].action == "created"

    def test_query_by_resource_and_action(self, logger_with_entries):
        results = logger_with_entries.query(
            AuditQuery(resource_id="APR-1", actions=["approved", "rejected"])
        )

        assert [e.action for e in results] == ["approved"]

    def test_query_time_range(self, logger_with_entries):
        results = logger_with_entries.query(
            AuditQuery(start_time=T0 + timedelta(minutes=30), end_time=T0 + timedelta(days=1))
        )

        assert {e.action for e in results} == {"approved", "rejected"}

    def test_query_pagination(self, logger_with_entries):
        results = logger_with_entries.query(AuditQuery(limit=2, offset=1))

        assert [e.action for e in results] == ["rejected", "approved"]

    def test_stats(self, logger_with_entries):
        stats = logger_with_entries.get_stats()

        assert stats.total_entries == 4
        assert stats.entries_by_action["approved"] == 1
        assert stats.unique_actors == 3
        assert stats.time_range_start == T0
        assert stats.time_range_end == T0 + timedelta(days=2)

    def test_stats_empty_range(self, logger_with_entries):
        stats = logger_with_entries.get_stats(start_time=T0 + timedelta(days=10))

        assert stats.total_entries == 0
        assert stats.time_range_start is None


class TestDatabaseAuditRecorder:
    """Tests for the database-backed audit recorder."""

    def setup_method(self):
        """Set up a recorder over a mocked session and repository."""
        self.session = AsyncMock()
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=self.session)
        context.__aexit__ = AsyncMock(return_value=False)
        self.recorder = DatabaseAuditRecorder(session_factory=MagicMock(return_value=context))
        self.repo = MagicMock()
        self.repo.create = AsyncMock()
        self.repo.get_by_resource = AsyncMock(return_value=[])
        self._patcher = patch(
            "procurement_approvals.services.audit.logger.AuditLogRepository",
            return_value=self.repo,
        )
        self._patcher.start()

    def teardown_method(self):
        self._patcher.stop()

    @pytest.mark.asyncio
    async def test_record_writes_row(self):
        await self.recorder.record(event("delegated", delegate_to="bob", level=2))

        row = self.repo.create.await_args.args[0]
        assert row["action"] == "approval.delegated"
        assert row["resource_type"] == "approval_request"
        assert row["resource_id"] == "APR-1"
        assert row["actor_id"] == "mgr-1"
        assert row["details"] == {"delegate_to": "bob", "level": 2}
        assert row["occurred_at"] == T0
        self.session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_record_propagates_database_errors(self):
        self.repo.create.side_effect = RuntimeError("connection reset")

        with pytest.raises(RuntimeError):
            await self.recorder.record(event("approved"))

        self.session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_trail_maps_rows(self):
        self.repo.get_by_resource.return_value = [
            SimpleNamespace(
                id=7,
                action="approval.expired",
                actor_id=None,
                resource_id="APR-1",
                details={"level": 2},
                occurred_at=T0,
            )
        ]

        trail = await self.recorder.get_trail("APR-1", limit=5)

        self.repo.get_by_resource.assert_awaited_once_with(
            "approval_request", "APR-1", limit=5
        )
        assert len(trail) == 1
        assert trail[0].entry_id == "7"
        assert trail[0].action == "expired"
        assert trail[0].severity == AuditSeverity.WARNING
        assert trail[0].actor_type == "system"
        assert trail[0].details == {"level": 2}


def test_get_audit_logger_singleton():
    """Test singleton accessor returns one instance."""
    assert get_audit_logger() is get_audit_logger()
