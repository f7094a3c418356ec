"""Tests for Celery tasks and worker configuration."""

from unittest.mock import AsyncMock, MagicMock, patch

from procurement_approvals.core.celery_app import celery_app
from procurement_approvals.services.approval.exceptions import (
    ConflictError,
    NotFoundError,
    StoreTimeoutError,
)
from procurement_approvals.services.notification import (
    NotificationChannel,
    NotificationRecord,
    NotificationStatus,
)
from procurement_approvals.tasks.approval_tasks import expire_overdue_approvals
from procurement_approvals.tasks.base import RetryableTask
from procurement_approvals.tasks.notification_tasks import send_approval_notification


class TestCeleryConfiguration:
    """Test queue and schedule configuration."""

    def test_queues(self):
        names = {queue.name for queue in celery_app.conf.task_queues}

        assert names == {"high", "normal"}
        assert celery_app.conf.task_default_queue == "normal"

    def test_beat_schedule(self):
        entry = celery_app.conf.beat_schedule["expire-overdue-approvals"]

        assert entry["task"] == "procurement_approvals.tasks.approval_tasks.expire_overdue_approvals"
        assert entry["options"] == {"queue": "normal"}

    def test_tasks_registered(self):
        assert expire_overdue_approvals.name in celery_app.tasks
        assert send_approval_notification.name in celery_app.tasks
        assert send_approval_notification.max_retries == 5

    def test_only_transient_errors_are_retried(self):
        assert issubclass(ConflictError, RetryableTask.autoretry_for)
        assert issubclass(StoreTimeoutError, RetryableTask.autoretry_for)
        assert not issubclass(NotFoundError, RetryableTask.autoretry_for)


class TestExpireOverdueApprovals:
    """Test the periodic expiry sweep."""

    def test_sweep(self):
        state_machine = MagicMock()
        state_machine.sweep_expired = AsyncMock(return_value=["APR-1", "APR-2"])
        state_machine.wait_for_side_effects = AsyncMock()

        with patch(
            "procurement_approvals.tasks.approval_tasks.get_approval_state_machine",
            return_value=state_machine,
        ):
            result = expire_overdue_approvals()

        assert result == {"status": "success", "expired": 2, "request_ids": ["APR-1", "APR-2"]}
        state_machine.wait_for_side_effects.assert_awaited_once()

    def test_empty_sweep(self):
        state_machine = MagicMock()
        state_machine.sweep_expired = AsyncMock(return_value=[])
        state_machine.wait_for_side_effects = AsyncMock()

        with patch(
            "procurement_approvals.tasks.approval_tasks.get_approval_state_machine",
            return_value=state_machine,
        ):
            result = expire_overdue_approvals()

        assert result["expired"] == 0


class TestSendApprovalNotification:
    """Test notification delivery task."""

    def test_delivery_result_per_channel(self):
        service = MagicMock()
        service.notify = AsyncMock(
            return_value=[
                NotificationRecord(
                    record_id="NTF-1",
                    message_id="MSG-1",
                    recipient_id="mgr-1",
                    channel=NotificationChannel.LOG,
                    status=NotificationStatus.SENT,
                ),
                NotificationRecord(
                    record_id="NTF-2",
                    message_id="MSG-1",
                    recipient_id="mgr-1",
                    channel=NotificationChannel.SLACK,
                    status=NotificationStatus.FAILED,
                    error="503",
                ),
            ]
        )

        with patch(
            "procurement_approvals.tasks.notification_tasks.get_notification_service",
            return_value=service,
        ):
            result = send_approval_notification(
                "mgr-1", "approval_required", {"request_id": "APR-1"}
            )

        assert result == {"status": "success", "deliveries": {"log": "sent", "slack": "failed"}}
        service.notify.assert_awaited_once_with(
            "mgr-1", "approval_required", {"request_id": "APR-1"}
        )
