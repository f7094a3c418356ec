"""Notification delivery service module."""

from procurement_approvals.services.notification.schemas import (
    ChannelConfig,
    NotificationChannel,
    NotificationMessage,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    SlackConfig,
)
from procurement_approvals.services.notification.service import (
    NotificationService,
    QueuedNotificationDispatcher,
    get_notification_service,
)

__all__ = [
    "ChannelConfig",
    "NotificationChannel",
    "NotificationMessage",
    "NotificationPriority",
    "NotificationRecord",
    "NotificationStatus",
    "SlackConfig",
    "NotificationService",
    "QueuedNotificationDispatcher",
    "get_notification_service",
]
