"""Notification delivery for approval workflow events."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from procurement_approvals.core.config import Settings, get_settings
from procurement_approvals.services.notification.schemas import (
    ChannelConfig,
    NotificationChannel,
    NotificationMessage,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    SlackConfig,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Sends approval notifications to the configured channels.

    The log channel is always available; Slack and webhook channels are
    used once configured. Delivery failures are recorded per channel and
    never raised to the caller.
    """

    def __init__(self, timeout: float = 15.0):
        """Initialize notification service.

        Args:
            timeout: HTTP timeout per delivery in seconds
        """
        self._channels: dict[NotificationChannel, ChannelConfig] = {}
        self._records: dict[str, NotificationRecord] = {}
        self._http_client: httpx.AsyncClient | None = None
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "NotificationService":
        """Build a service with channels taken from settings."""
        settings = settings or get_settings()
        service = cls(timeout=settings.approval_notification_timeout_seconds)
        if settings.slack_webhook_url:
            service.configure_channel(
                SlackConfig(
                    endpoint=settings.slack_webhook_url,
                    mention_on_critical=settings.slack_mention_on_critical,
                )
            )
        if settings.notification_webhook_url:
            service.configure_channel(
                ChannelConfig(
                    channel=NotificationChannel.WEBHOOK,
                    endpoint=settings.notification_webhook_url,
                    api_key=settings.notification_webhook_api_key,
                )
            )
        return service

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def configure_channel(self, config: ChannelConfig) -> None:
        """Configure a notification channel.

        Args:
            config: Channel configuration
        """
        self._channels[config.channel] = config
        logger.info(f"Configured notification channel: {config.channel.value}")

    def is_channel_configured(self, channel: NotificationChannel) -> bool:
        config = self._channels.get(channel)
        return config is not None and config.enabled

    def _active_channels(self) -> list[NotificationChannel]:
        extra = [
            c for c in self._channels
            if c != NotificationChannel.LOG and self.is_channel_configured(c)
        ]
        return [NotificationChannel.LOG, *extra]

    async def notify(
        self, recipient_id: str, event_type: str, payload: dict[str, Any]
    ) -> list[NotificationRecord]:
        """Deliver one workflow event to a recipient.

        Args:
            recipient_id: Recipient user ID
            event_type: Workflow event type
            payload: Event data including ``title``, ``message`` and ``priority``

        Returns:
            Delivery records, one per channel
        """
        try:
            priority = NotificationPriority(payload.get("priority", "medium"))
        except ValueError:
            priority = NotificationPriority.MEDIUM

        message = NotificationMessage(
            message_id=f"MSG-{uuid.uuid4().hex[:8].upper()}",
            recipient_id=recipient_id,
            event_type=event_type,
            title=payload.get("title", "Approval Notification"),
            body=payload.get("message", ""),
            priority=priority,
            channels=self._active_channels(),
            payload=payload,
            created_at=datetime.now(timezone.utc),
        )
        return await self.send_notification(message)

    async def send_notification(
        self, message: NotificationMessage
    ) -> list[NotificationRecord]:
        """Send a message to each of its channels.

        Args:
            message: Notification message

        Returns:
            List of delivery records
        """
        records = []
        for channel in message.channels:
            record = await self._send_to_channel(message, channel)
            records.append(record)
            self._records[record.record_id] = record
        return records

    async def _send_to_channel(
        self,
        message: NotificationMessage,
        channel: NotificationChannel,
    ) -> NotificationRecord:
        record = NotificationRecord(
            record_id=f"NTF-{uuid.uuid4().hex[:8].upper()}",
            message_id=message.message_id,
            recipient_id=message.recipient_id,
            channel=channel,
            status=NotificationStatus.PENDING,
        )

        try:
            if channel == NotificationChannel.SLACK:
                await self._send_slack(message, self._channels[channel])
            elif channel == NotificationChannel.WEBHOOK:
                await self._send_webhook(message, self._channels[channel])
            else:
                self._send_log(message)

            record.status = NotificationStatus.SENT
            record.sent_at = datetime.now(timezone.utc)

        except (httpx.HTTPError, KeyError) as e:
            record.status = NotificationStatus.FAILED
            record.error = str(e)
            logger.error(
                f"Failed to send {message.event_type} to {message.recipient_id} "
                f"via {channel.value}: {e}"
            )

        return record

    async def _send_slack(self, message: NotificationMessage, config: ChannelConfig) -> None:
        """Post to a Slack incoming webhook.

        Args:
            message: Notification message
            config: Slack configuration
        """
        mention = ""
        if (
            isinstance(config, SlackConfig)
            and config.mention_on_critical
            and message.priority == NotificationPriority.CRITICAL
        ):
            mention = "<!channel> "

        payload = {
            "attachments": [
                {
                    "color": self._get_slack_color(message.priority),
                    "title": f"{mention}{message.title}",
                    "text": message.body,
                    "title_link": message.payload.get("action_url"),
                    "fields": [
                        {"title": "Recipient", "value": message.recipient_id, "short": True},
                        {"title": "Priority", "value": message.priority.value, "short": True},
                    ],
                    "footer": "Procurement Approvals",
                }
            ]
        }

        client = await self._get_http_client()
        response = await client.post(config.endpoint, json=payload)
        response.raise_for_status()

    def _get_slack_color(self, priority: NotificationPriority) -> str:
        return {
            NotificationPriority.LOW: "#36a64f",  # Green
            NotificationPriority.MEDIUM: "#f2c744",  # Yellow
            NotificationPriority.HIGH: "#ff6b35",  # Orange
            NotificationPriority.CRITICAL: "#dc3545",  # Red
        }[priority]

    async def _send_webhook(self, message: NotificationMessage, config: ChannelConfig) -> None:
        """Post the message to a generic webhook.

        Args:
            message: Notification message
            config: Webhook configuration
        """
        headers = {}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        client = await self._get_http_client()
        response = await client.post(
            config.endpoint,
            json=message.model_dump(mode="json"),
            headers=headers,
        )
        response.raise_for_status()

    def _send_log(self, message: NotificationMessage) -> None:
        logger.info(
            f"[NOTIFY] {message.recipient_id} {message.event_type}: "
            f"{message.title} - {message.body} (Priority: {message.priority.value})"
        )

    def get_delivery_records(
        self,
        recipient_id: str | None = None,
        status: NotificationStatus | None = None,
        limit: int = 100,
    ) -> list[NotificationRecord]:
        """Get notification delivery records.

        Args:
            recipient_id: Filter by recipient
            status: Filter by status
            limit: Max records to return

        Returns:
            List of records
        """
        records = list(self._records.values())
        if recipient_id:
            records = [r for r in records if r.recipient_id == recipient_id]
        if status:
            records = [r for r in records if r.status == status]
        return records[-limit:]

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class QueuedNotificationDispatcher:
    """Hands notifications to the Celery worker instead of sending inline."""

    async def notify(
        self, recipient_id: str, event_type: str, payload: dict[str, Any]
    ) -> None:
        from procurement_approvals.tasks.notification_tasks import (
            send_approval_notification,
        )

        send_approval_notification.delay(recipient_id, event_type, payload)
        logger.debug(f"Queued {event_type} notification for {recipient_id}")


# Singleton instance
_notification_service: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Get or create notification service singleton."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService.from_settings()
    return _notification_service


def reset_notification_service() -> None:
    """Reset notification service singleton (for testing)."""
    global _notification_service
    _notification_service = None
