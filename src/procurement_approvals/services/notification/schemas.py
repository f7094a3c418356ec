"""Schemas for approval notification delivery."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class NotificationChannel(str, Enum):
    """Delivery channels."""

    SLACK = "slack"
    WEBHOOK = "webhook"
    LOG = "log"  # Development and testing


class NotificationPriority(str, Enum):
    """Notification priority, mirrors approval priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationStatus(str, Enum):
    """Delivery status."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ChannelConfig(BaseModel):
    """Configuration of a delivery channel."""

    channel: NotificationChannel = Field(..., description="Channel type")
    enabled: bool = Field(default=True, description="Is channel enabled")
    endpoint: str = Field(..., description="Channel endpoint URL")
    api_key: str | None = Field(default=None, description="Bearer token if required")


class SlackConfig(ChannelConfig):
    """Slack incoming-webhook configuration."""

    channel: NotificationChannel = NotificationChannel.SLACK
    mention_on_critical: bool = Field(
        default=True, description="Mention @channel on critical notifications"
    )


class NotificationMessage(BaseModel):
    """Notification addressed to one recipient."""

    message_id: str = Field(..., description="Unique message ID")
    recipient_id: str = Field(..., description="Recipient user ID")
    event_type: str = Field(..., description="Workflow event type")
    title: str = Field(..., description="Message title")
    body: str = Field(..., description="Message body")
    priority: NotificationPriority = Field(..., description="Priority level")
    channels: list[NotificationChannel] = Field(..., description="Target channels")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event data")
    created_at: datetime = Field(..., description="Creation time")


class NotificationRecord(BaseModel):
    """Delivery record per channel."""

    record_id: str = Field(..., description="Record ID")
    message_id: str = Field(..., description="Source message ID")
    recipient_id: str = Field(..., description="Recipient user ID")
    channel: NotificationChannel = Field(..., description="Channel used")
    status: NotificationStatus = Field(..., description="Delivery status")
    sent_at: datetime | None = Field(None, description="Send time")
    error: str | None = Field(None, description="Error if failed")
