"""Notification delivery tasks.

Workflow notifications are queued by the API process and delivered here
through the configured channels (Slack, webhook, log).
"""

from typing import Any

from procurement_approvals.services.notification.service import get_notification_service
from procurement_approvals.tasks.base import async_task, get_task_logger

logger = get_task_logger("notification_tasks")


@async_task(queue="high", max_retries=5)
async def send_approval_notification(
    self,
    recipient_id: str,
    event_type: str,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Deliver one approval workflow notification.

    @param recipient_id - User to notify
    @param event_type - Workflow event, e.g. ``approval_required``
    @param payload - Message fields built by the workflow
    @returns Delivery result per channel
    """
    logger.info(
        "Sending approval notification",
        extra={
            "recipient_id": recipient_id,
            "type": event_type,
            "request_id": payload.get("request_id"),
        },
    )

    service = get_notification_service()
    records = await service.notify(recipient_id, event_type, payload)

    return {
        "status": "success",
        "deliveries": {r.channel.value: r.status.value for r in records},
    }
