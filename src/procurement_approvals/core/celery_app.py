"""Celery application configuration.

Provides task queue infrastructure with Redis broker for:
- Approval notifications (high priority)
- Periodic expiry sweeps (normal priority)
"""

from celery import Celery
from celery.signals import setup_logging
from kombu import Exchange, Queue

from procurement_approvals.core.config import get_settings
from procurement_approvals.core.logging import configure_logging

settings = get_settings()

# Create Celery application
celery_app = Celery(
    "procurement_approvals",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "procurement_approvals.tasks.approval_tasks",
        "procurement_approvals.tasks.notification_tasks",
    ],
)

default_exchange = Exchange("default", type="direct")
priority_exchange = Exchange("priority", type="direct")

# Priority: high (5) > normal (0)
celery_app.conf.task_queues = (
    # High: notifications to approvers
    Queue(
        "high",
        exchange=priority_exchange,
        routing_key="high",
        queue_arguments={"x-max-priority": 5},
    ),
    # Normal: sweeps and housekeeping
    Queue(
        "normal",
        exchange=default_exchange,
        routing_key="normal",
        queue_arguments={"x-max-priority": 0},
    ),
)

celery_app.conf.task_default_queue = "normal"
celery_app.conf.task_default_exchange = "default"
celery_app.conf.task_default_routing_key = "normal"

celery_app.conf.task_routes = {
    "procurement_approvals.tasks.notification_tasks.*": {"queue": "high"},
    "procurement_approvals.tasks.approval_tasks.*": {"queue": "normal"},
}

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task execution
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,  # Requeue if worker dies
    task_track_started=True,

    # Result backend
    result_expires=86400,

    # Worker configuration
    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,

    # Retry configuration
    task_default_retry_delay=60,
    task_max_retries=3,

    # Logging
    worker_hijack_root_logger=False,

    # Broker settings
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,
    broker_pool_limit=10,

    beat_scheduler="celery.beat:PersistentScheduler",
    beat_schedule_filename=".celery-beat-schedule",
)

# Celery Beat schedule (periodic tasks)
celery_app.conf.beat_schedule = {
    "expire-overdue-approvals": {
        "task": "procurement_approvals.tasks.approval_tasks.expire_overdue_approvals",
        "schedule": settings.approval_sweep_interval_seconds,
        "options": {"queue": "normal"},
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    """Use the application's log format in workers instead of Celery's."""
    configure_logging(settings)
