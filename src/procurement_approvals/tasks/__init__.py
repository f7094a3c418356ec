"""Celery tasks for background processing.

This module provides async task execution for:
- Approval expiry sweeps
- Notification delivery
"""

from procurement_approvals.core.celery_app import celery_app

__all__ = ["celery_app"]
