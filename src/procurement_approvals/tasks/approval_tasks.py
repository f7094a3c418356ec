"""Approval workflow tasks.

Periodic expiry of approval requests whose deadline has passed.
"""

from typing import Any

from procurement_approvals.services.approval.workflow import get_approval_state_machine
from procurement_approvals.tasks.base import async_task, get_task_logger

logger = get_task_logger("approval_tasks")


@async_task(queue="normal")
async def expire_overdue_approvals(self) -> dict[str, Any]:
    """Expire every active approval past its deadline.

    Scheduled by Celery Beat every ``approval_sweep_interval_seconds``.

    @returns Sweep results
    """
    logger.info("Sweeping overdue approvals")

    state_machine = get_approval_state_machine()
    expired = await state_machine.sweep_expired()
    await state_machine.wait_for_side_effects()

    return {"status": "success", "expired": len(expired), "request_ids": expired}
