"""Base task class for workflow tasks.

Tasks are retried with exponential backoff only for failures that may
succeed on a later attempt: version conflicts, store timeouts, broken
database connections and unreachable webhooks. Any other workflow error
is final and fails the task at once.
"""

import asyncio
import functools
import logging
from typing import Any, Callable, TypeVar

import httpx
from celery import Task
from sqlalchemy.exc import DBAPIError

from procurement_approvals.core.celery_app import celery_app
from procurement_approvals.services.approval.exceptions import (
    ConflictError,
    StoreTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    ConflictError,
    StoreTimeoutError,
    DBAPIError,
    httpx.TransportError,
    ConnectionError,
)


class RetryableTask(Task):
    """Workflow task retried on transient failures."""

    abstract = True
    autoretry_for = TRANSIENT_ERRORS
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True
    max_retries = 3

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.error(
            "Task %s failed after %d retries",
            self.name,
            self.request.retries,
            exc_info=exc,
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "error_code": getattr(exc, "code", None),
            },
        )

    def on_retry(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.warning(
            "Task %s retrying (attempt %d/%d): %s",
            self.name,
            self.request.retries + 1,
            self.max_retries,
            exc,
            extra={"task_id": task_id, "task_name": self.name},
        )


def run_async(coro: Any) -> Any:
    """Run a coroutine on the worker's event loop, creating one if needed."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    if loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def async_task(
    *args: Any,
    bind: bool = True,
    base: type[Task] = RetryableTask,
    **kwargs: Any,
) -> Callable:
    """Register an ``async def`` as a Celery task.

    @param bind - Pass the task instance as the first argument
    @param base - Task class, ``RetryableTask`` unless overridden
    @returns Decorated task function
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @celery_app.task(*args, bind=bind, base=base, **kwargs)
        @functools.wraps(func)
        def wrapper(*task_args: Any, **task_kwargs: Any) -> T:
            return run_async(func(*task_args, **task_kwargs))

        return wrapper

    return decorator


def get_task_logger(task_name: str) -> logging.Logger:
    """Logger under the ``celery.task`` namespace."""
    return logging.getLogger(f"celery.task.{task_name}")
