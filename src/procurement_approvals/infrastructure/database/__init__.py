"""Database infrastructure."""

from procurement_approvals.infrastructure.database.session import (
    get_async_engine,
    get_session_factory,
)

__all__ = ["get_async_engine", "get_session_factory"]
