"""Approval request model."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from procurement_approvals.models.base import Base, TimestampMixin


class ApprovalRequestRecord(Base, TimestampMixin):
    """Approval request table.

    The full aggregate lives in ``document``; scalar columns mirror the
    fields used for filtering and are rewritten on every commit.
    """

    __tablename__ = "approval_requests"

    # Primary key
    id: Mapped[str] = mapped_column(String(50), primary_key=True)

    # Optimistic concurrency
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Filter columns
    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(10), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    requested_by: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    current_approver_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, index=True
    )
    value: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 2), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Serialized aggregate
    document: Mapped[dict] = mapped_column(JSONB, nullable=False)

    __table_args__ = (
        CheckConstraint("version >= 0", name="chk_approval_requests_version"),
        CheckConstraint(
            "value IS NULL OR value >= 0", name="chk_approval_requests_value"
        ),
        Index("idx_approval_requests_status_expires", "status", "expires_at"),
    )
