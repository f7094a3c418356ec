"""Create approval workflow tables

Revision ID: 001
Revises:
Create Date: 2025-01-01 10:00:00.000000

Creates the following tables:
- approval_requests: Approval aggregates with filter columns
- audit_logs: Approval audit trail
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ========================================
    # 1. approval_requests table
    # ========================================
    op.create_table(
        "approval_requests",
        # Primary key
        sa.Column("id", sa.String(50), nullable=False),
        # Optimistic concurrency
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        # Filter columns
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("priority", sa.String(10), nullable=False),
        sa.Column("department", sa.String(100), nullable=False),
        sa.Column("requested_by", sa.String(100), nullable=False),
        sa.Column("current_approver_id", sa.String(100), nullable=True),
        sa.Column("value", sa.Numeric(20, 2), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        # Serialized aggregate
        sa.Column("document", JSONB, nullable=False),
        # Timestamps
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        # Constraints
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("version >= 0", name="chk_approval_requests_version"),
        sa.CheckConstraint("value IS NULL OR value >= 0", name="chk_approval_requests_value"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'delegated', 'escalated', 'expired', 'recalled')",
            name="chk_approval_requests_status",
        ),
    )
    op.create_index("ix_approval_requests_type", "approval_requests", ["type"])
    op.create_index("ix_approval_requests_status", "approval_requests", ["status"])
    op.create_index("ix_approval_requests_department", "approval_requests", ["department"])
    op.create_index("ix_approval_requests_requested_by", "approval_requests", ["requested_by"])
    op.create_index(
        "ix_approval_requests_current_approver_id", "approval_requests", ["current_approver_id"]
    )
    op.create_index(
        "idx_approval_requests_status_expires", "approval_requests", ["status", "expires_at"]
    )

    # ========================================
    # 2. audit_logs table
    # ========================================
    op.create_table(
        "audit_logs",
        # Primary key
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        # Operation info
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.String(100), nullable=True),
        # Actor info
        sa.Column("actor_id", sa.String(100), nullable=True),
        # Event details
        sa.Column("details", JSONB, nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_resource_type", "audit_logs", ["resource_type"])
    op.create_index("ix_audit_logs_resource_id", "audit_logs", ["resource_id"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("approval_requests")
