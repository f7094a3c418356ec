"""Tests for approval chain construction and expiry policy."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from procurement_approvals.services.approval import (
    ApprovalPriority,
    ApprovalType,
    ChainBuilder,
    ExpiryPolicy,
)
from procurement_approvals.services.approval.schemas import StepStatus
from procurement_approvals.services.organization import (
    OrganizationChart,
    StaticDepartmentDirectory,
)

NOW = datetime(2025, 6, 2, 8, 30, tzinfo=timezone.utc)


def make_directory() -> StaticDepartmentDirectory:
    chart = OrganizationChart.model_validate(
        {
            "ceo": "ceo-1",
            "departments": {
                "it": {
                    "manager": "mgr-it",
                    "director": "dir-it",
                    "vp": "vp-tech",
                    "mandatory_approvers": [
                        {"user_id": "sec-1", "role": "security_officer"},
                        {
                            "user_id": "legal-1",
                            "role": "legal_counsel",
                            "types": ["contract_execution", "award_decision"],
                        },
                    ],
                },
                "facilities": {"manager": "mgr-fac", "director": "dir-fac"},
            },
        }
    )
    return StaticDepartmentDirectory(chart)


class TestChainBuilder:
    """Tests for ChainBuilder."""

    def setup_method(self):
        """Set up test fixtures."""
        self.builder = ChainBuilder(make_directory())

    @pytest.mark.parametrize(
        "value,expected_roles",
        [
            ("50000", ["department_manager", "department_director"]),
            ("99999.99", ["department_manager", "department_director"]),
            ("100000", ["department_manager", "department_director", "vp"]),
            ("999999", ["department_manager", "department_director", "vp"]),
            ("1000000", ["department_manager", "department_director", "vp", "ceo"]),
        ],
    )
    def test_budget_chain_scales_with_value(self, value, expected_roles):
        """Test VP and CEO levels are added at their thresholds."""
        chain = self.builder.build_chain(
            ApprovalType.BUDGET_APPROVAL, Decimal(value), "facilities", NOW
        )

        assert [s.role for s in chain] == expected_roles

    def test_procurement_plan_is_value_scaled(self):
        chain = self.builder.build_chain(
            ApprovalType.PROCUREMENT_PLAN, Decimal("250000"), "facilities", NOW
        )

        assert [s.role for s in chain][-1] == "vp"

    def test_other_types_use_standard_chain(self):
        """Test non-scaled types stop at the director regardless of value."""
        chain = self.builder.build_chain(
            ApprovalType.VENDOR_SELECTION, Decimal("5000000"), "facilities", NOW
        )

        assert [s.approver_id for s in chain] == ["mgr-fac", "dir-fac"]

    def test_missing_value_counts_as_zero(self):
        chain = self.builder.build_chain(
            ApprovalType.PROCUREMENT_PLAN, None, "facilities", NOW
        )

        assert len(chain) == 2

    def test_mandatory_approvers_precede_value_chain(self):
        """Test department mandatory approvers come first in configured order."""
        chain = self.builder.build_chain(
            ApprovalType.CONTRACT_EXECUTION, Decimal("10"), "it", NOW
        )

        assert [s.approver_id for s in chain] == ["sec-1", "legal-1", "mgr-it", "dir-it"]
        assert [s.role for s in chain[:2]] == ["security_officer", "legal_counsel"]

    def test_mandatory_approvers_filtered_by_type(self):
        chain = self.builder.build_chain(
            ApprovalType.DOCUMENT_APPROVAL, None, "it", NOW
        )

        assert [s.approver_id for s in chain] == ["sec-1", "mgr-it", "dir-it"]

    def test_levels_are_contiguous_and_only_first_assigned(self):
        chain = self.builder.build_chain(
            ApprovalType.BUDGET_APPROVAL, Decimal("2000000"), "it", NOW
        )

        assert [s.level for s in chain] == list(range(1, len(chain) + 1))
        assert chain[0].assigned_at == NOW
        assert all(s.assigned_at is None for s in chain[1:])
        assert all(s.status == StepStatus.PENDING for s in chain)

    def test_unknown_department_leaves_approvers_unassigned(self):
        chain = self.builder.build_chain(
            ApprovalType.DOCUMENT_APPROVAL, None, "unknown", NOW
        )

        assert [s.approver_id for s in chain] == [None, None]

    def test_describe_preview(self):
        """Test preview combines chain, priority and expiry window."""
        preview = self.builder.describe(
            ApprovalType.CONTRACT_EXECUTION, Decimal("750000"), "facilities"
        )

        assert preview.total_levels == 2
        assert preview.priority == ApprovalPriority.HIGH
        assert preview.expiry_days == 3
        assert preview.workflow_type == "sequential"


class TestExpiryPolicy:
    """Tests for ExpiryPolicy."""

    def setup_method(self):
        """Set up test fixtures."""
        self.policy = ExpiryPolicy()

    @pytest.mark.parametrize(
        "value,approval_type,urgent,emergency,expected",
        [
            (None, ApprovalType.DOCUMENT_APPROVAL, False, False, ApprovalPriority.MEDIUM),
            ("499999", ApprovalType.BUDGET_APPROVAL, False, False, ApprovalPriority.MEDIUM),
            ("500000", ApprovalType.BUDGET_APPROVAL, False, False, ApprovalPriority.HIGH),
            ("1000000", ApprovalType.BUDGET_APPROVAL, False, False, ApprovalPriority.CRITICAL),
            (None, ApprovalType.POLICY_EXCEPTION, False, False, ApprovalPriority.HIGH),
            (None, ApprovalType.RFQ_CREATION, True, False, ApprovalPriority.HIGH),
            (None, ApprovalType.RFQ_CREATION, False, True, ApprovalPriority.CRITICAL),
            ("600000", ApprovalType.POLICY_EXCEPTION, True, True, ApprovalPriority.CRITICAL),
        ],
    )
    def test_priority(self, value, approval_type, urgent, emergency, expected):
        amount = Decimal(value) if value is not None else None

        assert self.policy.priority(amount, approval_type, urgent, emergency) == expected

    def test_expiry_uses_priority_window(self):
        """Test medium priority documents get seven days."""
        expires = self.policy.expiry(
            ApprovalType.DOCUMENT_APPROVAL, ApprovalPriority.MEDIUM, NOW
        )

        assert expires == NOW + timedelta(days=7)

    def test_expiry_capped_by_type(self):
        """Test the type limit wins when shorter than the priority window."""
        assert self.policy.window_days(
            ApprovalType.POLICY_EXCEPTION, ApprovalPriority.HIGH
        ) == 2
        assert self.policy.window_days(
            ApprovalType.BUDGET_APPROVAL, ApprovalPriority.MEDIUM
        ) == 5
        assert self.policy.window_days(
            ApprovalType.CONTRACT_EXECUTION, ApprovalPriority.LOW
        ) == 10

    def test_critical_expires_in_one_day(self):
        expires = self.policy.expiry(
            ApprovalType.BUDGET_APPROVAL, ApprovalPriority.CRITICAL, NOW
        )

        assert expires == NOW + timedelta(days=1)

    def test_expiry_defaults_to_current_time(self):
        before = datetime.now(timezone.utc)
        expires = self.policy.expiry(ApprovalType.RFQ_CREATION, ApprovalPriority.LOW)

        assert before + timedelta(days=14) <= expires
        assert expires <= datetime.now(timezone.utc) + timedelta(days=14)
