"""Department directory backed by a static organization chart."""

import logging
from enum import IntEnum
from pathlib import Path

from pydantic import BaseModel, Field

from procurement_approvals.core.config import Settings, get_settings
from procurement_approvals.services.approval.schemas import (
    ApprovalRequest,
    ApprovalType,
    ApproverRole,
    EscalationTarget,
)
from procurement_approvals.services.rbac.definitions import SystemRole

logger = logging.getLogger(__name__)


class OrganizationLevel(IntEnum):
    """Seniority of an approval authority."""

    DEPARTMENT = 1
    MANAGER = 2
    DIRECTOR = 3
    VP = 4
    CEO = 5
    BOARD = 6


ROLE_LEVELS: dict[str, OrganizationLevel] = {
    ApproverRole.DEPARTMENT_MANAGER.value: OrganizationLevel.MANAGER,
    ApproverRole.DEPARTMENT_DIRECTOR.value: OrganizationLevel.DIRECTOR,
    ApproverRole.VP.value: OrganizationLevel.VP,
    ApproverRole.CEO.value: OrganizationLevel.CEO,
}


class MandatoryApprover(BaseModel):
    """Approver required by a department ahead of the value-based chain."""

    user_id: str
    role: str = Field(default="department_approver")
    types: list[ApprovalType] | None = Field(
        None, description="Approval types it applies to; None for all"
    )


class DepartmentConfig(BaseModel):
    """Approvers and members of a department."""

    manager: str | None = None
    director: str | None = None
    vp: str | None = None
    mandatory_approvers: list[MandatoryApprover] = Field(default_factory=list)
    members: list[str] = Field(default_factory=list)


class OrganizationChart(BaseModel):
    """Whole organization as loaded from configuration."""

    ceo: str | None = None
    executive_department: str = "executive"
    board: str | None = None
    departments: dict[str, DepartmentConfig] = Field(default_factory=dict)
    user_roles: dict[str, list[SystemRole]] = Field(
        default_factory=dict, description="System roles per user"
    )


class StaticDepartmentDirectory:
    """Department lookups over an in-memory organization chart.

    Escalation walks up the department ladder (director, VP, CEO, board)
    from the seniority of whoever currently holds authority, skipping
    vacant positions and the current holder.
    """

    def __init__(self, chart: OrganizationChart | None = None):
        self.chart = chart or OrganizationChart()
        self._user_departments = self._index_users()

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticDepartmentDirectory":
        """Load the organization chart from a JSON file."""
        chart = OrganizationChart.model_validate_json(Path(path).read_text())
        logger.info(
            f"Loaded organization chart from {path} "
            f"({len(chart.departments)} departments)"
        )
        return cls(chart)

    def _index_users(self) -> dict[str, str]:
        index: dict[str, str] = {}
        for name, dept in self.chart.departments.items():
            users = [dept.manager, dept.director, dept.vp, *dept.members]
            users.extend(a.user_id for a in dept.mandatory_approvers)
            for user_id in users:
                if user_id:
                    index.setdefault(user_id, name)
        for user_id in (self.chart.ceo, self.chart.board):
            if user_id:
                index.setdefault(user_id, self.chart.executive_department)
        return index

    def _department(self, department: str) -> DepartmentConfig:
        return self.chart.departments.get(department) or DepartmentConfig()

    def manager_of(self, department: str) -> str | None:
        return self._department(department).manager

    def director_of(self, department: str) -> str | None:
        return self._department(department).director

    def vp_of(self, department: str) -> str | None:
        return self._department(department).vp

    def ceo(self) -> str | None:
        return self.chart.ceo

    def department_of(self, user_id: str) -> str | None:
        return self._user_departments.get(user_id)

    def mandatory_approvers(
        self, department: str, approval_type: ApprovalType
    ) -> list[tuple[str, str]]:
        return [
            (a.user_id, a.role)
            for a in self._department(department).mandatory_approvers
            if a.types is None or approval_type in a.types
        ]

    def escalation_target_for(self, request: ApprovalRequest) -> EscalationTarget | None:
        """Find the next authority above whoever currently holds the request.

        Args:
            request: Approval request being escalated

        Returns:
            Escalation target, or None when nobody senior is available
        """
        current = request.current_approver
        if current.is_escalation and request.escalation_history:
            floor = request.escalation_history[-1].to_level
        else:
            floor = ROLE_LEVELS.get(request.current_step.role, OrganizationLevel.DEPARTMENT)

        ladder = [
            (self.director_of(request.department), OrganizationLevel.DIRECTOR),
            (self.vp_of(request.department), OrganizationLevel.VP),
            (self.chart.ceo, OrganizationLevel.CEO),
            (self.chart.board, OrganizationLevel.BOARD),
        ]
        for user_id, level in ladder:
            if user_id and level > floor and user_id != current.user_id:
                return EscalationTarget(user_id=user_id, level=int(level))
        return None


# Service factory
_directory: StaticDepartmentDirectory | None = None


def get_department_directory(settings: Settings | None = None) -> StaticDepartmentDirectory:
    """Get or create the department directory from settings."""
    global _directory
    if _directory is None:
        settings = settings or get_settings()
        if settings.organization_chart_path:
            _directory = StaticDepartmentDirectory.from_file(settings.organization_chart_path)
        else:
            logger.warning("No organization chart configured; directory is empty")
            _directory = StaticDepartmentDirectory()
    return _directory


def reset_department_directory() -> None:
    """Reset directory singleton (for testing)."""
    global _directory
    _directory = None
