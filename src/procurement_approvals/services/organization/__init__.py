"""Organization structure: departments, approvers and escalation ladder."""

from procurement_approvals.services.organization.directory import (
    OrganizationChart,
    OrganizationLevel,
    StaticDepartmentDirectory,
    get_department_directory,
)

__all__ = [
    "OrganizationChart",
    "OrganizationLevel",
    "StaticDepartmentDirectory",
    "get_department_directory",
]
