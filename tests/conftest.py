"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(scope="session")
def app():
    """Create FastAPI application for testing."""
    from procurement_approvals.main import create_app

    return create_app()


@pytest.fixture(scope="session")
def client(app):
    """Create test client."""
    with TestClient(app) as client:
        yield client


@pytest.fixture(scope="function")
def settings():
    """Create settings instance for testing."""
    from procurement_approvals.core.config import Settings

    return Settings(environment="testing")


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop service singletons so tests never share state."""
    yield

    from procurement_approvals.services.approval.workflow import reset_approval_state_machine
    from procurement_approvals.services.audit.logger import reset_audit_logger
    from procurement_approvals.services.notification.service import reset_notification_service
    from procurement_approvals.services.organization.directory import reset_department_directory
    from procurement_approvals.services.rbac.rbac_service import reset_rbac_service

    reset_approval_state_machine()
    reset_audit_logger()
    reset_notification_service()
    reset_department_directory()
    reset_rbac_service()
