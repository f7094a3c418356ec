"""Test cases for FastAPI application."""

import json
import logging
import sys

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from procurement_approvals.api.v1.endpoints.approvals import approval_error_handler
from procurement_approvals.core.config import Settings
from procurement_approvals.core.logging import JSONFormatter, configure_logging
from procurement_approvals.services.approval import ApprovalError
from procurement_approvals.services.approval.exceptions import (
    AuditRecordingError,
    NotFoundError,
)


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_check_returns_ok(self, client: TestClient):
        """Test that health endpoint returns healthy status."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    def test_health_check_includes_timestamp(self, client: TestClient):
        """Test that health endpoint includes timestamp."""
        response = client.get("/health")

        assert response.status_code == 200
        assert "timestamp" in response.json()


class TestRoutes:
    """Test route registration."""

    def test_approval_routes_registered(self, app: FastAPI):
        paths = {route.path for route in app.routes}

        assert "/api/v1/approvals" in paths
        assert "/api/v1/approvals/{request_id}/approve" in paths
        assert "/api/v1/approvals/{request_id}/escalate" in paths
        assert "/api/v1/approvals/sweep-expired" in paths


class TestCORSConfiguration:
    """Test CORS middleware configuration."""

    def test_cors_preflight_allowed_origin(self, client: TestClient):
        """Test that CORS headers are properly set."""
        response = client.options(
            "/health",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


class TestApprovalErrorHandler:
    """Test mapping of workflow errors to HTTP responses."""

    def setup_method(self):
        """Set up a bare app raising workflow errors."""
        app = FastAPI()
        app.add_exception_handler(ApprovalError, approval_error_handler)

        @app.get("/missing")
        async def missing():
            raise NotFoundError("Approval request APR-404 not found")

        @app.get("/audit-down")
        async def audit_down():
            raise AuditRecordingError("Audit store unavailable")

        self.client = TestClient(app)

    def test_not_found(self):
        response = self.client.get("/missing")

        assert response.status_code == 404
        assert response.json() == {
            "code": "NOT_FOUND",
            "message": "Approval request APR-404 not found",
            "retryable": False,
        }

    def test_server_side_failure_is_logged(self, caplog):
        with caplog.at_level(logging.ERROR):
            response = self.client.get("/audit-down")

        assert response.status_code == 500
        assert response.json()["code"] == "AUDIT_FAILED"
        assert "AUDIT_FAILED" in caplog.text


class TestLogging:
    """Test log formatting."""

    def make_record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            "procurement_approvals.test", logging.INFO, __file__, 1, "approved %s", ("APR-1",), None
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_fields(self):
        line = JSONFormatter().format(self.make_record(request_id="APR-1", level_no=2))
        data = json.loads(line)

        assert data["level"] == "INFO"
        assert data["logger"] == "procurement_approvals.test"
        assert data["message"] == "approved APR-1"
        assert data["request_id"] == "APR-1"
        assert data["level_no"] == 2
        assert "ts" in data

    def test_json_formatter_exception_code(self):
        try:
            raise NotFoundError("gone")
        except NotFoundError:
            record = self.make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert data["exc_type"] == "NotFoundError"
        assert data["exc_code"] == "NOT_FOUND"
        assert "Traceback" in data["traceback"]

    @pytest.mark.parametrize("log_format,formatter", [("json", JSONFormatter), ("console", logging.Formatter)])
    def test_configure_logging_replaces_handler(self, log_format, formatter):
        root = logging.getLogger()
        previous_level = root.level
        settings = Settings(environment="testing", log_format=log_format, log_level="warning")
        try:
            configure_logging(settings)
            configure_logging(settings)

            installed = [h for h in root.handlers if getattr(h, "_procurement_handler", False)]
            assert len(installed) == 1
            assert type(installed[0].formatter) is formatter
            assert root.level == logging.WARNING
        finally:
            for handler in [h for h in root.handlers if getattr(h, "_procurement_handler", False)]:
                root.removeHandler(handler)
            root.setLevel(previous_level)
