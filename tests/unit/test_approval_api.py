"""Tests for approval API endpoints."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from procurement_approvals.core.config import Settings
from procurement_approvals.main import create_app
from procurement_approvals.services.approval import (
    ApprovalStateMachine,
    ConflictError,
    get_approval_state_machine,
)
from procurement_approvals.services.approval.store import InMemoryApprovalStore
from procurement_approvals.services.audit import AuditLogger, get_audit_recorder
from procurement_approvals.services.audit.schemas import AuditEntry
from procurement_approvals.services.auth import JWTService, get_jwt_service
from procurement_approvals.services.organization import (
    OrganizationChart,
    StaticDepartmentDirectory,
)
from procurement_approvals.services.rbac.rbac_service import RBACService, get_rbac_service

BASE = "/api/v1/approvals"


class MutableClock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class QuietNotifier:
    async def notify(self, recipient_id, event_type, payload):
        return None


class AlwaysConflictingStore(InMemoryApprovalStore):
    async def commit(self, request_id, expected_version, mutate):
        raise ConflictError(request_id, expected_version)


CHART = OrganizationChart.model_validate(
    {
        "ceo": "ceo-1",
        "departments": {
            "procurement": {
                "manager": "mgr-proc",
                "director": "dir-proc",
                "vp": "vp-ops",
                "members": ["alice", "bob", "viewer-1"],
            },
        },
        "user_roles": {
            "alice": ["procurement_officer"],
            "mgr-proc": ["approver"],
            "dir-proc": ["senior_approver"],
            "bob": ["approver"],
            "viewer-1": ["viewer"],
        },
    }
)

PLAN = {
    "type": "procurement_plan",
    "title": "Printer fleet renewal",
    "description": "Replace 40 printers",
    "department": "procurement",
    "value": "120000",
    "procurement_id": "PRC-77",
}


class TestApprovalAPIEndpoints:
    """Tests for approval HTTP endpoints."""

    def setup_method(self):
        """Set up app with an in-memory state machine and token signer."""
        self.settings = Settings(environment="testing")
        self.clock = MutableClock()
        self.rbac = RBACService(settings=self.settings, user_roles=CHART.user_roles)
        self.store = InMemoryApprovalStore()
        self.state_machine = ApprovalStateMachine(
            store=self.store,
            audit=AuditLogger(),
            notifier=QuietNotifier(),
            directory=StaticDepartmentDirectory(CHART),
            permissions=self.rbac,
            settings=self.settings,
            clock=self.clock,
        )
        self.jwt = JWTService(secret_key="test-secret-key-for-testing-only")

        self.app = create_app()
        self.app.dependency_overrides[get_approval_state_machine] = lambda: self.state_machine
        self.app.dependency_overrides[get_rbac_service] = lambda: self.rbac
        self.app.dependency_overrides[get_jwt_service] = lambda: self.jwt
        self.client = TestClient(self.app)
        self.client.__enter__()

    def teardown_method(self):
        self.client.__exit__(None, None, None)

    def headers(self, user_id: str, **claims) -> dict[str, str]:
        token = self.jwt.create_access_token(subject=user_id, department="procurement", **claims)
        return {"Authorization": f"Bearer {token}"}

    def submit(self, **overrides) -> dict:
        response = self.client.post(
            BASE, json={**PLAN, **overrides}, headers=self.headers("alice")
        )
        assert response.status_code == 201, response.text
        return response.json()

    def test_requires_authentication(self):
        response = self.client.get(BASE)

        assert response.status_code == 401

    def test_rejects_invalid_token(self):
        response = self.client.get(BASE, headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"

    def test_submit_request(self):
        """Test submission returns the created aggregate."""
        body = self.submit()

        assert body["id"].startswith("APR-")
        assert body["status"] == "pending"
        assert body["current_level"] == 1
        assert body["total_levels"] == 3
        assert body["requested_by"] == "alice"
        assert body["approval_chain"][0]["approver_id"] == "mgr-proc"

    def test_submit_requires_create_permission(self):
        response = self.client.post(BASE, json=PLAN, headers=self.headers("viewer-1"))

        assert response.status_code == 403

    def test_submit_validation_error_code(self):
        response = self.client.post(
            BASE,
            json={**PLAN, "procurement_id": None},
            headers=self.headers("alice"),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"
        assert response.json()["retryable"] is False

    def test_get_unknown_request(self):
        response = self.client.get(f"{BASE}/APR-UNKNOWN", headers=self.headers("alice"))

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_approve_advances_level(self):
        created = self.submit()

        response = self.client.post(
            f"{BASE}/{created['id']}/approve",
            json={"comments": "Fine by me", "level": 1},
            headers=self.headers("mgr-proc"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["current_level"] == 2
        assert body["approval_history"][0]["user_id"] == "mgr-proc"

    def test_approve_without_body(self):
        created = self.submit()

        response = self.client.post(
            f"{BASE}/{created['id']}/approve", headers=self.headers("mgr-proc")
        )

        assert response.status_code == 200

    def test_approve_by_wrong_user(self):
        created = self.submit()

        response = self.client.post(
            f"{BASE}/{created['id']}/approve", headers=self.headers("bob")
        )

        assert response.status_code == 403
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_reject_then_approve_is_not_pending(self):
        created = self.submit()
        self.client.post(
            f"{BASE}/{created['id']}/reject",
            json={"reason": "Duplicate of PRC-70"},
            headers=self.headers("mgr-proc"),
        )

        response = self.client.post(
            f"{BASE}/{created['id']}/approve", headers=self.headers("mgr-proc")
        )

        assert response.status_code == 409
        assert response.json()["code"] == "NOT_PENDING"

    def test_reject_requires_reason(self):
        created = self.submit()

        response = self.client.post(
            f"{BASE}/{created['id']}/reject", json={}, headers=self.headers("mgr-proc")
        )

        assert response.status_code == 422

    def test_delegate_to_user_without_permission(self):
        created = self.submit()

        response = self.client.post(
            f"{BASE}/{created['id']}/delegate",
            json={"delegate_to": "viewer-1"},
            headers=self.headers("mgr-proc"),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_delegate_and_act_as_delegate(self):
        created = self.submit()
        delegated = self.client.post(
            f"{BASE}/{created['id']}/delegate",
            json={"delegate_to": "bob", "reason": "Travelling"},
            headers=self.headers("mgr-proc"),
        )
        assert delegated.status_code == 200

        pending = self.client.get(f"{BASE}/pending", headers=self.headers("bob"))
        approved = self.client.post(
            f"{BASE}/{created['id']}/approve", headers=self.headers("bob")
        )

        assert [i["id"] for i in pending.json()["items"]] == [created["id"]]
        assert approved.json()["current_level"] == 2

    def test_escalate(self):
        created = self.submit()

        response = self.client.post(
            f"{BASE}/{created['id']}/escalate",
            json={"reason": "No response for three days"},
            headers=self.headers("alice"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "escalated"
        assert body["current_approver"]["user_id"] == "dir-proc"
        assert body["escalation_history"][0]["to_level"] == 3

    def test_escalate_requires_permission(self):
        created = self.submit()

        response = self.client.post(
            f"{BASE}/{created['id']}/escalate",
            json={"reason": "Impatient"},
            headers=self.headers("viewer-1"),
        )

        assert response.status_code == 403

    def test_recall_twice(self):
        created = self.submit()

        first = self.client.post(
            f"{BASE}/{created['id']}/recall",
            json={"reason": "Budget frozen"},
            headers=self.headers("alice"),
        )
        second = self.client.post(
            f"{BASE}/{created['id']}/recall", headers=self.headers("alice")
        )

        assert first.status_code == 200
        assert first.json()["status"] == "recalled"
        assert second.status_code == 409
        assert second.json()["code"] == "NOT_PENDING"

    def test_expired_request(self):
        created = self.submit()
        self.clock.now += timedelta(days=30)

        approve = self.client.post(
            f"{BASE}/{created['id']}/approve", headers=self.headers("mgr-proc")
        )
        checked = self.client.post(
            f"{BASE}/{created['id']}/check-expiry", headers=self.headers("alice")
        )

        assert approve.status_code == 410
        assert approve.json()["code"] == "EXPIRED"
        assert checked.json()["status"] == "expired"

    def test_conflict_is_retryable(self):
        self.state_machine.store = AlwaysConflictingStore()
        created = self.submit()

        response = self.client.post(
            f"{BASE}/{created['id']}/approve", headers=self.headers("mgr-proc")
        )

        assert response.status_code == 409
        assert response.json() == {
            "code": "CONFLICT",
            "message": f"Concurrent modification of approval {created['id']}",
            "retryable": True,
        }

    def test_list_restricted_to_own_requests(self):
        self.submit()
        self.client.post(BASE, json=PLAN, headers=self.headers("bob"))

        own = self.client.get(BASE, headers=self.headers("alice"))
        everything = self.client.get(BASE, headers=self.headers("dir-proc"))

        assert own.json()["meta"]["total_items"] == 1
        assert everything.json()["meta"]["total_items"] == 2

    def test_list_status_filter(self):
        created = self.submit()
        self.submit()
        self.client.post(f"{BASE}/{created['id']}/recall", headers=self.headers("alice"))

        response = self.client.get(
            BASE, params={"status": "recalled"}, headers=self.headers("alice")
        )

        assert [i["id"] for i in response.json()["items"]] == [created["id"]]

    def test_stats_requires_read_all(self):
        self.submit()

        denied = self.client.get(f"{BASE}/stats", headers=self.headers("alice"))
        allowed = self.client.get(f"{BASE}/stats", headers=self.headers("dir-proc"))

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["pending_requests"] == 1
        assert allowed.json()["total_value"] == "120000"

    def test_preview(self):
        response = self.client.get(
            f"{BASE}/preview",
            params={"type": "budget_approval", "department": "procurement", "value": "2000000"},
            headers=self.headers("alice"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total_levels"] == 4
        assert body["priority"] == "critical"
        assert body["expiry_days"] == 1

    def test_sweep_expired_admin_only(self):
        created = self.submit()
        self.clock.now += timedelta(days=30)

        denied = self.client.post(f"{BASE}/sweep-expired", headers=self.headers("alice"))
        swept = self.client.post(
            f"{BASE}/sweep-expired", headers=self.headers("root", roles=["admin"])
        )

        assert denied.status_code == 403
        assert swept.json() == {"expired": 1, "request_ids": [created["id"]]}

    def test_audit_trail(self):
        recorder = MagicMock()
        recorder.get_trail = AsyncMock(
            return_value=[
                AuditEntry(
                    entry_id="1",
                    timestamp=datetime.now(timezone.utc),
                    action="created",
                    actor_id="alice",
                    resource_id="APR-1",
                    description="Approval APR-1 created by alice",
                )
            ]
        )
        self.app.dependency_overrides[get_audit_recorder] = lambda: recorder

        denied = self.client.get(f"{BASE}/APR-1/audit", headers=self.headers("alice"))
        allowed = self.client.get(
            f"{BASE}/APR-1/audit",
            params={"limit": 10},
            headers=self.headers("auditor-1", permissions=["audit:read"]),
        )

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()[0]["action"] == "created"
        recorder.get_trail.assert_awaited_once_with("APR-1", limit=10)


def test_health_endpoint(client):
    """Test the unauthenticated health check."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.parametrize(
    "path",
    [BASE, f"{BASE}/pending", f"{BASE}/stats", f"{BASE}/APR-1"],
)
def test_read_routes_require_token(client, path):
    assert client.get(path).status_code == 401
