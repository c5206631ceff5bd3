"""Tests for admin tenant and audit routes."""

from unittest.mock import MagicMock, patch

from kombu.exceptions import OperationalError

from conftest import ADMIN_API_KEY
from servicevault_api.models import APIKey, Tenant

ADMIN_HEADERS = {"x-admin-key": ADMIN_API_KEY}


class TestAdminAuth:
    def test_missing_admin_key_rejected(self, client, db):
        response = client.post("/admin/tenants", json={"label": "acme", "api_key": "acme-key-0001"})
        assert response.status_code == 401

    def test_wrong_admin_key_rejected(self, client, db):
        response = client.post(
            "/admin/tenants",
            headers={"x-admin-key": "guess"},
            json={"label": "acme", "api_key": "acme-key-0001"},
        )
        assert response.status_code == 401

    @patch("servicevault_api.auth.dependencies.get_settings")
    def test_admin_disabled_without_configured_key(self, mock_get_settings, client, db):
        mock_get_settings.return_value = MagicMock(admin_api_key=None)

        response = client.post("/admin/tenants", headers=ADMIN_HEADERS, json={"label": "acme", "api_key": "acme-key-0001"})
        assert response.status_code == 403


class TestCreateTenant:
    def test_create_tenant_issues_working_key(self, client, db):
        response = client.post(
            "/admin/tenants",
            headers=ADMIN_HEADERS,
            json={"label": "initech", "api_key": "initech-key-0001"},
        )
        assert response.status_code == 201
        assert response.json()["label"] == "initech"

        tenant = db.query(Tenant).filter(Tenant.label == "initech").one()
        api_key = db.query(APIKey).filter(APIKey.tenant_id == tenant.id).one()
        assert api_key.digest != "initech-key-0001"
        assert api_key.prefix == "initech-"

        registered = client.post(
            "/v1/assets",
            headers={"x-api-key": "initech-key-0001"},
            json={"name": "Printer", "category": "APPLIANCE"},
        )
        assert registered.status_code == 201

    def test_duplicate_label_conflicts(self, client, db, tenant):
        response = client.post(
            "/admin/tenants",
            headers=ADMIN_HEADERS,
            json={"label": "acme", "api_key": "another-key-0001"},
        )
        assert response.status_code == 409

    def test_unknown_scope_rejected(self, client, db):
        response = client.post(
            "/admin/tenants",
            headers=ADMIN_HEADERS,
            json={"label": "initech", "api_key": "initech-key-0001", "scopes": ["root"]},
        )
        assert response.status_code == 422
        assert db.query(Tenant).filter(Tenant.label == "initech").first() is None


class TestIntegrityAudits:
    @patch("servicevault_api.routes.admin.enqueue_chain_audit", return_value="task-123")
    def test_audit_queued(self, mock_enqueue, client, db):
        response = client.post(
            "/admin/integrity-audits",
            headers={**ADMIN_HEADERS, "x-correlation-id": "audit-1"},
            json={"tenant_id": 7},
        )
        assert response.status_code == 202
        assert response.json() == {"task_id": "task-123", "status": "queued", "tenant_id": 7}
        mock_enqueue.assert_called_once_with(7, correlation_id="audit-1")

    @patch("servicevault_api.routes.admin.enqueue_chain_audit")
    def test_broker_unavailable_returns_503(self, mock_enqueue, client, db):
        for error in (ConnectionError("refused"), OperationalError("broker down")):
            mock_enqueue.side_effect = error

            response = client.post("/admin/integrity-audits", headers=ADMIN_HEADERS, json={})
            assert response.status_code == 503
            assert response.json()["error_code"] == "BROKER_UNAVAILABLE"
            assert response.headers["Retry-After"] == "30"

    @patch("servicevault_api.celery_client.get_celery_app")
    def test_enqueue_sends_audit_task(self, mock_get_celery_app):
        from servicevault_api.celery_client import AUDIT_TASK_NAME, enqueue_chain_audit

        mock_get_celery_app.return_value.send_task.return_value = MagicMock(id="task-456")

        assert enqueue_chain_audit(3, correlation_id="c-1") == "task-456"
        mock_get_celery_app.return_value.send_task.assert_called_once_with(
            AUDIT_TASK_NAME,
            kwargs={"tenant_id": 3, "correlation_id": "c-1"},
        )
