# tests/test_api.py
# FastAPI endpoint tests

import pandas as pd
import pytest
from fastapi.testclient import TestClient
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from core import settings
from auth.middleware import AUTOMATION_KEY_HEADER, create_jwt_token
from forms.processor import form_processor
from forms.public import public_forms
from workflows.engine import workflow_engine
import crm.api as crm_api
from main import app

client = TestClient(app)

ADMIN = {AUTOMATION_KEY_HEADER: settings.AUTOMATION_API_KEY}


@pytest.fixture
def crm(monkeypatch, fake_crm):
    monkeypatch.setattr(form_processor, "crm", fake_crm)
    return fake_crm


@pytest.fixture
def campaigns(monkeypatch, fake_campaigns):
    monkeypatch.setattr(public_forms, "campaigns", fake_campaigns)
    monkeypatch.setattr(workflow_engine, "campaigns", fake_campaigns)
    monkeypatch.setattr(crm_api, "campaigns_client", fake_campaigns)
    return fake_campaigns


class TestHealthEndpoint:
    """Health check + API info"""

    def test_health_check(self):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["services"]) == {"zoho", "form_configs", "oauth_proxy"}

    def test_root_endpoint(self):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "CAS Integration Hub"
        assert "/api/contact" in data["endpoints"]["public"]


class TestAdminAuth:

    def test_admin_routes_need_credentials(self):
        assert client.get("/api/workflows").status_code == 401
        assert client.get("/api/forms/submissions").status_code == 401
        assert client.get("/api/forms/retry-stats").status_code == 401

    def test_automation_key(self):
        assert client.get("/api/workflows", headers=ADMIN).status_code == 200
        assert client.get("/api/workflows", params={"apiKey": settings.AUTOMATION_API_KEY}).status_code == 200


class TestFormsAPI:
    """/api/forms/*"""

    def test_submit(self, crm):
        response = client.post("/api/forms/submit", json={
            "form_name": "Join CANN Today",
            "data": {"fullName": "Jane Doe", "emailAddress": "jane@example.com"},
            "source_url": "https://amyloid.ca/cann"
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["zoho_crm_id"] == "5001"
        assert crm.created[0][1]["Website"] == "https://amyloid.ca/cann"

    def test_submit_empty(self, crm):
        response = client.post("/api/forms/submit", json={"form_name": "Survey", "data": {}})

        assert response.status_code == 400
        assert response.json()["detail"]["errors"]

    def test_failed_push_then_retry(self, crm):
        crm.fail_with = "Zoho API Error 500"
        submitted = client.post("/api/forms/submit", json={"form_name": "Survey", "data": {"email": "a@b.com"}}).json()
        assert submitted["success"] is False

        stats = client.get("/api/forms/retry-stats", headers=ADMIN).json()
        assert stats["failed_submissions"] == 1

        crm.fail_with = None
        retried = client.post(f"/api/forms/submissions/{submitted['submission_id']}/retry", headers=ADMIN)
        assert retried.status_code == 200
        assert retried.json()["success"] is True

        detail = client.get(f"/api/forms/submissions/{submitted['submission_id']}", headers=ADMIN).json()
        assert detail["submission"]["sync_status"] == "synced"
        assert [log["operation"] for log in detail["logs"]][0] == "received"

    def test_retry_unknown_submission(self):
        assert client.post("/api/forms/submissions/404/retry", headers=ADMIN).status_code == 404

    def test_retry_all(self, crm):
        response = client.post("/api/forms/retry-all", headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["total_retried"] == 0

    def test_config_crud(self, membership_config):
        created = client.post("/api/forms/configs", json=membership_config, headers=ADMIN)
        assert created.status_code == 201
        assert created.json()["lead_source_tag"] == "Website - CAS Membership"

        duplicate = client.post("/api/forms/configs", json=membership_config, headers=ADMIN)
        assert duplicate.status_code == 400

        updated = client.put("/api/forms/configs/Join CAS Today", json={"description": "CAS join form"}, headers=ADMIN)
        assert updated.json()["description"] == "CAS join form"

        assert len(client.get("/api/forms/configs", headers=ADMIN).json()) == 1
        assert client.delete("/api/forms/configs/Join CAS Today", headers=ADMIN).status_code == 200
        assert client.get("/api/forms/configs/Join CAS Today", headers=ADMIN).status_code == 404

    def test_validate_config(self):
        response = client.post("/api/forms/configs/validate", json={"form_name": "", "zoho_module": "Leads"},
                               headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["valid"] is False


class TestPublicFormsAPI:
    """/api/contact, /api/newsletter, /api/membership"""

    def test_contact_rate_limit(self, contact_payload):
        statuses = [client.post("/api/contact", json=contact_payload).status_code for _ in range(4)]

        assert statuses == [201, 201, 201, 429]

    def test_contact_response(self, contact_payload):
        data = client.post("/api/contact", json=contact_payload).json()

        assert data["message"] == "Contact form submitted successfully"
        assert data["reference_id"].startswith("CAS-")

    def test_contact_invalid(self, contact_payload):
        contact_payload["email"] = "nope"
        response = client.post("/api/contact", json=contact_payload)

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Validation error"

    def test_newsletter(self, campaigns):
        response = client.post("/api/newsletter", json={"email": "a@b.com", "listKey": "L1"})

        assert response.status_code == 200
        assert campaigns.subscribed[0][0] == "L1"

    def test_membership(self, crm, membership_payload):
        response = client.post("/api/membership", json=membership_payload)

        assert response.status_code == 200
        assert response.json()["synced"] is True
        assert crm.created[0][1]["Email"] == "sam@example.com"

    def test_membership_invalid(self, crm, membership_payload):
        del membership_payload["terms"]

        assert client.post("/api/membership", json=membership_payload).status_code == 400
        assert crm.created == []


class TestWorkflowsAPI:
    """/api/workflows/* + templates"""

    def _from_template(self, **extra):
        response = client.post("/api/workflows/from-template", json={
            "template_name": "monthly-newsletter-blast",
            "variables": {"NEWSLETTER_CAMPAIGN_KEY": "C-june"},
            **extra
        }, headers=ADMIN)
        assert response.status_code == 201
        return response.json()

    def test_templates_are_public(self):
        assert len(client.get("/api/workflow-templates").json()) == 7
        assert client.get("/api/workflow-templates/monthly-newsletter-blast").status_code == 200
        assert client.get("/api/workflow-templates/nope").status_code == 404

    def test_create_defaults_to_paused(self):
        response = client.post("/api/workflows", json={
            "name": "Ping hook",
            "trigger_type": "manual",
            "actions": [{"type": "wait", "config": {"duration": 0}}]
        }, headers=ADMIN)

        assert response.status_code == 201
        assert response.json()["status"] == "paused"

    def test_toggle_and_execute(self, campaigns):
        workflow = self._from_template()
        assert workflow["status"] == "paused"

        paused = client.post(f"/api/workflows/{workflow['id']}/execute", headers=ADMIN)
        assert paused.status_code == 400

        toggled = client.post(f"/api/workflows/{workflow['id']}/toggle", headers=ADMIN).json()
        assert toggled["status"] == "active"

        executed = client.post(f"/api/workflows/{workflow['id']}/execute", json={"context": {}}, headers=ADMIN)
        assert executed.status_code == 200
        assert executed.json()["execution"]["status"] == "completed"
        assert campaigns.sent == ["C-june"]

        history = client.get(f"/api/workflows/{workflow['id']}/executions", headers=ADMIN).json()
        assert len(history) == 1
        assert history[0]["actions"][0]["status"] == "completed"

    def test_trigger_fan_out(self, campaigns):
        self._from_template(overrides={"status": "active"})
        self._from_template()

        response = client.post("/api/workflows/trigger/manual", json={"context": {}}, headers=ADMIN)

        assert response.json()["executed"] == 1
        assert client.get("/api/workflows", params={"status": "active"}, headers=ADMIN).json()["total"] == 1

    def test_trigger_needs_automation_key(self):
        admin_jwt = {"Authorization": f"Bearer {create_jwt_token('admin')}"}

        assert client.post("/api/workflows/trigger/manual", headers=admin_jwt).status_code == 401
        assert client.post("/api/workflows/trigger/manual").status_code == 401
        assert client.post("/api/workflows/trigger/manual", headers=ADMIN).status_code == 200
        assert client.get("/api/workflows", headers=admin_jwt).status_code == 200

    def test_update_and_delete(self):
        workflow = self._from_template()

        updated = client.put(f"/api/workflows/{workflow['id']}", json={"description": "June blast"}, headers=ADMIN)
        assert updated.json()["description"] == "June blast"

        assert client.delete(f"/api/workflows/{workflow['id']}", headers=ADMIN).status_code == 200
        assert client.get(f"/api/workflows/{workflow['id']}", headers=ADMIN).status_code == 404

    def test_unknown_template(self):
        response = client.post("/api/workflows/from-template", json={"template_name": "nope"}, headers=ADMIN)
        assert response.status_code == 404


class TestZohoAPI:

    def test_callback_requires_code(self):
        assert client.get("/api/zoho/callback").status_code == 400
        assert client.get("/api/zoho/callback", params={"error": "access_denied"}).status_code == 400

    def test_campaign_lists(self, campaigns):
        response = client.get("/api/campaigns/lists", headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["list_of_details"][0]["listkey"] == "L1"


class TestImportAPI:

    def test_upload_csv(self):
        content = pd.DataFrame([
            {"fullName": "Jane Doe", "email": "jane@example.com"},
            {"fullName": "Sam Lee", "email": "sam@example.com"}
        ]).to_csv(index=False).encode()

        response = client.post(
            "/api/import/CANN Contacts",
            files={"file": ("cann.csv", content, "text/csv")},
            headers=ADMIN
        )

        assert response.status_code == 200
        assert response.json()["success_count"] == 2
        listed = client.get("/api/forms/submissions", params={"form_name": "Join CANN Today"}, headers=ADMIN)
        assert listed.json()["total"] == 2

    def test_unknown_source(self):
        response = client.post(
            "/api/import/Mailchimp",
            files={"file": ("x.csv", b"a,b\n1,2\n", "text/csv")},
            headers=ADMIN
        )
        assert response.status_code == 400

    def test_requires_admin(self):
        response = client.post("/api/import/CANN Contacts", files={"file": ("x.csv", b"a\n1\n", "text/csv")})
        assert response.status_code == 401

    def test_import_then_process_pending(self, crm):
        content = pd.DataFrame([{"fullName": "Jane Doe", "email": "jane@example.com"}]).to_csv(index=False).encode()
        client.post("/api/import/CANN Contacts", files={"file": ("cann.csv", content, "text/csv")}, headers=ADMIN)

        assert client.post("/api/forms/retry-all", headers=ADMIN).json()["total_retried"] == 0

        response = client.post("/api/forms/process-pending", headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["successful"] == 1
        assert crm.created[0][1]["Email"] == "jane@example.com"
        listed = client.get("/api/forms/submissions", params={"sync_status": "synced"}, headers=ADMIN)
        assert listed.json()["total"] == 1


class TestFieldMetadataAPI:

    def test_sync_and_list(self, crm):
        crm.fields = [{"api_name": "Amyloidosis_Type", "field_label": "Amyloidosis Type", "data_type": "picklist"}]

        synced = client.post("/api/forms/fields/Leads/sync", headers=ADMIN)
        assert synced.json() == {"module": "Leads", "synced": 1}

        listed = client.get("/api/forms/fields/Leads", headers=ADMIN).json()
        assert listed["total"] == 1
        assert listed["fields"][0]["field_api_name"] == "Amyloidosis_Type"

    def test_requires_admin(self):
        assert client.get("/api/forms/fields/Leads").status_code == 401
