# tests/conftest.py
# Shared pytest setup, fixtures and Zoho fakes

import pytest
import sys
import os

# backend on the import path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from core import CRMError
from core.storage import MemStorage, storage as app_storage
from forms.config_engine import form_config_engine
from forms.field_mapper import smart_field_mapper
from forms.processor import form_processor
from forms.retry import retry_service
from auth.middleware import contact_rate_limiter


class FakeTokens:
    """Stands in for ZohoTokenManager"""

    def __init__(self, token: str = "test-access-token"):
        self.token = token

    async def get_valid_access_token(self) -> str:
        return self.token


class FakeCRM:
    """Records calls; create_record fails while fail_with is set"""

    def __init__(self):
        self.created = []
        self.updated = []
        self.fields = []
        self.created_fields = []
        self.fail_with = None
        self.field_error = None
        self.next_id = 5000

    async def create_record(self, module, record):
        if self.fail_with:
            raise CRMError(self.fail_with, upstream_status=400)
        self.next_id += 1
        self.created.append((module, record))
        return {"code": "SUCCESS", "status": "success", "id": str(self.next_id)}

    async def update_record(self, module, record_id, record):
        self.updated.append((module, record_id, record))
        return {"code": "SUCCESS", "status": "success", "details": {"id": record_id}}

    async def get_module_fields(self, module):
        return list(self.fields)

    async def create_custom_field(self, module, field):
        if self.field_error:
            raise CRMError(self.field_error, upstream_status=400)
        self.created_fields.append((module, field))
        return {"code": "SUCCESS", "status": "success", "api_name": field["api_name"]}


class FakeCampaigns:
    def __init__(self):
        self.subscribed = []
        self.sent = []
        self.scheduled = []

    async def add_subscriber(self, list_key, contact):
        self.subscribed.append((list_key, contact))
        return {"status": "success", "message": "A confirmation email is sent to the user."}

    async def send_campaign(self, campaign_key, schedule_time=None):
        self.sent.append(campaign_key)
        return {"status": "success"}

    async def schedule_campaign(self, campaign_key, schedule_time):
        self.scheduled.append((campaign_key, schedule_time))
        return {"status": "success"}

    async def get_lists(self):
        return {"list_of_details": [{"listkey": "L1", "listname": "Newsletter"}]}


@pytest.fixture(autouse=True)
def reset_app_state():
    """Module-level singletons start clean for every test"""
    app_storage.clear()
    form_config_engine.clear_cache()
    smart_field_mapper.clear_cache()
    form_processor.field_sync.last_sync.clear()
    contact_rate_limiter.reset()
    retry_service.is_processing = False
    yield


@pytest.fixture
def store():
    return MemStorage()


@pytest.fixture
def fake_tokens():
    return FakeTokens()


@pytest.fixture
def fake_crm():
    return FakeCRM()


@pytest.fixture
def fake_campaigns():
    return FakeCampaigns()


@pytest.fixture
def membership_config():
    """A configured form with a split-name field and a required email"""
    return {
        "form_name": "Join CAS Today",
        "zoho_module": "Leads",
        "lead_source_tag": "Website - CAS Membership",
        "submit_fields": {
            "fullName": {"zoho_field": "SPLIT_NAME", "label": "Full Name", "required": True},
            "email": {"zoho_field": "Email", "label": "Email", "required": True, "field_type": "email"},
            "institution": {"zoho_field": "Company", "label": "Institution"},
            "communicationConsent": {"zoho_field": "Email_Opt_In", "label": "Consent", "field_type": "boolean"}
        },
        "strict_mapping": True
    }


@pytest.fixture
def contact_payload():
    """Valid contact form body (camelCase, as the site posts it)"""
    return {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "organization": "Toronto General",
        "inquiryType": "general",
        "subject": "Clinic referral question",
        "message": "Which centers in Ontario accept direct referrals?",
        "privacyConsent": True,
        "captchaToken": "captcha_abc123"
    }


@pytest.fixture
def membership_payload():
    return {
        "firstName": "Sam",
        "lastName": "Rivera",
        "email": "sam@example.com",
        "phone": "416-555-0100",
        "address": "200 Elizabeth Street",
        "city": "Toronto",
        "province": "ON",
        "postalCode": "M5G 2C4",
        "membershipType": "individual",
        "interests": ["research", "support groups"],
        "experience": "caregiver",
        "howHeard": "Clinic",
        "newsletter": True,
        "terms": True
    }
