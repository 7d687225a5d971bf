# tests/test_config_engine.py
# Form configuration engine tests

import time

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from core import ValidationFailed
from forms.config_engine import FormConfigEngine


class TestValidation:
    """validate_form_configuration"""

    def setup_method(self):
        self.engine = FormConfigEngine(cache_seconds=300)

    def test_valid_configuration(self, membership_config):
        result = self.engine.validate_form_configuration(membership_config)

        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_missing_name_and_module(self):
        result = self.engine.validate_form_configuration({"form_name": "  ", "zoho_module": ""})

        assert result.valid is False
        assert "Form name is required" in result.errors
        assert "Zoho module is required" in result.errors

    def test_warnings_do_not_invalidate(self):
        result = self.engine.validate_form_configuration({"form_name": "A", "zoho_module": "Leads"})

        assert result.valid is True
        assert len(result.warnings) == 2

    def test_bad_submit_field(self):
        result = self.engine.validate_form_configuration({
            "form_name": "A",
            "zoho_module": "Leads",
            "submit_fields": {"email": {"zoho_field": "", "label": "Email"}}
        })

        assert result.valid is False
        assert any("'email'" in e for e in result.errors)

    def test_display_fields_must_be_list(self):
        result = self.engine.validate_form_configuration({
            "form_name": "A", "zoho_module": "Leads", "display_fields": "email"
        })
        assert "Display fields must be an array" in result.errors


class TestCRUDAndCache:
    """Create / update / delete with cache invalidation"""

    def setup_method(self):
        from core.storage import MemStorage
        self.store = MemStorage()
        self.engine = FormConfigEngine(store=self.store, cache_seconds=300)

    def test_create_defaults_lead_source(self):
        config = self.engine.create_form_configuration(form_name="Contact Us")

        assert config.lead_source_tag == "Form: Contact Us"
        assert config.is_active is True
        assert config.zoho_module == "Leads"

    def test_create_duplicate(self):
        self.engine.create_form_configuration(form_name="Contact Us")

        with pytest.raises(ValidationFailed):
            self.engine.create_form_configuration(form_name="Contact Us")

    def test_create_invalid(self):
        with pytest.raises(ValidationFailed) as exc:
            self.engine.create_form_configuration(form_name="")
        assert "Form name is required" in exc.value.errors

    def test_lookup_is_cached(self, membership_config):
        self.engine.create_form_configuration(**membership_config)
        first = self.engine.get_form_configuration("Join CAS Today")

        # direct storage write bypasses the engine, so the cached copy wins
        self.store.update_form_configuration_by_name("Join CAS Today", description="changed")
        assert self.engine.get_form_configuration("Join CAS Today").description == first.description

    def test_update_invalidates_cache(self, membership_config):
        self.engine.create_form_configuration(**membership_config)
        self.engine.get_form_configuration("Join CAS Today")

        self.engine.update_form_configuration("Join CAS Today", description="changed")
        assert self.engine.get_form_configuration("Join CAS Today").description == "changed"

    def test_stale_cache_reloads(self, membership_config):
        self.engine.create_form_configuration(**membership_config)
        self.engine.get_form_configuration("Join CAS Today")
        self.store.update_form_configuration_by_name("Join CAS Today", description="changed")

        self.engine.last_cache_refresh = time.time() - 301
        assert self.engine.get_form_configuration("Join CAS Today").description == "changed"

    def test_update_rejects_bad_submit_fields(self, membership_config):
        self.engine.create_form_configuration(**membership_config)

        with pytest.raises(ValidationFailed):
            self.engine.update_form_configuration(
                "Join CAS Today", submit_fields={"x": {"zoho_field": "X", "label": "X", "field_type": "blob"}}
            )

    def test_update_unknown(self):
        assert self.engine.update_form_configuration("Nope", description="x") is None

    def test_delete(self, membership_config):
        self.engine.create_form_configuration(**membership_config)

        assert self.engine.delete_form_configuration("Join CAS Today") is True
        assert self.engine.get_form_configuration("Join CAS Today") is None
        assert self.engine.delete_form_configuration("Join CAS Today") is False

    def test_get_or_create_default(self):
        config = self.engine.get_or_create_default_config("Brand New Form")

        assert config.strict_mapping is False
        assert config.auto_create_fields is True
        assert self.engine.get_or_create_default_config("Brand New Form").id == config.id

    def test_initialize_warms_cache(self, membership_config):
        self.engine.create_form_configuration(**membership_config)
        self.engine.initialize()

        assert self.engine.initialized is True
        assert "Join CAS Today" in self.engine.config_cache


class TestFiltering:
    """filter_form_data_for_zoho + required fields"""

    def setup_method(self):
        from core.storage import MemStorage
        self.engine = FormConfigEngine(store=MemStorage(), cache_seconds=300)

    def test_strict_mapping_excludes_unknown(self, membership_config):
        config = self.engine.create_form_configuration(**membership_config)
        result = self.engine.filter_form_data_for_zoho(
            {"email": "a@b.com", "institution": "UHN", "favouriteColour": "blue"}, config
        )

        assert result.filtered_data == {"Email": "a@b.com", "Company": "UHN"}
        assert result.excluded_fields == ["favouriteColour"]
        assert result.lead_source == "Website - CAS Membership"

    def test_legacy_mappings_then_passthrough(self):
        config = self.engine.create_form_configuration(
            form_name="Legacy", field_mappings={"org": "Company"}, strict_mapping=False
        )
        result = self.engine.filter_form_data_for_zoho({"org": "UHN", "notes": "hi"}, config)

        assert result.filtered_data == {"Company": "UHN", "notes": "hi"}
        assert result.excluded_fields == []
        assert result.lead_source == "Form: Legacy"

    def test_required_fields(self, membership_config):
        config = self.engine.create_form_configuration(**membership_config)

        assert set(self.engine.get_required_fields(config)) == {"fullName", "email"}
        check = self.engine.validate_submission_data({"fullName": "Jane Doe", "email": ""}, config)
        assert check.valid is False
        assert check.missing_required == ["email"]

    def test_configured_zoho_fields(self, membership_config):
        config = self.engine.create_form_configuration(**membership_config)

        assert "Email" in self.engine.get_configured_zoho_fields(config)
