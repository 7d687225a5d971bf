# tests/test_field_mapper.py
# Smart field mapper tests

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from core.models import FieldMetadata
from core.storage import MemStorage
from forms.field_mapper import (
    SmartFieldMapper,
    normalize_field_name,
    calculate_similarity,
    format_value,
    MAX_TEXT_LENGTH
)


class TestHelpers:
    """Name normalisation, similarity, value formatting"""

    def test_normalize(self):
        assert normalize_field_name("E-mail Address") == "emailaddress"
        assert normalize_field_name("First_Name") == "firstname"

    def test_similarity(self):
        assert calculate_similarity("Email", "email") == 1.0
        assert calculate_similarity("phone", "Mobile_Phone") == 0.8
        assert calculate_similarity("abc", "xyz") == 0.0

    def test_format_value(self):
        assert format_value("Yes", "Email_Opt_In") is True
        assert format_value("false", "Email_Opt_In") is False
        assert format_value(["A", "B"], "Interests") == "A;B"
        assert format_value(42, "Annual_Revenue") == 42
        assert len(format_value("x" * 300, "Description")) == MAX_TEXT_LENGTH


class TestSmartFieldMapper:
    """find_best_match + map_form_data_to_zoho"""

    def setup_method(self):
        self.store = MemStorage()
        for api_name, label in (
            ("Amyloidosis_Type", "Amyloidosis Type"),
            ("Medical_Discipline", "Medical Discipline"),
            ("Areas_of_Interest", "Areas of Interest"),
        ):
            self.store.upsert_field_metadata(FieldMetadata(
                zoho_module="Leads", field_api_name=api_name, field_label=label, is_custom_field=True
            ))
        self.mapper = SmartFieldMapper(store=self.store, cache_seconds=300)

    def test_standard_mapping(self):
        match = self.mapper.find_best_match("emailAddress")

        assert match.zoho_field == "Email"
        assert match.match_type == "standard"

    def test_exact_match_on_api_name(self):
        match = self.mapper.find_best_match("amyloidosis_type")

        assert match.zoho_field == "Amyloidosis_Type"
        assert match.match_type == "exact"
        assert match.confidence == 1.0

    def test_similarity_match(self):
        match = self.mapper.find_best_match("discipline")

        assert match.zoho_field == "Medical_Discipline"
        assert match.match_type == "similarity"
        assert match.confidence >= 0.6

    def test_no_match(self):
        assert self.mapper.find_best_match("zzqqxx") is None

    def test_map_form_data(self):
        result = self.mapper.map_form_data_to_zoho(
            {"email": "a@b.com", "amyloidosisType": "ATTR", "zzqqxx": "?", "company": ""},
            "Join CANN Today"
        )

        assert result.zoho_data == {
            "Email": "a@b.com",
            "Amyloidosis_Type": "ATTR",
            "Lead_Source": "Website - Join CANN Today"
        }
        assert result.unmapped_fields == ["zzqqxx"]

    def test_metadata_cache(self):
        assert len(self.mapper.get_field_metadata_for_module("Leads")) == 3

        self.store.upsert_field_metadata(FieldMetadata(zoho_module="Leads", field_api_name="New_Field", field_label="New"))
        assert len(self.mapper.get_field_metadata_for_module("Leads")) == 3

        self.mapper.clear_cache()
        assert len(self.mapper.get_field_metadata_for_module("Leads")) == 4
