# backend/forms/field_mapper.py
# Smart field mapper: guesses Zoho fields for unconfigured form fields

import re
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from core import settings, get_logger
from core.models import FieldMetadata
from core.storage import Storage, storage as default_storage

logger = get_logger("SmartFieldMapper")

MIN_CONFIDENCE = 0.6
MAX_TEXT_LENGTH = 255

# normalized form field name -> Zoho Leads api name
STANDARD_FIELD_MAPPINGS = {
    "fullname": "Last_Name",
    "name": "Last_Name",
    "lastname": "Last_Name",
    "firstname": "First_Name",
    "email": "Email",
    "emailaddress": "Email",
    "company": "Company",
    "companyname": "Company",
    "organization": "Company",
    "phone": "Phone",
    "phonenumber": "Phone",
    "mobile": "Mobile",
    "mobilenumber": "Mobile",
    "website": "Website",
    "city": "City",
    "state": "State",
    "country": "Country",
    "description": "Description",
    "title": "Designation",
    "designation": "Designation",
}


class FieldMatch(BaseModel):
    form_field: str
    zoho_field: str
    match_type: str  # standard | exact | normalized | similarity
    confidence: float


class SmartMappingResult(BaseModel):
    mapped_fields: List[FieldMatch] = []
    unmapped_fields: List[str] = []
    zoho_data: Dict[str, Any] = {}
    lead_source: str


def normalize_field_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def calculate_similarity(a: str, b: str) -> float:
    """Cheap character-overlap score in [0, 1]"""
    s1, s2 = a.lower(), b.lower()
    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return 0.8

    longer, shorter = (s1, s2) if len(s1) > len(s2) else (s2, s1)
    if not longer:
        return 1.0
    matches = sum(1 for ch in shorter if ch in longer)
    return matches / len(longer)


def format_value(value: Any, zoho_field: str) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lower = value.lower()
        if lower in ("yes", "true"):
            return True
        if lower in ("no", "false"):
            return False
        if len(value) > MAX_TEXT_LENGTH:
            logger.info(f"Truncated {zoho_field} from {len(value)} to {MAX_TEXT_LENGTH} chars")
            return value[:MAX_TEXT_LENGTH]
    if isinstance(value, (list, tuple)):
        return ";".join(str(v) for v in value)
    return value


class SmartFieldMapper:

    def __init__(self, store: Storage = None, cache_seconds: int = None):
        self.storage = store or default_storage
        self.cache_timeout = cache_seconds if cache_seconds is not None else settings.FORM_CONFIG_CACHE_SECONDS
        self.field_cache: Dict[str, List[FieldMetadata]] = {}
        self.last_refresh: Dict[str, float] = {}

    def _fields(self, zoho_module: str) -> List[FieldMetadata]:
        last = self.last_refresh.get(zoho_module, 0)
        if time.time() - last > self.cache_timeout:
            self.field_cache[zoho_module] = self.storage.get_field_metadata(zoho_module)
            self.last_refresh[zoho_module] = time.time()
            logger.info(f"Cache refreshed with {len(self.field_cache[zoho_module])} {zoho_module} fields")
        return self.field_cache.get(zoho_module, [])

    def clear_cache(self):
        self.field_cache.clear()
        self.last_refresh.clear()

    def find_best_match(self, form_field: str, zoho_module: str = "Leads") -> Optional[FieldMatch]:
        normalized = normalize_field_name(form_field)

        standard = STANDARD_FIELD_MAPPINGS.get(normalized)
        if standard:
            return FieldMatch(form_field=form_field, zoho_field=standard, match_type="standard", confidence=1.0)

        fields = self._fields(zoho_module)

        for zf in fields:
            if normalize_field_name(zf.field_api_name) == normalized:
                return FieldMatch(form_field=form_field, zoho_field=zf.field_api_name, match_type="exact", confidence=1.0)

        for zf in fields:
            if normalized in (normalize_field_name(zf.field_api_name), normalize_field_name(zf.field_label)):
                return FieldMatch(
                    form_field=form_field, zoho_field=zf.field_api_name,
                    match_type="normalized", confidence=0.95
                )

        best = None
        best_score = MIN_CONFIDENCE
        for zf in fields:
            score = max(
                calculate_similarity(form_field, zf.field_api_name),
                calculate_similarity(form_field, zf.field_label)
            )
            if score > best_score:
                best_score = score
                best = FieldMatch(
                    form_field=form_field, zoho_field=zf.field_api_name,
                    match_type="similarity", confidence=score
                )
        return best

    def map_form_data_to_zoho(
        self,
        form_data: Dict[str, Any],
        form_name: str,
        zoho_module: str = "Leads"
    ) -> SmartMappingResult:
        mapped = []
        unmapped = []
        zoho_data: Dict[str, Any] = {}

        logger.info(f'Auto-mapping form "{form_name}" with {len(form_data)} fields')

        for form_field, value in form_data.items():
            if value is None or value == "":
                continue

            match = self.find_best_match(form_field, zoho_module)
            if match and match.confidence >= MIN_CONFIDENCE:
                mapped.append(match)
                zoho_data[match.zoho_field] = format_value(value, match.zoho_field)
            else:
                unmapped.append(form_field)
                logger.info(f"{form_field} - no match found (excluded)")

        lead_source = f"Website - {form_name}"
        zoho_data["Lead_Source"] = lead_source

        logger.info(f"Result: {len(mapped)} mapped, {len(unmapped)} excluded, Lead_Source: \"{lead_source}\"")
        return SmartMappingResult(
            mapped_fields=mapped,
            unmapped_fields=unmapped,
            zoho_data=zoho_data,
            lead_source=lead_source
        )

    def get_field_metadata_for_module(self, zoho_module: str = "Leads") -> List[FieldMetadata]:
        return self._fields(zoho_module)


# Global instance
smart_field_mapper = SmartFieldMapper()
