# backend/forms/field_sync.py
# Field sync: Zoho field metadata -> storage, custom fields for unmatched form fields

import math
import time
from typing import Any, Dict, List

import httpx
from pydantic import BaseModel

from core import settings, get_logger, HubError
from core.models import FieldMetadata, FormConfiguration, FormSubmission, LogStatus, Operation
from core.storage import Storage, storage as default_storage
from crm.client import (
    ZohoCRMClient,
    crm_client as default_crm_client,
    detect_field_type,
    convert_to_zoho_field_name,
    generate_picklist_values
)
from .config_engine import FormConfigEngine, form_config_engine
from .field_mapper import SmartFieldMapper, smart_field_mapper

logger = get_logger("FieldSync")

MAX_FIELD_LENGTH = 255
MAX_PICKLIST_VALUES = 100

ZOHO_TYPE_MAP = {
    "text": "text",
    "textarea": "text",
    "email": "email",
    "phone": "phone",
    "picklist": "picklist",
    "multiselectpicklist": "multiselectpicklist",
    "boolean": "boolean",
    "checkbox": "boolean",
}


class FieldSyncResult(BaseModel):
    success: bool = True
    fields_processed: int = 0
    fields_created: List[str] = []
    failed: List[str] = []
    errors: List[str] = []


def field_length(sample: Any) -> int:
    if isinstance(sample, str):
        return min(math.ceil(max(50, len(sample) * 1.5)), MAX_FIELD_LENGTH)
    return 100


def picklist_from_value(value: Any) -> List[Dict[str, str]]:
    if isinstance(value, (list, tuple)):
        return generate_picklist_values([str(v) for v in value[:MAX_PICKLIST_VALUES]])
    if isinstance(value, str):
        return generate_picklist_values([value, "Other"])
    return []


def to_field_metadata(zoho_module: str, field: Dict[str, Any]) -> FieldMetadata:
    """Zoho /settings/fields entry -> cached metadata"""
    picklist = [p.get("actual_value") for p in field.get("pick_list_values") or [] if p.get("actual_value")]
    return FieldMetadata(
        zoho_module=zoho_module,
        field_api_name=field["api_name"],
        field_label=field.get("field_label") or field["api_name"],
        data_type=ZOHO_TYPE_MAP.get(str(field.get("data_type") or "").lower(), "text"),
        is_custom_field=bool(field.get("custom_field")),
        is_required=bool(field.get("system_mandatory") or field.get("required")),
        max_length=field.get("length"),
        picklist_values=picklist or None
    )


class FieldSyncService:
    """Keeps stored field metadata current and creates missing custom fields"""

    def __init__(
        self,
        store: Storage = None,
        engine: FormConfigEngine = None,
        mapper: SmartFieldMapper = None,
        crm: ZohoCRMClient = None,
        cache_seconds: int = None
    ):
        self.storage = store or default_storage
        self.engine = engine or form_config_engine
        self.mapper = mapper or smart_field_mapper
        self.crm = crm or default_crm_client
        self.cache_timeout = cache_seconds if cache_seconds is not None else settings.FORM_CONFIG_CACHE_SECONDS
        self.last_sync: Dict[str, float] = {}

    async def sync_module_fields(self, zoho_module: str, crm: ZohoCRMClient = None) -> int:
        """Pull every field of a module from Zoho into storage"""
        fields = await (crm or self.crm).get_module_fields(zoho_module)
        for field in fields:
            if field.get("api_name"):
                self.storage.upsert_field_metadata(to_field_metadata(zoho_module, field))
        self.last_sync[zoho_module] = time.time()
        self.mapper.clear_cache()
        logger.info(f"Synced {len(fields)} {zoho_module} fields from Zoho")
        return len(fields)

    async def ensure_fresh(self, zoho_module: str, crm: ZohoCRMClient = None) -> None:
        if time.time() - self.last_sync.get(zoho_module, 0) > self.cache_timeout:
            await self.sync_module_fields(zoho_module, crm)

    def unmatched_fields(self, form_data: Dict[str, Any], config: FormConfiguration) -> Dict[str, Any]:
        """Pass-through form fields the mapper cannot place"""
        filtered = self.engine.filter_form_data_for_zoho(form_data, config)
        unmatched = {}
        for mapped in filtered.mapped_fields:
            if mapped.value is None or mapped.value == "" or mapped.form_field == "fullName":
                continue
            if mapped.zoho_field != mapped.form_field or mapped.form_field in config.submit_fields:
                continue
            if not self.mapper.find_best_match(mapped.form_field, config.zoho_module):
                unmatched[mapped.form_field] = mapped.value
        return unmatched

    async def create_field(
        self,
        zoho_module: str,
        form_field: str,
        sample: Any,
        crm: ZohoCRMClient = None
    ) -> FieldMetadata:
        api_name = convert_to_zoho_field_name(form_field) or form_field
        field_type = detect_field_type(sample, form_field)
        request: Dict[str, Any] = {
            "api_name": api_name,
            "field_label": form_field,
            "data_type": field_type,
            "required": False
        }
        if field_type == "text":
            request["length"] = field_length(sample)
        if field_type in ("picklist", "multiselectpicklist"):
            request["pick_list_values"] = picklist_from_value(sample)

        logger.info(f"Creating field {api_name} in {zoho_module}")
        created = await (crm or self.crm).create_custom_field(zoho_module, request)

        metadata = FieldMetadata(
            zoho_module=zoho_module,
            field_api_name=created.get("api_name") or (created.get("details") or {}).get("api_name") or api_name,
            field_label=form_field,
            data_type=field_type,
            is_custom_field=True,
            max_length=request.get("length"),
            picklist_values=[p["actual_value"] for p in request.get("pick_list_values", [])] or None
        )
        self.storage.upsert_field_metadata(metadata)
        self.mapper.clear_cache()
        return metadata

    async def sync_submission_fields(
        self,
        submission: FormSubmission,
        config: FormConfiguration,
        crm: ZohoCRMClient = None
    ) -> FieldSyncResult:
        """
        Refresh module metadata, then create Zoho fields for unmatched form fields

        Zoho errors are recorded on the result and in a field_sync log; they
        never stop the CRM push that follows.
        """
        start = time.time()
        result = FieldSyncResult()
        module = config.zoho_module

        try:
            await self.ensure_fresh(module, crm)
        except (HubError, httpx.HTTPError) as e:
            message = e.message if isinstance(e, HubError) else str(e)
            logger.warning(f"Could not refresh {module} field metadata: {message}")
            result.errors.append(f"Field metadata refresh failed: {message}")

        unmatched: Dict[str, Any] = {}
        if self.engine.should_auto_create_fields(config):
            unmatched = self.unmatched_fields(submission.submission_data, config)
        result.fields_processed = len(unmatched)

        for form_field, value in unmatched.items():
            try:
                created = await self.create_field(module, form_field, value, crm)
            except (HubError, httpx.HTTPError) as e:
                message = e.message if isinstance(e, HubError) else str(e)
                logger.error(f"Failed to create field {form_field}: {message}")
                result.failed.append(form_field)
                result.errors.append(f"Failed to create field {form_field}: {message}")
                continue
            result.fields_created.append(created.field_api_name)

        result.success = not result.errors
        if unmatched or result.errors:
            self.storage.create_submission_log(
                submission_id=submission.id,
                operation=Operation.FIELD_SYNC,
                status=LogStatus.SUCCESS if result.success else LogStatus.FAILED,
                details={"created": result.fields_created, "failed": result.failed, "module": module},
                error_message="; ".join(result.errors) or None,
                duration=int((time.time() - start) * 1000)
            )
        logger.info(
            f"Field sync for submission {submission.id}: "
            f"{len(result.fields_created)} created, {len(result.errors)} errors"
        )
        return result

    def get_cached_fields(self, zoho_module: str) -> List[FieldMetadata]:
        return self.storage.get_field_metadata(zoho_module)

