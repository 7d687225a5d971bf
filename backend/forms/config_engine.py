# backend/forms/config_engine.py
# Form configuration engine: per-form CRM mapping table + TTL cache

import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from core import settings, get_logger, ValidationFailed
from core.models import FormConfiguration, SubmitFieldConfig
from core.storage import Storage, storage as default_storage

logger = get_logger("FormConfigEngine")


class ConfigValidationResult(BaseModel):
    valid: bool
    errors: List[str] = []
    warnings: List[str] = []


class MappedField(BaseModel):
    form_field: str
    zoho_field: str
    value: Any = None


class FilteredFormData(BaseModel):
    """Output of filter_form_data_for_zoho"""
    filtered_data: Dict[str, Any] = {}
    lead_source: str
    excluded_fields: List[str] = []
    mapped_fields: List[MappedField] = []


class SubmissionValidation(BaseModel):
    valid: bool
    missing_required: List[str] = []
    errors: List[str] = []


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _submit_field_errors(submit_fields: Any) -> List[str]:
    if not isinstance(submit_fields, dict):
        return ["Invalid submit fields configuration: expected a mapping"]

    errors = []
    for form_field, entry in submit_fields.items():
        if isinstance(entry, SubmitFieldConfig):
            continue
        try:
            SubmitFieldConfig.model_validate(entry)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            errors.append(f"Invalid submit fields configuration for '{form_field}': {problems}")
    return errors


class FormConfigEngine:
    """
    Looks up how each website form maps onto the CRM.

    Active configurations are memoized for FORM_CONFIG_CACHE_SECONDS; the
    whole cache is reloaded once it goes stale and dropped on any write.
    """

    def __init__(self, store: Storage = None, cache_seconds: int = None):
        self.storage = store or default_storage
        self.cache_timeout = cache_seconds if cache_seconds is not None else settings.FORM_CONFIG_CACHE_SECONDS
        self.config_cache: Dict[str, FormConfiguration] = {}
        self.last_cache_refresh: float = 0
        self.initialized = False

    def initialize(self):
        """Warm the cache once; failures are logged, not raised"""
        if self.initialized:
            return
        try:
            self._refresh_cache()
            logger.info("Initialization complete - cache warmed")
        except Exception as e:
            logger.error(f"Initialization error: {e}")
        # set either way so a broken store doesn't cause retry loops
        self.initialized = True

    # ── Cache ─────────────────────────────────────────────────────────────

    def _should_refresh_cache(self) -> bool:
        return time.time() - self.last_cache_refresh > self.cache_timeout

    def _refresh_cache(self):
        configs = self.storage.get_active_form_configurations()
        self.config_cache = {c.form_name: c for c in configs}
        self.last_cache_refresh = time.time()
        logger.info(f"Cache refreshed with {len(configs)} configurations")

    def clear_cache(self):
        self.config_cache.clear()
        self.last_cache_refresh = 0

    # ── Lookups ───────────────────────────────────────────────────────────

    def get_form_configuration(self, form_name: str) -> Optional[FormConfiguration]:
        if self._should_refresh_cache():
            self._refresh_cache()

        cached = self.config_cache.get(form_name)
        if cached:
            return cached

        config = self.storage.get_form_configuration(form_name)
        if config:
            self.config_cache[form_name] = config
        return config

    def get_active_form_configurations(self) -> List[FormConfiguration]:
        return self.storage.get_active_form_configurations()

    def get_all_form_configurations(self) -> List[FormConfiguration]:
        return self.storage.get_form_configurations()

    # ── Validation ────────────────────────────────────────────────────────

    def validate_form_configuration(self, config: Dict[str, Any]) -> ConfigValidationResult:
        """Check a (possibly partial) configuration dict"""
        errors = []
        warnings = []

        if _blank(config.get("form_name")):
            errors.append("Form name is required")
        if _blank(config.get("zoho_module")):
            errors.append("Zoho module is required")
        if _blank(config.get("lead_source_tag")):
            warnings.append("Lead source tag is recommended for CRM identification")

        submit_fields = config.get("submit_fields")
        if submit_fields:
            errors.extend(_submit_field_errors(submit_fields))
        else:
            warnings.append("No submit fields configured - all form fields will be excluded from CRM sync")

        display_fields = config.get("display_fields")
        if display_fields is not None and not isinstance(display_fields, list):
            errors.append("Display fields must be an array")

        return ConfigValidationResult(valid=not errors, errors=errors, warnings=warnings)

    # ── Mapping ───────────────────────────────────────────────────────────

    def filter_form_data_for_zoho(self, form_data: Dict[str, Any], config: FormConfiguration) -> FilteredFormData:
        filtered: Dict[str, Any] = {}
        excluded: List[str] = []
        mapped: List[MappedField] = []

        for form_field, value in form_data.items():
            field_config = config.submit_fields.get(form_field)
            simple_mapping = config.field_mappings.get(form_field)

            if field_config:
                zoho_field = field_config.zoho_field
            elif simple_mapping:
                zoho_field = simple_mapping
            elif not config.strict_mapping:
                zoho_field = form_field
            else:
                excluded.append(form_field)
                continue

            filtered[zoho_field] = value
            mapped.append(MappedField(form_field=form_field, zoho_field=zoho_field, value=value))

        lead_source = config.lead_source_tag or f"Form: {config.form_name}"

        logger.info(
            f'Filtered form data for "{config.form_name}": {len(form_data)} fields, '
            f"{len(mapped)} mapped, {len(excluded)} excluded, strict={config.strict_mapping}"
        )
        return FilteredFormData(
            filtered_data=filtered,
            lead_source=lead_source,
            excluded_fields=excluded,
            mapped_fields=mapped
        )

    def get_configured_zoho_fields(self, config: FormConfiguration) -> List[str]:
        return [f.zoho_field for f in config.submit_fields.values()]

    def get_required_fields(self, config: FormConfiguration) -> List[str]:
        return [name for name, f in config.submit_fields.items() if f.required]

    def validate_submission_data(self, form_data: Dict[str, Any], config: FormConfiguration) -> SubmissionValidation:
        missing = [
            field for field in self.get_required_fields(config)
            if form_data.get(field) is None or form_data.get(field) == ""
        ]
        errors = [f"Missing required fields: {', '.join(missing)}"] if missing else []
        return SubmissionValidation(valid=not missing, missing_required=missing, errors=errors)

    def should_auto_create_fields(self, config: FormConfiguration) -> bool:
        return True if config.auto_create_fields is None else config.auto_create_fields

    # ── CRUD ──────────────────────────────────────────────────────────────

    def create_form_configuration(
        self,
        form_name: str,
        zoho_module: str = "Leads",
        lead_source_tag: Optional[str] = None,
        display_fields: Optional[List[str]] = None,
        submit_fields: Optional[Dict[str, Any]] = None,
        field_mappings: Optional[Dict[str, str]] = None,
        strict_mapping: bool = False,
        auto_create_fields: bool = True,
        description: Optional[str] = None,
        **extra
    ) -> FormConfiguration:
        data = {
            "form_name": form_name,
            "zoho_module": zoho_module or "Leads",
            "lead_source_tag": lead_source_tag,
            "display_fields": display_fields if display_fields is not None else [],
            "submit_fields": submit_fields or {},
            "field_mappings": field_mappings or {},
            "strict_mapping": strict_mapping,
            "auto_create_fields": auto_create_fields,
            "description": description,
            **extra
        }
        validation = self.validate_form_configuration(data)
        if not validation.valid:
            raise ValidationFailed(
                f"Invalid configuration: {'; '.join(validation.errors)}",
                errors=validation.errors
            )
        if self.storage.get_form_configuration(form_name):
            raise ValidationFailed(f"Form configuration '{form_name}' already exists")

        data["lead_source_tag"] = lead_source_tag or f"Form: {form_name}"
        config = self.storage.create_form_configuration(is_active=True, **data)
        self.clear_cache()
        return config

    def update_form_configuration(self, form_name: str, **updates) -> Optional[FormConfiguration]:
        if updates.get("submit_fields"):
            errors = _submit_field_errors(updates["submit_fields"])
            if errors:
                raise ValidationFailed(f"Invalid configuration: {'; '.join(errors)}", errors=errors)
        updated = self.storage.update_form_configuration_by_name(form_name, **updates)
        if updated:
            self.clear_cache()
        return updated

    def delete_form_configuration(self, form_name: str) -> bool:
        deleted = self.storage.delete_form_configuration_by_name(form_name)
        if deleted:
            self.clear_cache()
        return deleted

    def get_or_create_default_config(self, form_name: str) -> FormConfiguration:
        config = self.get_form_configuration(form_name)
        if config:
            return config

        logger.info(f'No configuration found for "{form_name}", creating default')
        return self.create_form_configuration(
            form_name=form_name,
            zoho_module="Leads",
            lead_source_tag=f"Form: {form_name}",
            strict_mapping=False,
            auto_create_fields=True,
            description=f"Auto-generated configuration for {form_name}"
        )


# Global instance
form_config_engine = FormConfigEngine()
