# backend/forms/__init__.py
# Form handling: config engine, field mapping, CRM push, retries, public forms

from .config_engine import FormConfigEngine, form_config_engine
from .field_mapper import SmartFieldMapper, smart_field_mapper
from .field_sync import FieldSyncService, FieldSyncResult
from .processor import FormProcessor, FormProcessingResult, PendingRunResult, form_processor
from .retry import RetryService, RetryStats, retry_service
from .public import PublicFormService, public_forms

__all__ = [
    "FormConfigEngine",
    "form_config_engine",
    "SmartFieldMapper",
    "smart_field_mapper",
    "FieldSyncService",
    "FieldSyncResult",
    "FormProcessor",
    "FormProcessingResult",
    "PendingRunResult",
    "form_processor",
    "RetryService",
    "RetryStats",
    "retry_service",
    "PublicFormService",
    "public_forms"
]
