# backend/core/__init__.py
# Shared building blocks: settings, logging, errors, models, storage

from .config import settings, Settings
from .errors import (
    HubError,
    ConfigurationError,
    TokenError,
    CRMError,
    WorkflowError,
    WorkflowNotFound,
    BulkImportError,
    ValidationFailed,
    to_http_exception
)
from .log import get_logger

__all__ = [
    "settings",
    "Settings",
    "HubError",
    "ConfigurationError",
    "TokenError",
    "CRMError",
    "WorkflowError",
    "WorkflowNotFound",
    "BulkImportError",
    "ValidationFailed",
    "to_http_exception",
    "get_logger"
]
