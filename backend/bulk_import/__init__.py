# backend/bulk_import/__init__.py
# Historical spreadsheet import

from .config import COLUMN_MAPPINGS, FORM_NAME_MAPPING, DATA_SOURCES
from .service import (
    BulkImportService,
    BulkImportResult,
    bulk_import_service,
    map_row,
    excel_date_to_iso
)

__all__ = [
    "COLUMN_MAPPINGS",
    "FORM_NAME_MAPPING",
    "DATA_SOURCES",
    "BulkImportService",
    "BulkImportResult",
    "bulk_import_service",
    "map_row",
    "excel_date_to_iso"
]
