# backend/bulk_import/service.py
# Historical spreadsheet import -> stored form submissions (pending CRM push)

import io
import os
from typing import Any, Dict, List, Union

import pandas as pd
from pydantic import BaseModel

from core import BulkImportError, get_logger
from core.storage import Storage, storage as default_storage
from .config import COLUMN_MAPPINGS, FORM_NAME_MAPPING, SUPPORTED_EXTENSIONS

logger = get_logger("Bulk Import")


class RowError(BaseModel):
    row: int
    error: str


class BulkImportResult(BaseModel):
    data_source: str
    total_rows: int = 0
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    errors: List[RowError] = []
    submission_ids: List[int] = []


def excel_date_to_iso(serial: float) -> str:
    """Excel serial day number (1900 date system) -> ISO timestamp"""
    return pd.to_datetime(serial, unit="D", origin="1899-12-30").isoformat()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return bool(pd.isna(value))


def _plain(value: Any) -> Any:
    # numpy scalars -> python
    return value.item() if hasattr(value, "item") else value


def map_row(row: Dict[str, Any], column_mapping: Dict[str, str]) -> Dict[str, Any]:
    form_data = {}
    for column, form_field in column_mapping.items():
        value = row.get(column)
        if _is_blank(value):
            continue
        value = _plain(value)
        if "timestamp" in column.lower() and isinstance(value, (int, float)) and not isinstance(value, bool):
            value = excel_date_to_iso(value)
        form_data[form_field] = value
    return form_data


def read_frame(source: Union[str, io.BytesIO], filename: str) -> pd.DataFrame:
    """First sheet of a workbook, or a CSV; every cell kept as object"""
    ext = os.path.splitext(filename)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise BulkImportError(f"Unsupported file type '{ext}' (expected one of {', '.join(SUPPORTED_EXTENSIONS)})")
    try:
        if ext == ".csv":
            return pd.read_csv(source, dtype=object)
        return pd.read_excel(source, sheet_name=0, dtype=object)
    except (OSError, ValueError, ImportError) as e:
        raise BulkImportError(f"Could not read {filename}: {e}") from e


class BulkImportService:

    def __init__(self, store: Storage = None):
        self.storage = store or default_storage

    def import_from_file(self, file_path: str, data_source: str) -> BulkImportResult:
        self._check_source(data_source)
        if not os.path.exists(file_path):
            raise BulkImportError(f"File not found: {file_path}")
        return self._import_frame(read_frame(file_path, file_path), data_source)

    def import_from_bytes(self, content: bytes, filename: str, data_source: str) -> BulkImportResult:
        """Uploaded file variant"""
        self._check_source(data_source)
        return self._import_frame(read_frame(io.BytesIO(content), filename), data_source)

    @staticmethod
    def _check_source(data_source: str):
        if data_source not in COLUMN_MAPPINGS:
            raise BulkImportError(
                f"Unknown data source '{data_source}' (expected one of {', '.join(COLUMN_MAPPINGS)})"
            )

    def _import_frame(self, frame: pd.DataFrame, data_source: str) -> BulkImportResult:
        column_mapping = COLUMN_MAPPINGS[data_source]
        form_name = FORM_NAME_MAPPING[data_source]
        result = BulkImportResult(data_source=data_source, total_rows=len(frame))
        logger.info(f"Processing {result.total_rows} rows from {data_source}")

        for index, row in enumerate(frame.to_dict(orient="records"), start=1):
            form_data = map_row(row, column_mapping)
            if not form_data:
                result.skipped_count += 1
                continue

            try:
                submission = self.storage.create_form_submission(
                    form_name=form_name,
                    submission_data=form_data,
                    source_form=f"Historical Import - {data_source}",
                    zoho_module="Leads"
                )
            except ValueError as e:
                result.failed_count += 1
                result.errors.append(RowError(row=index, error=str(e)))
                logger.error(f"Row {index} failed: {e}")
                continue

            result.submission_ids.append(submission.id)
            result.success_count += 1
            logger.debug(
                f"Row {index}: created submission {submission.id} for "
                f"{form_data.get('fullName') or form_data.get('email') or form_data.get('emailAddress')}"
            )

        logger.info(
            f"Completed {data_source}: {result.success_count} success, "
            f"{result.failed_count} failed, {result.skipped_count} skipped"
        )
        return result


# Global instance
bulk_import_service = BulkImportService()
