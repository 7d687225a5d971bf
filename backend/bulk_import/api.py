# backend/bulk_import/api.py
# Historical import upload endpoint

from fastapi import APIRouter, Depends, File, UploadFile

from core import HubError, to_http_exception
from auth import require_admin
from .service import bulk_import_service

router = APIRouter(prefix="/api", tags=["Import"])


# sync route: pandas parsing blocks, so it runs in the threadpool
@router.post("/import/{data_source}")
def import_file(data_source: str, file: UploadFile = File(...), user: dict = Depends(require_admin)):
    """Upload a CANN Contacts / CAS Registration export (.xlsx, .xls, .csv)"""
    content = file.file.read()
    try:
        return bulk_import_service.import_from_bytes(content, file.filename or "", data_source)
    except HubError as e:
        raise to_http_exception(e)
