# backend/forms/api.py
# Form API router: dynamic submissions, public forms, retries, form configs

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel

from core import HubError, to_http_exception
from core.models import FormConfiguration, ProcessingStatus, SyncStatus
from core.storage import storage
from auth import require_admin, check_rate_limit, contact_rate_limiter
from auth.middleware import client_ip
from .config_engine import form_config_engine
from .processor import form_processor
from .retry import retry_service
from .public import (
    public_forms,
    parse_form,
    ContactRequest,
    NewsletterRequest,
    MembershipApplication
)

router = APIRouter(prefix="/api", tags=["Forms"])


class SubmitRequest(BaseModel):
    form_name: str
    data: Dict[str, Any]
    source_url: Optional[str] = None


class FormConfigRequest(BaseModel):
    form_name: str
    zoho_module: str = "Leads"
    zoho_layout_id: Optional[str] = None
    zoho_layout_name: Optional[str] = None
    lead_source_tag: Optional[str] = None
    display_fields: List[str] = []
    submit_fields: Dict[str, Any] = {}
    field_mappings: Dict[str, str] = {}
    strict_mapping: bool = False
    auto_create_fields: bool = True
    description: Optional[str] = None


class FormConfigUpdate(BaseModel):
    zoho_module: Optional[str] = None
    zoho_layout_id: Optional[str] = None
    zoho_layout_name: Optional[str] = None
    lead_source_tag: Optional[str] = None
    display_fields: Optional[List[str]] = None
    submit_fields: Optional[Dict[str, Any]] = None
    field_mappings: Optional[Dict[str, str]] = None
    strict_mapping: Optional[bool] = None
    auto_create_fields: Optional[bool] = None
    is_active: Optional[bool] = None
    description: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# Submissions
# ─────────────────────────────────────────────────────────────────────────────

@router.post("/forms/submit")
async def submit_form(req: SubmitRequest):
    """Store a form post and push it to Zoho CRM"""
    try:
        result = await form_processor.process_submission(req.form_name, req.data, req.source_url)
    except HubError as e:
        raise to_http_exception(e)
    return result


@router.get("/forms/submissions")
async def list_submissions(
    form_name: Optional[str] = None,
    processing_status: Optional[ProcessingStatus] = None,
    sync_status: Optional[SyncStatus] = None,
    user: dict = Depends(require_admin)
):
    submissions = storage.get_form_submissions(
        form_name=form_name,
        processing_status=processing_status,
        sync_status=sync_status
    )
    return {"total": len(submissions), "submissions": submissions}


@router.get("/forms/submissions/{submission_id}")
async def get_submission(submission_id: int, user: dict = Depends(require_admin)):
    submission = storage.get_form_submission(submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail=f"Submission {submission_id} not found")
    return {"submission": submission, "logs": storage.get_submission_logs(submission_id)}


# ─────────────────────────────────────────────────────────────────────────────
# Retries
# ─────────────────────────────────────────────────────────────────────────────

@router.post("/forms/submissions/{submission_id}/retry")
async def retry_submission(submission_id: int, user: dict = Depends(require_admin)):
    if not storage.get_form_submission(submission_id):
        raise HTTPException(status_code=404, detail=f"Submission {submission_id} not found")
    try:
        return await retry_service.retry_submission(submission_id)
    except HubError as e:
        raise to_http_exception(e)


@router.post("/forms/retry-all")
async def retry_all(user: dict = Depends(require_admin)):
    if retry_service.is_processing:
        raise HTTPException(status_code=409, detail="Retry process is already running")
    try:
        return await retry_service.retry_all_failed()
    except HubError as e:
        raise to_http_exception(e)


@router.post("/forms/retry-due")
async def retry_due(user: dict = Depends(require_admin)):
    """Retry failed submissions whose backoff has elapsed"""
    if retry_service.is_processing:
        raise HTTPException(status_code=409, detail="Retry process is already running")
    try:
        return await retry_service.process_due_retries()
    except HubError as e:
        raise to_http_exception(e)


@router.get("/forms/retry-stats")
async def retry_stats(user: dict = Depends(require_admin)):
    return retry_service.get_retry_statistics()


@router.post("/forms/process-pending")
async def process_pending(user: dict = Depends(require_admin)):
    """Push stored submissions that were never sent (historical imports)"""
    return await form_processor.process_pending_submissions()


# ─────────────────────────────────────────────────────────────────────────────
# Zoho field metadata
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/forms/fields/{zoho_module}")
async def list_fields(zoho_module: str, user: dict = Depends(require_admin)):
    fields = form_processor.field_sync.get_cached_fields(zoho_module)
    return {"module": zoho_module, "total": len(fields), "fields": fields}


@router.post("/forms/fields/{zoho_module}/sync")
async def sync_fields(zoho_module: str, user: dict = Depends(require_admin)):
    """Reload a module's field definitions from Zoho CRM"""
    try:
        count = await form_processor.field_sync.sync_module_fields(zoho_module, crm=form_processor.crm)
    except HubError as e:
        raise to_http_exception(e)
    return {"module": zoho_module, "synced": count}


# ─────────────────────────────────────────────────────────────────────────────
# Form configurations
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/forms/configs")
async def list_configs(active_only: bool = False, user: dict = Depends(require_admin)):
    if active_only:
        return form_config_engine.get_active_form_configurations()
    return form_config_engine.get_all_form_configurations()


@router.get("/forms/configs/{form_name}", response_model=FormConfiguration)
async def get_config(form_name: str, user: dict = Depends(require_admin)):
    config = form_config_engine.get_form_configuration(form_name)
    if not config:
        raise HTTPException(status_code=404, detail=f"No configuration for form '{form_name}'")
    return config


@router.post("/forms/configs/validate")
async def validate_config(payload: Dict[str, Any] = Body(...), user: dict = Depends(require_admin)):
    return form_config_engine.validate_form_configuration(payload)


@router.post("/forms/configs", response_model=FormConfiguration, status_code=201)
async def create_config(req: FormConfigRequest, user: dict = Depends(require_admin)):
    try:
        return form_config_engine.create_form_configuration(**req.model_dump())
    except HubError as e:
        raise to_http_exception(e)


@router.put("/forms/configs/{form_name}", response_model=FormConfiguration)
async def update_config(form_name: str, req: FormConfigUpdate, user: dict = Depends(require_admin)):
    try:
        updated = form_config_engine.update_form_configuration(form_name, **req.model_dump(exclude_none=True))
    except HubError as e:
        raise to_http_exception(e)
    if not updated:
        raise HTTPException(status_code=404, detail=f"No configuration for form '{form_name}'")
    return updated


@router.delete("/forms/configs/{form_name}")
async def delete_config(form_name: str, user: dict = Depends(require_admin)):
    if not form_config_engine.delete_form_configuration(form_name):
        raise HTTPException(status_code=404, detail=f"No configuration for form '{form_name}'")
    return {"success": True, "deleted": form_name}


# ─────────────────────────────────────────────────────────────────────────────
# Public website forms
# ─────────────────────────────────────────────────────────────────────────────

@router.post(
    "/contact",
    status_code=201,
    dependencies=[Depends(check_rate_limit(contact_rate_limiter))]
)
async def contact(request: Request, payload: Dict[str, Any] = Body(...)):
    """Contact form (3 per IP per hour, spam + CAPTCHA checks)"""
    try:
        form = parse_form(ContactRequest, payload)
        return public_forms.submit_contact(form, client_ip(request))
    except HubError as e:
        raise to_http_exception(e)


@router.post("/newsletter")
async def newsletter(payload: Dict[str, Any] = Body(...)):
    try:
        form = parse_form(NewsletterRequest, payload)
        return await public_forms.subscribe_newsletter(form)
    except HubError as e:
        raise to_http_exception(e)


@router.post("/membership")
async def membership(payload: Dict[str, Any] = Body(...)):
    try:
        application = parse_form(MembershipApplication, payload)
        return await public_forms.submit_membership(application)
    except HubError as e:
        raise to_http_exception(e)
