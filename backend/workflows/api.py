# backend/workflows/api.py
# Workflow automation API: CRUD, toggle, execute, executions, templates, trigger fan-out

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from core import HubError, to_http_exception
from core.models import TriggerType, WorkflowStatus
from core.storage import storage
from auth import require_admin, require_automation_key
from .engine import workflow_engine
from .templates import get_all_templates, get_template

router = APIRouter(prefix="/api", tags=["Workflows"])


class WorkflowCreate(BaseModel):
    name: str
    description: Optional[str] = None
    trigger_type: TriggerType
    trigger_config: Dict[str, Any] = {}
    conditions: List[Dict[str, Any]] = []
    actions: List[Dict[str, Any]] = []
    status: WorkflowStatus = WorkflowStatus.PAUSED


class WorkflowUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    trigger_config: Optional[Dict[str, Any]] = None
    conditions: Optional[List[Dict[str, Any]]] = None
    actions: Optional[List[Dict[str, Any]]] = None
    status: Optional[WorkflowStatus] = None


class FromTemplateRequest(BaseModel):
    template_name: str
    overrides: Dict[str, Any] = {}
    variables: Dict[str, Any] = {}


class ExecuteRequest(BaseModel):
    context: Dict[str, Any] = {}


# ─────────────────────────────────────────────────────────────────────────────
# Workflows
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/workflows")
async def list_workflows(
    status: Optional[WorkflowStatus] = None,
    trigger_type: Optional[TriggerType] = None,
    user: dict = Depends(require_admin)
):
    workflows = storage.get_automation_workflows(status=status, trigger_type=trigger_type)
    return {"total": len(workflows), "workflows": workflows}


@router.post("/workflows", status_code=201)
async def create_workflow(req: WorkflowCreate, user: dict = Depends(require_admin)):
    return workflow_engine.create_workflow(**req.model_dump())


@router.post("/workflows/from-template", status_code=201)
async def create_from_template(req: FromTemplateRequest, user: dict = Depends(require_admin)):
    """Instantiate a built-in template (starts paused unless overridden)"""
    try:
        return workflow_engine.create_from_template(req.template_name, req.overrides, req.variables)
    except HubError as e:
        raise to_http_exception(e)


@router.get("/workflows/{workflow_id}")
async def get_workflow(workflow_id: int, user: dict = Depends(require_admin)):
    try:
        return workflow_engine.get_workflow(workflow_id)
    except HubError as e:
        raise to_http_exception(e)


@router.put("/workflows/{workflow_id}")
async def update_workflow(workflow_id: int, req: WorkflowUpdate, user: dict = Depends(require_admin)):
    try:
        return workflow_engine.update_workflow(workflow_id, **req.model_dump(exclude_none=True))
    except HubError as e:
        raise to_http_exception(e)


@router.post("/workflows/{workflow_id}/toggle")
async def toggle_workflow(workflow_id: int, user: dict = Depends(require_admin)):
    try:
        return workflow_engine.toggle_workflow(workflow_id)
    except HubError as e:
        raise to_http_exception(e)


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(workflow_id: int, user: dict = Depends(require_admin)):
    try:
        workflow_engine.delete_workflow(workflow_id)
    except HubError as e:
        raise to_http_exception(e)
    return {"success": True, "deleted": workflow_id}


@router.post("/workflows/{workflow_id}/execute")
async def execute_workflow(
    workflow_id: int,
    req: Optional[ExecuteRequest] = None,
    user: dict = Depends(require_admin)
):
    """Run now; a failed action returns 400 and the failed execution is kept"""
    context = req.context if req else {}
    try:
        execution_id = await workflow_engine.execute_workflow(workflow_id, context)
    except HubError as e:
        raise to_http_exception(e)
    execution = next(e for e in storage.get_workflow_executions(workflow_id) if e.id == execution_id)
    return {"success": True, "execution_id": execution_id, "execution": execution}


@router.get("/workflows/{workflow_id}/executions")
async def list_executions(workflow_id: int, user: dict = Depends(require_admin)):
    try:
        return workflow_engine.get_execution_history(workflow_id)
    except HubError as e:
        raise to_http_exception(e)


@router.post("/workflows/trigger/{trigger_type}")
async def trigger_workflows(
    trigger_type: TriggerType,
    req: Optional[ExecuteRequest] = None,
    caller: dict = Depends(require_automation_key)
):
    """Fan a CRM event out to every active workflow of this trigger type (automation key only)"""
    context = req.context if req else {}
    execution_ids = await workflow_engine.execute_workflows_by_trigger(trigger_type, context)
    return {"trigger_type": trigger_type, "executed": len(execution_ids), "execution_ids": execution_ids}


# ─────────────────────────────────────────────────────────────────────────────
# Templates
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/workflow-templates")
async def list_templates():
    return get_all_templates()


@router.get("/workflow-templates/{template_name}")
async def template_detail(template_name: str):
    template = get_template(template_name)
    if not template:
        raise HTTPException(status_code=404, detail=f"Template '{template_name}' not found")
    return {"name": template_name, "template": template}
