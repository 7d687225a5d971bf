# backend/core/models.py
# Domain records: submissions, form configs, workflows, executions

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class LogStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"


class Operation(str, Enum):
    RECEIVED = "received"
    FIELD_SYNC = "field_sync"
    CRM_PUSH = "crm_push"
    RETRY_ATTEMPT = "retry_attempt"


class WorkflowStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class TriggerType(str, Enum):
    CRM_RECORD_CREATED = "crm_record_created"
    CRM_RECORD_UPDATED = "crm_record_updated"
    CRM_FIELD_CHANGED = "crm_field_changed"
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class ActionType(str, Enum):
    ADD_TO_CAMPAIGN = "add_to_campaign"
    SEND_EMAIL = "send_email"
    UPDATE_CRM_FIELD = "update_crm_field"
    CREATE_CRM_RECORD = "create_crm_record"
    WAIT = "wait"
    HTTP_REQUEST = "http_request"


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


FIELD_TYPES = ("text", "email", "phone", "picklist", "multiselectpicklist", "boolean")


# ─────────────────────────────────────────────────────────────────────────────
# Form submissions
# ─────────────────────────────────────────────────────────────────────────────

class FormSubmission(BaseModel):
    """A stored website form submission"""
    id: int
    form_name: str
    submission_data: Dict[str, Any]
    source_form: str
    zoho_module: str = "Leads"
    zoho_crm_id: Optional[str] = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    sync_status: SyncStatus = SyncStatus.PENDING
    error_message: Optional[str] = None
    retry_count: int = 0
    last_retry_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class SubmissionLog(BaseModel):
    """One operation performed on a submission"""
    id: int
    submission_id: int
    operation: Operation
    status: LogStatus
    details: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    duration: Optional[int] = None  # ms
    created_at: datetime = Field(default_factory=datetime.now)


# ─────────────────────────────────────────────────────────────────────────────
# Form configuration
# ─────────────────────────────────────────────────────────────────────────────

class SubmitFieldConfig(BaseModel):
    """How one form field lands in the CRM"""
    zoho_field: str
    label: str
    required: bool = False
    field_type: Optional[str] = None
    max_length: Optional[int] = None
    picklist_values: Optional[List[str]] = None

    @field_validator("zoho_field", "label")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("field_type")
    @classmethod
    def _known_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in FIELD_TYPES:
            raise ValueError(f"unknown field type '{v}'")
        return v


class FormConfiguration(BaseModel):
    """Per-form CRM mapping table"""
    id: int
    form_name: str
    zoho_module: str = "Leads"
    zoho_layout_id: Optional[str] = None
    zoho_layout_name: Optional[str] = None
    lead_source_tag: Optional[str] = None
    display_fields: List[str] = []
    submit_fields: Dict[str, SubmitFieldConfig] = {}
    field_mappings: Dict[str, str] = {}  # legacy form_field -> zoho_field
    strict_mapping: bool = False
    auto_create_fields: bool = True
    is_active: bool = True
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class FieldMetadata(BaseModel):
    """Cached Zoho field definition"""
    zoho_module: str
    field_api_name: str
    field_label: str
    data_type: str = "text"
    is_custom_field: bool = False
    is_required: bool = False
    max_length: Optional[int] = None
    picklist_values: Optional[List[str]] = None
    last_synced: datetime = Field(default_factory=datetime.now)


# ─────────────────────────────────────────────────────────────────────────────
# Automation workflows
# ─────────────────────────────────────────────────────────────────────────────

class AutomationWorkflow(BaseModel):
    """trigger -> conditions -> actions"""
    id: int
    name: str
    description: Optional[str] = None
    trigger_type: TriggerType
    trigger_config: Dict[str, Any] = {}
    conditions: List[Dict[str, Any]] = []
    actions: List[Dict[str, Any]] = []
    status: WorkflowStatus = WorkflowStatus.ACTIVE
    execution_count: int = 0
    last_executed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class WorkflowExecution(BaseModel):
    id: int
    workflow_id: int
    status: ExecutionStatus = ExecutionStatus.PENDING
    trigger_data: Optional[Dict[str, Any]] = None
    execution_context: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None  # ms


class ActionExecution(BaseModel):
    id: int
    execution_id: int
    action_type: str
    action_config: Dict[str, Any] = {}
    status: ExecutionStatus = ExecutionStatus.PENDING
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None
