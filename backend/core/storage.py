# backend/core/storage.py
# Storage interface + in-memory implementation

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import (
    ActionExecution,
    AutomationWorkflow,
    FieldMetadata,
    FormConfiguration,
    FormSubmission,
    SubmissionLog,
    WorkflowExecution,
)


class Storage(ABC):
    """Persistence operations used by the services"""

    # Form submissions
    @abstractmethod
    def create_form_submission(self, **data) -> FormSubmission:
        pass

    @abstractmethod
    def get_form_submission(self, submission_id: int) -> Optional[FormSubmission]:
        pass

    @abstractmethod
    def get_form_submissions(self, **filters) -> List[FormSubmission]:
        pass

    @abstractmethod
    def update_form_submission(self, submission_id: int, **updates) -> Optional[FormSubmission]:
        pass

    # Submission logs
    @abstractmethod
    def create_submission_log(self, **data) -> SubmissionLog:
        pass

    @abstractmethod
    def get_submission_logs(self, submission_id: int) -> List[SubmissionLog]:
        pass

    @abstractmethod
    def get_submission_logs_by_operation(self, operation: str) -> List[SubmissionLog]:
        pass

    # Form configurations
    @abstractmethod
    def create_form_configuration(self, **data) -> FormConfiguration:
        pass

    @abstractmethod
    def get_form_configuration(self, form_name: str) -> Optional[FormConfiguration]:
        pass

    @abstractmethod
    def get_form_configurations(self) -> List[FormConfiguration]:
        pass

    @abstractmethod
    def get_active_form_configurations(self) -> List[FormConfiguration]:
        pass

    @abstractmethod
    def update_form_configuration_by_name(self, form_name: str, **updates) -> Optional[FormConfiguration]:
        pass

    @abstractmethod
    def delete_form_configuration_by_name(self, form_name: str) -> bool:
        pass

    # Field metadata
    @abstractmethod
    def upsert_field_metadata(self, field: FieldMetadata) -> FieldMetadata:
        pass

    @abstractmethod
    def get_field_metadata(self, zoho_module: str) -> List[FieldMetadata]:
        pass

    # Workflows
    @abstractmethod
    def create_automation_workflow(self, **data) -> AutomationWorkflow:
        pass

    @abstractmethod
    def get_automation_workflow(self, workflow_id: int) -> Optional[AutomationWorkflow]:
        pass

    @abstractmethod
    def get_automation_workflows(self, **filters) -> List[AutomationWorkflow]:
        pass

    @abstractmethod
    def update_automation_workflow(self, workflow_id: int, **updates) -> Optional[AutomationWorkflow]:
        pass

    @abstractmethod
    def delete_automation_workflow(self, workflow_id: int) -> bool:
        pass

    @abstractmethod
    def increment_execution_count(self, workflow_id: int) -> None:
        pass

    # Executions
    @abstractmethod
    def create_workflow_execution(self, **data) -> WorkflowExecution:
        pass

    @abstractmethod
    def update_workflow_execution(self, execution_id: int, **updates) -> Optional[WorkflowExecution]:
        pass

    @abstractmethod
    def get_workflow_executions(self, workflow_id: Optional[int] = None) -> List[WorkflowExecution]:
        pass

    @abstractmethod
    def create_action_execution(self, **data) -> ActionExecution:
        pass

    @abstractmethod
    def update_action_execution(self, action_id: int, **updates) -> Optional[ActionExecution]:
        pass

    @abstractmethod
    def get_action_executions(self, execution_id: int) -> List[ActionExecution]:
        pass


def _apply(record, updates: Dict[str, Any], touch: bool = True):
    """Return a copy of record with updates applied"""
    if touch and "updated_at" in type(record).model_fields:
        updates = {**updates, "updated_at": datetime.now()}
    data = record.model_dump()
    data.update(updates)
    return type(record).model_validate(data)


def _matches(record, filters: Dict[str, Any]) -> bool:
    for key, value in filters.items():
        if value is None:
            continue
        if getattr(record, key) != value:
            return False
    return True


class MemStorage(Storage):
    """Process-local storage (one instance per app)"""

    def __init__(self):
        self.clear()

    def clear(self):
        """Drop every table and reset id sequences"""
        self.submissions: Dict[int, FormSubmission] = {}
        self.submission_logs: Dict[int, SubmissionLog] = {}
        self.form_configs: Dict[str, FormConfiguration] = {}
        self.field_metadata: Dict[str, Dict[str, FieldMetadata]] = {}
        self.workflows: Dict[int, AutomationWorkflow] = {}
        self.executions: Dict[int, WorkflowExecution] = {}
        self.action_executions: Dict[int, ActionExecution] = {}
        self._ids: Dict[str, int] = {}

    def _next_id(self, table: str) -> int:
        self._ids[table] = self._ids.get(table, 0) + 1
        return self._ids[table]

    # ── Form submissions ──────────────────────────────────────────────────

    def create_form_submission(self, **data) -> FormSubmission:
        submission = FormSubmission(id=self._next_id("submissions"), **data)
        self.submissions[submission.id] = submission
        return submission

    def get_form_submission(self, submission_id: int) -> Optional[FormSubmission]:
        return self.submissions.get(submission_id)

    def get_form_submissions(self, **filters) -> List[FormSubmission]:
        return [s for s in self.submissions.values() if _matches(s, filters)]

    def update_form_submission(self, submission_id: int, **updates) -> Optional[FormSubmission]:
        current = self.submissions.get(submission_id)
        if not current:
            return None
        updated = _apply(current, updates)
        self.submissions[submission_id] = updated
        return updated

    # ── Submission logs ───────────────────────────────────────────────────

    def create_submission_log(self, **data) -> SubmissionLog:
        log = SubmissionLog(id=self._next_id("submission_logs"), **data)
        self.submission_logs[log.id] = log
        return log

    def get_submission_logs(self, submission_id: int) -> List[SubmissionLog]:
        return [l for l in self.submission_logs.values() if l.submission_id == submission_id]

    def get_submission_logs_by_operation(self, operation: str) -> List[SubmissionLog]:
        return [l for l in self.submission_logs.values() if l.operation == operation]

    # ── Form configurations ───────────────────────────────────────────────

    def create_form_configuration(self, **data) -> FormConfiguration:
        name = data.get("form_name")
        if name in self.form_configs:
            raise ValueError(f"Form configuration '{name}' already exists")
        config = FormConfiguration(id=self._next_id("form_configs"), **data)
        self.form_configs[config.form_name] = config
        return config

    def get_form_configuration(self, form_name: str) -> Optional[FormConfiguration]:
        return self.form_configs.get(form_name)

    def get_form_configurations(self) -> List[FormConfiguration]:
        return list(self.form_configs.values())

    def get_active_form_configurations(self) -> List[FormConfiguration]:
        return [c for c in self.form_configs.values() if c.is_active]

    def update_form_configuration_by_name(self, form_name: str, **updates) -> Optional[FormConfiguration]:
        current = self.form_configs.get(form_name)
        if not current:
            return None
        updates.pop("form_name", None)
        updated = _apply(current, updates)
        self.form_configs[form_name] = updated
        return updated

    def delete_form_configuration_by_name(self, form_name: str) -> bool:
        return self.form_configs.pop(form_name, None) is not None

    # ── Field metadata ────────────────────────────────────────────────────

    def upsert_field_metadata(self, field: FieldMetadata) -> FieldMetadata:
        module = self.field_metadata.setdefault(field.zoho_module, {})
        module[field.field_api_name] = field
        return field

    def get_field_metadata(self, zoho_module: str) -> List[FieldMetadata]:
        return list(self.field_metadata.get(zoho_module, {}).values())

    # ── Workflows ─────────────────────────────────────────────────────────

    def create_automation_workflow(self, **data) -> AutomationWorkflow:
        workflow = AutomationWorkflow(id=self._next_id("workflows"), **data)
        self.workflows[workflow.id] = workflow
        return workflow

    def get_automation_workflow(self, workflow_id: int) -> Optional[AutomationWorkflow]:
        return self.workflows.get(workflow_id)

    def get_automation_workflows(self, **filters) -> List[AutomationWorkflow]:
        return [w for w in self.workflows.values() if _matches(w, filters)]

    def update_automation_workflow(self, workflow_id: int, **updates) -> Optional[AutomationWorkflow]:
        current = self.workflows.get(workflow_id)
        if not current:
            return None
        updated = _apply(current, updates)
        self.workflows[workflow_id] = updated
        return updated

    def delete_automation_workflow(self, workflow_id: int) -> bool:
        if self.workflows.pop(workflow_id, None) is None:
            return False
        # cascade
        execution_ids = [e.id for e in self.executions.values() if e.workflow_id == workflow_id]
        for eid in execution_ids:
            del self.executions[eid]
        for aid in [a.id for a in self.action_executions.values() if a.execution_id in execution_ids]:
            del self.action_executions[aid]
        return True

    def increment_execution_count(self, workflow_id: int) -> None:
        current = self.workflows.get(workflow_id)
        if current:
            self.workflows[workflow_id] = _apply(current, {
                "execution_count": current.execution_count + 1,
                "last_executed_at": datetime.now()
            })

    # ── Executions ────────────────────────────────────────────────────────

    def create_workflow_execution(self, **data) -> WorkflowExecution:
        execution = WorkflowExecution(id=self._next_id("executions"), **data)
        self.executions[execution.id] = execution
        return execution

    def update_workflow_execution(self, execution_id: int, **updates) -> Optional[WorkflowExecution]:
        current = self.executions.get(execution_id)
        if not current:
            return None
        updated = _apply(current, updates, touch=False)
        self.executions[execution_id] = updated
        return updated

    def get_workflow_executions(self, workflow_id: Optional[int] = None) -> List[WorkflowExecution]:
        return [
            e for e in self.executions.values()
            if workflow_id is None or e.workflow_id == workflow_id
        ]

    def create_action_execution(self, **data) -> ActionExecution:
        action = ActionExecution(id=self._next_id("action_executions"), **data)
        self.action_executions[action.id] = action
        return action

    def update_action_execution(self, action_id: int, **updates) -> Optional[ActionExecution]:
        current = self.action_executions.get(action_id)
        if not current:
            return None
        updated = _apply(current, updates, touch=False)
        self.action_executions[action_id] = updated
        return updated

    def get_action_executions(self, execution_id: int) -> List[ActionExecution]:
        return [a for a in self.action_executions.values() if a.execution_id == execution_id]


# Global instance
storage = MemStorage()
