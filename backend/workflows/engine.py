# backend/workflows/engine.py
# Workflow execution engine: trigger check -> conditions -> ordered actions

import asyncio
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from core import settings, get_logger, HubError, WorkflowError, WorkflowNotFound
from core.models import AutomationWorkflow, ExecutionStatus, TriggerType, WorkflowStatus
from core.storage import Storage, storage as default_storage
from crm.client import ZohoCRMClient, crm_client as default_crm_client
from crm.campaigns import ZohoCampaignsClient, campaigns_client as default_campaigns_client
from .resolver import resolve_object, is_unresolved, time_context
from .templates import get_template

logger = get_logger("Workflow Engine")


class TriggerEvaluation(BaseModel):
    should_execute: bool
    trigger_data: Optional[Dict[str, Any]] = None


# ─────────────────────────────────────────────────────────────────────────────
# Conditions
# ─────────────────────────────────────────────────────────────────────────────

def _empty(value: Any) -> bool:
    return value is None or value == "" or value is False or value == [] or value == {}


def _compare(op: str, left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    try:
        if op == "greater_than":
            return float(left) > float(right)
        return float(left) < float(right)
    except (TypeError, ValueError):
        try:
            return left > right if op == "greater_than" else left < right
        except TypeError:
            return False


def evaluate_condition(condition: Dict[str, Any], record: Dict[str, Any]) -> bool:
    field = condition.get("field")
    operator = condition.get("operator")
    expected = condition.get("value")
    actual = (record or {}).get(field)

    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator == "contains":
        return not _empty(actual) and str(expected) in str(actual)
    if operator == "not_contains":
        return _empty(actual) or str(expected) not in str(actual)
    if operator in ("greater_than", "less_than"):
        return _compare(operator, actual, expected)
    if operator == "is_empty":
        return _empty(actual)
    if operator == "is_not_empty":
        return not _empty(actual)

    logger.warning(f"Unknown operator: {operator}")
    return False


def evaluate_conditions(conditions: List[Dict[str, Any]], record: Dict[str, Any]) -> bool:
    """All must pass; an empty list passes"""
    return all(evaluate_condition(c, record) for c in conditions or [])


# ─────────────────────────────────────────────────────────────────────────────
# Engine
# ─────────────────────────────────────────────────────────────────────────────

class WorkflowEngine:

    def __init__(
        self,
        store: Storage = None,
        crm: ZohoCRMClient = None,
        campaigns: ZohoCampaignsClient = None,
        http_transport: httpx.AsyncBaseTransport = None
    ):
        self.storage = store or default_storage
        self.crm = crm or default_crm_client
        self.campaigns = campaigns or default_campaigns_client
        self.http_transport = http_transport
        self.actions = {
            "add_to_campaign": self._add_to_campaign,
            "send_email": self._send_email,
            "update_crm_field": self._update_crm_field,
            "create_crm_record": self._create_crm_record,
            "wait": self._wait,
            "http_request": self._http_request
        }

    # ── Triggers ──────────────────────────────────────────────────────────

    def evaluate_trigger(self, workflow: AutomationWorkflow, context: Dict[str, Any] = None) -> TriggerEvaluation:
        context = context or {}
        config = workflow.trigger_config or {}
        trigger = workflow.trigger_type

        if trigger == TriggerType.MANUAL:
            return TriggerEvaluation(should_execute=True, trigger_data=context)

        if trigger == TriggerType.SCHEDULED:
            return TriggerEvaluation(
                should_execute=True,
                trigger_data={"scheduled_at": datetime.now().isoformat(), **context}
            )

        if trigger in (TriggerType.CRM_RECORD_CREATED, TriggerType.CRM_RECORD_UPDATED, TriggerType.CRM_FIELD_CHANGED):
            if context.get("module") != config.get("module"):
                return TriggerEvaluation(should_execute=False)

            if trigger == TriggerType.CRM_FIELD_CHANGED:
                changed = context.get("changed_fields")
                if changed is not None and config.get("field") not in changed:
                    return TriggerEvaluation(should_execute=False)

            conditions = config.get("conditions")
            if conditions and not evaluate_conditions(conditions, context.get("record") or {}):
                return TriggerEvaluation(should_execute=False)

            return TriggerEvaluation(should_execute=True, trigger_data=context)

        logger.warning(f"Unknown trigger type: {trigger}")
        return TriggerEvaluation(should_execute=False)

    # ── Execution ─────────────────────────────────────────────────────────

    def _finish(self, execution_id: int, status: ExecutionStatus, start: float, error: str = None):
        self.storage.update_workflow_execution(
            execution_id,
            status=status,
            error_message=error,
            completed_at=datetime.now(),
            duration=int((time.time() - start) * 1000)
        )

    async def execute_workflow(self, workflow_id: int, context: Dict[str, Any] = None) -> int:
        """Run one workflow; returns the execution id"""
        context = context or {}
        workflow = self.storage.get_automation_workflow(workflow_id)
        if not workflow:
            raise WorkflowNotFound(f"Workflow {workflow_id} not found")
        if workflow.status != WorkflowStatus.ACTIVE:
            raise WorkflowError(f"Workflow {workflow_id} is not active")

        logger.info(f"Executing workflow: {workflow.name} (ID: {workflow_id})")
        start = time.time()

        evaluation = self.evaluate_trigger(workflow, context)
        if not evaluation.should_execute:
            logger.info(f"Trigger conditions not met for workflow {workflow_id} - creating skipped execution")
            execution = self.storage.create_workflow_execution(
                workflow_id=workflow.id,
                status=ExecutionStatus.SKIPPED,
                execution_context=context
            )
            self._finish(execution.id, ExecutionStatus.SKIPPED, start, "Trigger conditions not met")
            return execution.id

        execution = self.storage.create_workflow_execution(
            workflow_id=workflow.id,
            status=ExecutionStatus.RUNNING,
            trigger_data=evaluation.trigger_data,
            execution_context=context
        )

        record = context.get("record") or {}
        if workflow.conditions and not evaluate_conditions(workflow.conditions, record or context):
            self._finish(execution.id, ExecutionStatus.SKIPPED, start, "Global conditions not met")
            return execution.id

        # record fields resolve as bare {{Field}} placeholders
        run_context = {
            "API_BASE_URL": settings.api_base_url,
            **record,
            **context,
            **(evaluation.trigger_data or {}),
            **time_context()
        }

        for action in workflow.actions:
            try:
                resolved = resolve_object(action, run_context)
                result = await self._execute_action(execution.id, resolved, run_context)
            except WorkflowError as e:
                self._finish(execution.id, ExecutionStatus.FAILED, start, f"Action failed: {e.message}")
                logger.error(f"Workflow {workflow_id} failed: {e.message}")
                raise
            except Exception as e:
                self._finish(execution.id, ExecutionStatus.FAILED, start, f"Action failed: {e}")
                logger.error(f"Workflow {workflow_id} failed: {e}")
                raise WorkflowError(str(e)) from e
            run_context.update(result)

        self._finish(execution.id, ExecutionStatus.COMPLETED, start)
        self.storage.increment_execution_count(workflow.id)
        logger.info(f"Successfully completed workflow {workflow_id}, execution {execution.id}")
        return execution.id

    async def _execute_action(self, execution_id: int, action: Dict[str, Any], context: Dict[str, Any]) -> Dict:
        action_type = action.get("type")
        config = action.get("config") or {}
        record = self.storage.create_action_execution(
            execution_id=execution_id,
            action_type=str(action_type),
            action_config=config,
            status=ExecutionStatus.RUNNING
        )
        start = time.time()

        handler = self.actions.get(action_type)
        try:
            if not handler:
                raise WorkflowError(f"Unknown action type: {action_type}")
            result = await handler(config, context)
        except Exception as e:
            # any handler error fails the action, never leaves it running
            message = e.message if isinstance(e, HubError) else f"{type(e).__name__}: {e}"
            logger.error(f"Action {action_type} failed: {message}")
            self.storage.update_action_execution(
                record.id,
                status=ExecutionStatus.FAILED,
                error_message=message,
                completed_at=datetime.now(),
                duration=int((time.time() - start) * 1000)
            )
            raise WorkflowError(message) from e

        self.storage.update_action_execution(
            record.id,
            status=ExecutionStatus.COMPLETED,
            result=result,
            completed_at=datetime.now(),
            duration=int((time.time() - start) * 1000)
        )
        return result

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def _pick(config_value: Any, *fallbacks: Any) -> Any:
        """First value that is set and not a leftover placeholder"""
        for value in (config_value, *fallbacks):
            if not _empty(value) and not is_unresolved(value):
                return value
        return None

    async def _add_to_campaign(self, config: Dict, context: Dict) -> Dict:
        record = context.get("record") or {}
        list_key = self._pick(config.get("list_key"))
        if not list_key:
            raise WorkflowError("No list key provided for add_to_campaign action")
        email = self._pick(config.get("email"), record.get("Email"), context.get("email"))
        if not email:
            raise WorkflowError("No email address provided for add_to_campaign action")

        contact = {"email": email}
        first = self._pick(config.get("first_name"), record.get("First_Name"), context.get("first_name"))
        last = self._pick(config.get("last_name"), record.get("Last_Name"), context.get("last_name"))
        if first:
            contact["firstName"] = first
        if last:
            contact["lastName"] = last
        contact.update(config.get("additional_fields") or {})

        response = await self.campaigns.add_subscriber(list_key, contact)
        logger.info(f"Added subscriber to list {list_key}")
        return {"subscriber_added": True, "email": email, "list_key": list_key, "response": response}

    async def _send_email(self, config: Dict, context: Dict) -> Dict:
        campaign_key = self._pick(config.get("campaign_key"))
        if not campaign_key:
            raise WorkflowError("No campaign key provided for send_email action")

        schedule_time = config.get("schedule_time") or config.get("scheduleTime")
        if schedule_time:
            when = datetime.fromisoformat(str(schedule_time).replace("Z", "+00:00"))
            response = await self.campaigns.schedule_campaign(campaign_key, when)
            logger.info(f"Scheduled campaign {campaign_key} for {schedule_time}")
            return {"campaign_scheduled": True, "campaign_key": campaign_key,
                    "schedule_time": schedule_time, "response": response}

        response = await self.campaigns.send_campaign(campaign_key)
        logger.info(f"Sent campaign {campaign_key}")
        return {"campaign_sent": True, "campaign_key": campaign_key, "response": response}

    async def _update_crm_field(self, config: Dict, context: Dict) -> Dict:
        record = context.get("record") or {}
        module = config.get("module", "Leads")
        record_id = self._pick(config.get("record_id"), record.get("id"), context.get("record_id"))
        if not record_id:
            raise WorkflowError("No record ID provided for update_crm_field action")

        field = config.get("field")
        value = config.get("value")
        response = await self.crm.update_record(module, str(record_id), {field: value})
        logger.info(f"Updated {module} record {record_id}, field {field}")
        return {"record_updated": True, "module": module, "record_id": record_id,
                "field": field, "value": value, "response": response}

    async def _create_crm_record(self, config: Dict, context: Dict) -> Dict:
        record = context.get("record") or {}
        module = config.get("module", "Leads")
        data = {}
        for key, value in (config.get("data") or {}).items():
            if is_unresolved(value):
                name = value.strip()[2:-2].strip()
                value = record.get(name) or context.get(name)
                if value is None:
                    continue
            data[key] = value

        created = await self.crm.create_record(module, data)
        logger.info(f"Created {module} record {created.get('id')}")
        return {"record_created": True, "module": module, "record_id": created.get("id"), "response": created}

    async def _wait(self, config: Dict, context: Dict) -> Dict:
        duration = float(config.get("duration", 0))
        await asyncio.sleep(duration)
        logger.info(f"Waited for {duration} seconds")
        return {"waited": True, "duration": duration}

    async def _http_request(self, config: Dict, context: Dict) -> Dict:
        url = config.get("url")
        if not url or is_unresolved(url):
            raise WorkflowError("No URL provided for http_request action")
        method = (config.get("method") or "GET").upper()
        body = config.get("body")

        async with httpx.AsyncClient(timeout=30.0, transport=self.http_transport) as client:
            response = await client.request(
                method, url,
                headers=config.get("headers") or {},
                json=body if body is not None and method != "GET" else None
            )
        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        logger.info(f"HTTP {method} request to {url}: {response.status_code}")
        if response.status_code >= 400:
            raise WorkflowError(f"HTTP {method} {url} returned {response.status_code}")
        return {"http_request_complete": True, "url": url, "status": response.status_code, "response": payload}

    # ── Workflow management ───────────────────────────────────────────────

    def create_workflow(self, **data) -> AutomationWorkflow:
        workflow = self.storage.create_automation_workflow(**data)
        logger.info(f"Created workflow: {workflow.name} (ID: {workflow.id})")
        return workflow

    def create_from_template(
        self,
        template_name: str,
        overrides: Dict[str, Any] = None,
        variables: Dict[str, Any] = None
    ) -> AutomationWorkflow:
        """Instantiate a template; variables fill {{KEY}} placeholders such as list keys"""
        template = get_template(template_name)
        if not template:
            raise WorkflowNotFound(f"Template '{template_name}' not found")

        if variables:
            template = {
                **template,
                "trigger_config": resolve_object(template["trigger_config"], variables),
                "conditions": resolve_object(template["conditions"], variables),
                "actions": resolve_object(template["actions"], variables)
            }
        template.update(overrides or {})
        return self.create_workflow(**template)

    def get_workflow(self, workflow_id: int) -> AutomationWorkflow:
        workflow = self.storage.get_automation_workflow(workflow_id)
        if not workflow:
            raise WorkflowNotFound(f"Workflow {workflow_id} not found")
        return workflow

    def update_workflow(self, workflow_id: int, **updates) -> AutomationWorkflow:
        self.get_workflow(workflow_id)
        return self.storage.update_automation_workflow(workflow_id, **updates)

    def toggle_workflow(self, workflow_id: int) -> AutomationWorkflow:
        workflow = self.get_workflow(workflow_id)
        status = WorkflowStatus.PAUSED if workflow.status == WorkflowStatus.ACTIVE else WorkflowStatus.ACTIVE
        logger.info(f"Workflow {workflow_id} -> {status.value}")
        return self.storage.update_automation_workflow(workflow_id, status=status)

    def delete_workflow(self, workflow_id: int) -> None:
        if not self.storage.delete_automation_workflow(workflow_id):
            raise WorkflowNotFound(f"Workflow {workflow_id} not found")
        logger.info(f"Deleted workflow {workflow_id}")

    def get_execution_history(self, workflow_id: int) -> List[Dict[str, Any]]:
        """Executions newest first, each with its action executions"""
        self.get_workflow(workflow_id)
        executions = sorted(
            self.storage.get_workflow_executions(workflow_id),
            key=lambda e: e.id,
            reverse=True
        )
        return [
            {"execution": e, "actions": self.storage.get_action_executions(e.id)}
            for e in executions
        ]

    # ── Fan-out ───────────────────────────────────────────────────────────

    async def execute_workflows_by_trigger(self, trigger_type: str, context: Dict[str, Any] = None) -> List[int]:
        """Run every active workflow for a trigger; failures are logged and skipped"""
        workflows = self.storage.get_automation_workflows(status=WorkflowStatus.ACTIVE, trigger_type=trigger_type)
        execution_ids = []
        for workflow in workflows:
            try:
                execution_ids.append(await self.execute_workflow(workflow.id, context))
            except HubError as e:
                logger.error(f"Failed to execute workflow {workflow.id}: {e.message}")
        return execution_ids


# Global instance
workflow_engine = WorkflowEngine()
