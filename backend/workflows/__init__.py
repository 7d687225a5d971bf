# backend/workflows/__init__.py
# Workflow automation: templates, placeholder resolution, execution engine

from .engine import WorkflowEngine, evaluate_condition, evaluate_conditions, workflow_engine
from .resolver import resolve, resolve_object, resolve_workflow_config
from .templates import WORKFLOW_TEMPLATES, get_template, get_template_names, get_all_templates

__all__ = [
    "WorkflowEngine",
    "evaluate_condition",
    "evaluate_conditions",
    "workflow_engine",
    "resolve",
    "resolve_object",
    "resolve_workflow_config",
    "WORKFLOW_TEMPLATES",
    "get_template",
    "get_template_names",
    "get_all_templates"
]
