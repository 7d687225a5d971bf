# backend/workflows/resolver.py
# {{placeholder}} substitution for workflow configs

import re
import time
from datetime import datetime, timezone
from typing import Any, Dict

PLACEHOLDER = re.compile(r"\{\{(\w+(?:\.\w+)*)\}\}")

_MISSING = object()


def _lookup(context: Dict[str, Any], path: str) -> Any:
    current: Any = context
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def resolve(template: str, context: Dict[str, Any]) -> str:
    """Replace {{a.b}} with context values; unknown placeholders stay verbatim"""
    def substitute(match):
        value = _lookup(context, match.group(1))
        return match.group(0) if value is _MISSING else _to_text(value)
    return PLACEHOLDER.sub(substitute, template)


def resolve_object(obj: Any, context: Dict[str, Any]) -> Any:
    if isinstance(obj, str):
        return resolve(obj, context)
    if isinstance(obj, list):
        return [resolve_object(item, context) for item in obj]
    if isinstance(obj, dict):
        return {key: resolve_object(value, context) for key, value in obj.items()}
    return obj


def is_unresolved(value: Any) -> bool:
    return isinstance(value, str) and PLACEHOLDER.fullmatch(value.strip()) is not None


def time_context() -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "NOW": now.isoformat(),
        "TODAY": now.date().isoformat(),
        "TIMESTAMP": int(time.time() * 1000)
    }


def resolve_workflow_config(workflow: Dict[str, Any], runtime_context: Dict[str, Any] = None) -> Dict[str, Any]:
    """Resolve trigger_config, conditions and actions of a workflow dict"""
    context = {**(runtime_context or {}), **time_context()}
    return {
        **workflow,
        "trigger_config": resolve_object(workflow.get("trigger_config", {}), context),
        "conditions": resolve_object(workflow.get("conditions", []), context),
        "actions": resolve_object(workflow.get("actions", []), context)
    }
