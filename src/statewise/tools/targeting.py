"""
Policies deciding which state field receives a tool's result.

The dispatcher takes the policy as a parameter, so a stricter mapping can
replace the default without touching dispatch itself.
"""

from typing import Any, Callable, Dict, Optional

from src.statewise.config.constants import orchestration_settings

TargetPolicy = Callable[[Dict[str, Any]], Optional[str]]


def default_target_field(request: Dict[str, Any]) -> Optional[str]:
    """
    Prefer the model-declared ``state_field``; otherwise route any tool whose
    name or stated reason mentions "steps" to the task steps field.
    """
    declared = request.get("state_field")
    if isinstance(declared, str) and declared:
        return declared

    tool_name = str(request.get("tool_name") or "").lower()
    reason = str(request.get("reason") or "").lower()
    if "steps" in tool_name or "steps" in reason:
        return orchestration_settings["task_steps_field"]

    return None


def declared_target_field(request: Dict[str, Any]) -> Optional[str]:
    """Strict policy: only the model-declared ``state_field`` is honoured."""
    declared = request.get("state_field")
    return declared if isinstance(declared, str) and declared else None
