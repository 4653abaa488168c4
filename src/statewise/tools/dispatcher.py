"""
Tool dispatch for the Statewise engine.

Runs model-proposed tool invocations one at a time, in the order requested,
and folds each successful result into the working state.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from src.statewise.errors import ToolExecutionError
from src.statewise.state.changes import mark_changed, values_differ
from src.statewise.state.schema import FieldSpec, get_path, set_path

from .catalog import invoke_tool, parse_tool_result, resolve_tool
from .targeting import TargetPolicy, default_target_field

logger = logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    invoked_tool_names: List[str] = field(default_factory=list)
    tool_results: List[Dict[str, Any]] = field(default_factory=list)


def normalize_tool_requests(raw: Any) -> List[Dict[str, Any]]:
    """Keep only request entries with the basic ``{tool_name, ...}`` shape."""
    if not isinstance(raw, list):
        return []
    return [
        request
        for request in raw
        if isinstance(request, dict) and isinstance(request.get("tool_name"), str)
    ]


async def dispatch_tools(
    requests: List[Dict[str, Any]],
    tools: Sequence[Any],
    fields: List[FieldSpec],
    state: Dict[str, Any],
    changed: List[str],
    target_policy: TargetPolicy = default_target_field,
) -> DispatchOutcome:
    """
    Resolve, invoke and absorb a batch of tool requests.

    ``state`` and ``changed`` are updated in place. Unknown tool names are
    skipped without a record; a tool that raises is recorded with an ``error``
    entry and the batch continues.

    Args:
        requests: Tool invocation requests proposed by the model
        tools: Connected tool catalog
        fields: State model fields
        state: Working state, mutated in place
        changed: Working changeset, appended to in place
        target_policy: Picks the state field a result is written to

    Returns:
        Names of tools that ran successfully and one result record per attempt
    """
    outcome = DispatchOutcome()
    known_paths = {f.path for f in fields}

    for request in requests:
        tool_name = request.get("tool_name")
        tool = resolve_tool(tool_name, tools)
        if tool is None:
            logger.debug(f"No connected tool matches '{tool_name}', skipping")
            continue

        params = request.get("input_params") or {}
        state_field = request.get("state_field")
        start_time = time.time()

        try:
            logger.info(f"Invoking tool '{tool.name}'")
            raw_result = await invoke_tool(tool, params)
        except Exception as e:
            error = ToolExecutionError(tool_name, e)
            logger.warning(f"Tool '{tool_name}' failed: {error.message}")
            outcome.tool_results.append(
                {"tool_name": tool_name, "state_field": state_field, "error": error.message}
            )
            continue

        logger.debug(f"Tool '{tool.name}' finished in {time.time() - start_time:.2f}s")
        outcome.tool_results.append(
            {"tool_name": tool_name, "state_field": state_field, "result": raw_result}
        )
        outcome.invoked_tool_names.append(tool_name)

        target = target_policy(request)
        if not target or target not in known_paths:
            if target:
                logger.debug(f"Tool target '{target}' is not a state model field")
            continue

        value = parse_tool_result(raw_result)
        if values_differ(get_path(state, target), value):
            set_path(state, target, value)
            mark_changed(changed, target)
            logger.info(f"State field '{target}' updated from tool '{tool_name}'")

    return outcome
