"""
LangGraph Nodes for the Statewise state handler

The state handler never produces a response. System messages are mapped
straight onto state fields; user messages go through state and tool
analysis, tool dispatch and, when the model flagged dependent fields, a
focused post-tool analysis.
"""

import logging
import time
from typing import Any, Dict

from langchain_core.runnables import RunnableConfig

from src.statewise.config.constants import orchestration_settings
from src.statewise.config.prompts import ANALYSIS_PREAMBLE, RECONCILIATION_PREAMBLE
from src.statewise.errors import MalformedModelOutput
from src.statewise.llm.prompt_builder import (
    build_state_and_tools_messages,
    build_system_update_messages,
    build_tool_reconciliation_messages,
)
from src.statewise.llm.response_parser import parse_model_object
from src.statewise.state.changes import mark_changed, values_differ
from src.statewise.tools.dispatcher import normalize_tool_requests

from .nodes import (
    record_timing,
    apply_extracted_state,
    parse_required,
    prompt_context,
    reconcile_into_state,
)
from .state import InteractionState, get_deps

logger = logging.getLogger(__name__)

SYSTEM_LAST_MESSAGE_KEY = "system_last_message"


def _unwrap_state(parsed: Dict[str, Any], model: Dict[str, Any]) -> Any:
    # Models sometimes wrap the bare state object in {"state": ...}
    if "state" not in model and isinstance(parsed.get("state"), dict):
        return parsed["state"]
    return parsed


async def system_update_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """
    Map a system message directly onto state fields.

    The raw message is stored under ``system_last_message``, tracked apart
    from the schema fields.
    """
    node_start_time = time.time()
    logger.info("Applying system message to state")
    deps = get_deps(config)
    ctx = prompt_context(state, deps)

    raw = await deps.llm.generate(build_system_update_messages(ctx))
    parsed = parse_required(raw, "system state")
    apply_extracted_state(
        state, _unwrap_state(parsed, state["state_model"]), force_on_first_run=False
    )

    state["state"][SYSTEM_LAST_MESSAGE_KEY] = state["message"]
    if system_message_changed(state["prev_state"], state["message"]):
        mark_changed(state["state_changed_props"], SYSTEM_LAST_MESSAGE_KEY)

    logger.debug(f"System update changed fields: {state['state_changed_props']}")
    record_timing(state, "system_update_node", node_start_time)
    return state


async def user_analyze_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """
    Analyze a user message for state, tool requests and dependent fields.
    """
    node_start_time = time.time()
    logger.info("Analyzing user message for state and tools")
    deps = get_deps(config)
    ctx = prompt_context(state, deps)

    messages = build_state_and_tools_messages(
        ctx,
        include_tools=True,
        include_post_analysis=True,
        preamble=ANALYSIS_PREAMBLE,
    )
    raw = await deps.llm.generate(messages)
    parsed = parse_required(raw, "state and tools")
    apply_extracted_state(state, parsed.get("state"), force_on_first_run=False)

    if SYSTEM_LAST_MESSAGE_KEY in state["prev_state"]:
        state["state"][SYSTEM_LAST_MESSAGE_KEY] = state["prev_state"][SYSTEM_LAST_MESSAGE_KEY]

    state["tool_requests"] = normalize_tool_requests(parsed.get("tools_to_invoke"))

    known_paths = {field.path for field in state["fields"]}
    flagged = parsed.get("fields_needing_post_analysis") or []
    if isinstance(flagged, list):
        state["post_analysis_fields"] = [
            path for path in dict.fromkeys(flagged)
            if isinstance(path, str) and path in known_paths
        ]

    logger.info(
        f"Model requested {len(state['tool_requests'])} tools, "
        f"{len(state['post_analysis_fields'])} fields flagged for post-analysis"
    )
    record_timing(state, "user_analyze_node", node_start_time)
    return state


async def post_tool_analysis_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """
    Refine the flagged dependent fields from tool results.

    Best effort: unparseable output leaves the state as dispatch left it.
    """
    node_start_time = time.time()
    focus_fields = state["post_analysis_fields"]
    logger.info(f"Running post-tool analysis for: {focus_fields}")
    deps = get_deps(config)
    ctx = prompt_context(state, deps, current=state["state"])

    messages = build_tool_reconciliation_messages(
        ctx,
        state["tool_results"],
        with_response=False,
        focus_fields=focus_fields,
        preamble=RECONCILIATION_PREAMBLE,
    )
    raw = await deps.llm.generate(messages)

    try:
        parsed = parse_model_object(raw)
    except MalformedModelOutput as e:
        logger.warning(f"Ignoring unparseable post-tool analysis: {e.parse_error}")
    else:
        candidate = _unwrap_state(parsed, state["state_model"])
        updated = reconcile_into_state(state, candidate, only_paths=focus_fields)
        logger.debug(f"Post-tool analysis updated: {updated}")

    record_timing(state, "post_tool_analysis_node", node_start_time)
    return state


def route_by_role(state: InteractionState) -> str:
    return "system" if state.get("role") == "system" else "user"


def route_after_user_analyze(state: InteractionState) -> str:
    return "dispatch_tools" if state["tool_requests"] else "persist"


def route_after_handler_dispatch(state: InteractionState) -> str:
    """Post-analysis needs both flagged fields and at least one tool outcome."""
    if not orchestration_settings["handler_post_analysis"]:
        return "persist"
    if state["tool_results"] and state["post_analysis_fields"]:
        return "post_tool_analysis"
    return "persist"


def handler_status_message(state: InteractionState) -> str:
    changed = state["state_changed_props"]
    if not changed:
        return "No state changes detected"
    prefix = "System state" if state.get("role") == "system" else "State"
    return f"{prefix} updated successfully. Changed fields: {', '.join(changed)}"


def system_message_changed(prev_state: Dict[str, Any], message: str) -> bool:
    return values_differ(prev_state.get(SYSTEM_LAST_MESSAGE_KEY), message)
