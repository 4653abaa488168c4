"""
LangGraph Nodes for the Statewise stateful agent

Each node is one stage of an interaction: load prior state, analyze the
message, dispatch tools, reconcile tool results, respond, append history
and persist. Nodes mutate the shared interaction context and return it.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from langchain_core.runnables import RunnableConfig

from src.statewise.errors import MalformedModelOutput
from src.statewise.llm.prompt_builder import (
    PromptContext,
    build_agent_messages,
    build_response_messages,
    build_state_and_tools_messages,
    build_state_extraction_messages,
    build_tool_reconciliation_messages,
)
from src.statewise.llm.response_parser import parse_model_object, strip_code_fence
from src.statewise.state.changes import (
    detect_changes,
    is_first_run,
    mark_changed,
    values_differ,
)
from src.statewise.state.merger import merge_state, restrict_to_model
from src.statewise.state.schema import get_path, set_path
from src.statewise.tools.dispatcher import dispatch_tools, normalize_tool_requests
from src.statewise.utils.message_conversion import append_history_turn, load_history

from .agent_loop import run_agent_loop
from .state import InteractionState, get_deps

logger = logging.getLogger(__name__)

HISTORY_KEY = "conversation_history"


def record_timing(state: InteractionState, node_name: str, start_time: float) -> None:
    metadata = state["processing_metadata"]
    metadata["nodes_executed"].append(node_name)
    metadata["node_timings"][node_name] = time.time() - start_time


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def prompt_context(state: InteractionState, deps, current: Optional[Dict[str, Any]] = None) -> PromptContext:
    """Build prompt inputs from the interaction context."""
    return PromptContext(
        message=state["message"],
        system_prompt=state.get("system_prompt", ""),
        fields=state.get("fields", []),
        state=current if current is not None else state.get("prev_state_model_only", {}),
        tools=deps.tools,
        history=state.get("history") if state.get("track_history") else None,
    )


def parse_required(raw: str, round_name: str) -> Dict[str, Any]:
    """Parse output of a round the interaction cannot do without."""
    try:
        return parse_model_object(raw)
    except MalformedModelOutput as e:
        logger.error(f"Failed to parse {round_name} JSON: {e.parse_error}")
        raise MalformedModelOutput(
            f"failed to parse {round_name} JSON: {e.parse_error}", raw_text=raw
        ) from e


def apply_extracted_state(
    state: InteractionState, candidate: Any, force_on_first_run: bool
) -> None:
    """Merge a first-round candidate and compute the initial changeset."""
    model = state["state_model"]
    prev_only = state["prev_state_model_only"]
    merged = merge_state(candidate, model, prev_only)
    state["state"] = merged
    state["state_changed_props"] = detect_changes(
        prev_only,
        merged,
        state["fields"],
        first_run=force_on_first_run and state.get("is_first_run", False),
    )


def reconcile_into_state(
    state: InteractionState, candidate: Any, only_paths: Optional[List[str]] = None
) -> List[str]:
    """
    Fold a later-round candidate into the working state.

    Returns:
        Paths that changed in this round
    """
    merged = merge_state(candidate, state["state_model"], state["state"])
    updated = []
    for field in state["fields"]:
        if only_paths is not None and field.path not in only_paths:
            continue
        new_value = get_path(merged, field.path)
        if values_differ(get_path(state["state"], field.path), new_value):
            set_path(state["state"], field.path, new_value)
            mark_changed(state["state_changed_props"], field.path)
            updated.append(field.path)
    return updated


def start_node(state: InteractionState) -> InteractionState:
    """
    Entry point of an interaction.

    Initializes processing metadata and every working value.
    """
    node_start_time = time.time()
    logger.info("Starting Statewise interaction pipeline")

    state["processing_metadata"] = {
        "pipeline_id": str(uuid.uuid4()),
        "start_time": node_start_time,
        "nodes_executed": [],
        "node_timings": {},
    }

    state["prev_state"] = {}
    state["prev_state_model_only"] = {}
    state["is_first_run"] = False
    state["history"] = None
    state["state"] = {}
    state["state_changed_props"] = []
    state["tool_requests"] = []
    state["post_analysis_fields"] = []
    state["dispatched"] = False
    state["invoked_tool_names"] = []
    state["tool_results"] = []
    state["response"] = None

    record_timing(state, "start_node", node_start_time)
    logger.debug(f"Pipeline initialized with ID: {state['processing_metadata']['pipeline_id']}")
    return state


async def load_state_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """Read the prior state from the store when state or history is tracked."""
    node_start_time = time.time()
    deps = get_deps(config)
    model = state.get("state_model")

    if model or state.get("track_history"):
        logger.info("Loading previous state")
        state["prev_state"] = await deps.store.get()

    prev_state = state["prev_state"]
    if model:
        state["prev_state_model_only"] = restrict_to_model(prev_state, model)
        state["is_first_run"] = is_first_run(prev_state, model)
        logger.debug(f"First run for this session: {state['is_first_run']}")

    if state.get("track_history"):
        state["history"] = load_history(prev_state.get(HISTORY_KEY))

    record_timing(state, "load_state_node", node_start_time)
    return state


async def single_analyze_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """
    Single-prompt round one.

    Without tools the model returns state and response together; with tools
    it returns state and tool requests and the response waits for the
    finalize round.
    """
    node_start_time = time.time()
    logger.info("Executing single-prompt state analysis")
    deps = get_deps(config)
    ctx = prompt_context(state, deps)

    if state.get("use_tools"):
        messages = build_state_and_tools_messages(ctx, include_tools=True)
    else:
        messages = build_state_extraction_messages(ctx)

    raw = await deps.llm.generate(messages)
    parsed = parse_required(raw, "combined state")
    apply_extracted_state(state, parsed.get("state"), force_on_first_run=True)

    if state.get("use_tools"):
        state["tool_requests"] = normalize_tool_requests(parsed.get("tools_to_invoke"))
        logger.info(f"Model requested {len(state['tool_requests'])} tool invocations")
    else:
        state["response"] = _as_text(parsed.get("response"))

    logger.debug(f"Changed fields after analysis: {state['state_changed_props']}")
    record_timing(state, "single_analyze_node", node_start_time)
    return state


async def double_analyze_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """Double-prompt round one: state and tool requests only."""
    node_start_time = time.time()
    logger.info("Executing double-prompt state analysis")
    deps = get_deps(config)
    ctx = prompt_context(state, deps)

    messages = build_state_and_tools_messages(ctx, include_tools=state.get("use_tools", False))
    raw = await deps.llm.generate(messages)
    parsed = parse_required(raw, "state analysis")
    apply_extracted_state(state, parsed.get("state"), force_on_first_run=True)

    if state.get("use_tools"):
        state["tool_requests"] = normalize_tool_requests(parsed.get("tools_to_invoke"))
        logger.info(f"Model requested {len(state['tool_requests'])} tool invocations")

    record_timing(state, "double_analyze_node", node_start_time)
    return state


async def dispatch_tools_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """Run the requested tools in order and absorb their results."""
    node_start_time = time.time()
    deps = get_deps(config)
    logger.info(f"Dispatching {len(state['tool_requests'])} tool requests")

    outcome = await dispatch_tools(
        state["tool_requests"],
        deps.tools,
        state["fields"],
        state["state"],
        state["state_changed_props"],
        target_policy=deps.target_policy,
    )
    state["dispatched"] = True
    state["invoked_tool_names"] = outcome.invoked_tool_names
    state["tool_results"] = outcome.tool_results

    logger.info(
        f"Tools invoked: {outcome.invoked_tool_names or 'none'} "
        f"({len(outcome.tool_results)} attempts)"
    )
    record_timing(state, "dispatch_tools_node", node_start_time)
    return state


async def single_finalize_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """
    Single-prompt round two: merged state and response from the tool results.

    If the model's answer is not JSON the state stays as it was after
    dispatch and the raw text is used as the response.
    """
    node_start_time = time.time()
    logger.info("Executing single-prompt finalize round")
    deps = get_deps(config)
    ctx = prompt_context(state, deps, current=state["state"])

    messages = build_tool_reconciliation_messages(ctx, state["tool_results"], with_response=True)
    raw = await deps.llm.generate(messages)

    try:
        parsed = parse_model_object(raw)
    except MalformedModelOutput as e:
        logger.warning(f"Finalize output was not JSON, keeping state: {e.parse_error}")
        state["response"] = strip_code_fence(raw or "")
        record_timing(state, "single_finalize_node", node_start_time)
        return state

    updated = reconcile_into_state(state, parsed.get("state"))
    state["response"] = _as_text(parsed.get("response"))
    logger.debug(f"Fields updated in finalize round: {updated}")

    record_timing(state, "single_finalize_node", node_start_time)
    return state


async def reconcile_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """
    Double-prompt post-tool reconciliation.

    Best effort: unparseable output is logged and ignored.
    """
    node_start_time = time.time()
    logger.info("Executing post-tool state reconciliation")
    deps = get_deps(config)
    ctx = prompt_context(state, deps, current=state["state"])

    messages = build_tool_reconciliation_messages(ctx, state["tool_results"], with_response=False)
    raw = await deps.llm.generate(messages)

    try:
        parsed = parse_model_object(raw)
    except MalformedModelOutput as e:
        logger.warning(f"Ignoring unparseable reconciliation output: {e.parse_error}")
    else:
        updated = reconcile_into_state(state, parsed.get("state"))
        logger.debug(f"Fields updated in reconciliation: {updated}")

    record_timing(state, "reconcile_node", node_start_time)
    return state


async def respond_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """Double-prompt final round: natural-language response from the finalized state."""
    node_start_time = time.time()
    logger.info("Generating response from finalized state")
    deps = get_deps(config)
    ctx = prompt_context(state, deps, current=state["state"])

    raw = await deps.llm.generate(build_response_messages(ctx, include_state=True))
    state["response"] = _as_text(raw).strip()

    record_timing(state, "respond_node", node_start_time)
    return state


async def plain_response_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """
    Respond without a state model.

    With tools attached the model runs a bounded tool-calling loop; otherwise
    it is a single chat completion.
    """
    node_start_time = time.time()
    deps = get_deps(config)
    ctx = prompt_context(state, deps, current={})

    if state.get("use_tools"):
        logger.info("Running tool-calling agent loop")
        state["response"] = await run_agent_loop(
            deps.llm,
            deps.tools,
            build_agent_messages(ctx),
            max_iterations=deps.max_agent_iterations,
        )
    else:
        logger.info("Generating plain response")
        raw = await deps.llm.generate(build_response_messages(ctx))
        state["response"] = _as_text(raw).strip()

    record_timing(state, "plain_response_node", node_start_time)
    return state


def append_history_node(state: InteractionState) -> InteractionState:
    """Append this turn to the conversation history when history is tracked."""
    node_start_time = time.time()

    if state.get("track_history"):
        history = append_history_turn(
            state.get("history") or [], state["message"], state.get("response") or ""
        )
        state["history"] = history
        state["state"][HISTORY_KEY] = history
        mark_changed(state["state_changed_props"], HISTORY_KEY)
        logger.debug(f"Conversation history now has {len(history)} entries")

    record_timing(state, "append_history_node", node_start_time)
    return state


async def persist_node(state: InteractionState, config: RunnableConfig) -> InteractionState:
    """Write the state to the store, only if something changed."""
    node_start_time = time.time()
    deps = get_deps(config)

    if deps.store is not None and state["state_changed_props"]:
        logger.info(f"Persisting state, changed fields: {state['state_changed_props']}")
        await deps.store.set(state["state"])
    else:
        logger.info("No state changes to persist")

    record_timing(state, "persist_node", node_start_time)
    return state


def route_by_mode(state: InteractionState) -> str:
    if not state.get("state_model"):
        return "plain"
    return "single" if state.get("single_prompt", True) else "double"


def route_after_single_analyze(state: InteractionState) -> str:
    if not state.get("use_tools"):
        return "append_history"
    if state["tool_requests"]:
        return "dispatch_tools"
    return "single_finalize"


def route_after_double_analyze(state: InteractionState) -> str:
    return "dispatch_tools" if state["tool_requests"] else "respond"


def route_after_dispatch(state: InteractionState) -> str:
    if state.get("single_prompt", True):
        return "single_finalize"
    return "reconcile" if state["invoked_tool_names"] else "respond"
