"""
Prompt construction for the Statewise engine.

Every builder here is a pure function of its inputs: it assembles a message
list and never calls a model. User-controlled text that ends up inside the
template text itself (the system prompt) is brace-escaped; everything else is
passed to the template as a variable, so braces in values never corrupt it.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.prompts import ChatPromptTemplate

from src.statewise.config import prompts
from src.statewise.state.schema import FieldSpec, format_field_descriptions, get_path
from src.statewise.utils.message_conversion import convert_history_to_messages

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][\w.]*)\}")


@dataclass
class PromptContext:
    """Inputs shared by every prompt variant of one interaction."""

    message: str
    system_prompt: str = ""
    fields: List[FieldSpec] = field(default_factory=list)
    state: Dict[str, Any] = field(default_factory=dict)
    tools: Sequence[Any] = ()
    history: Optional[List[Dict[str, str]]] = None  # None when history is disabled


def escape_braces(text: str) -> str:
    """Escape literal braces so text can be embedded in a template."""
    return text.replace("{", "{{").replace("}", "}}")


def _value_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def render_system_prompt(
    system_prompt: str, fields: List[FieldSpec], state: Dict[str, Any]
) -> str:
    """
    Substitute ``{field}`` placeholders naming state model fields.

    Unknown placeholders are left as written. The result is plain text, not
    yet escaped for templates.
    """
    if not system_prompt:
        return ""
    known = {f.path for f in fields}

    def substitute(match: re.Match) -> str:
        path = match.group(1)
        if path not in known:
            return match.group(0)
        return _value_to_text(get_path(state, path))

    return _PLACEHOLDER.sub(substitute, system_prompt)


def format_state(state: Dict[str, Any]) -> str:
    if not state:
        return "{}"
    return json.dumps(state, indent=2, ensure_ascii=False, default=str)


def format_tool_catalog(tools: Sequence[Any]) -> str:
    """Render the tool catalog as ``- name: description`` lines."""
    if not tools:
        return "No tools available"
    return "\n".join(
        f"- {tool.name}: {getattr(tool, 'description', '') or 'No description available'}"
        for tool in tools
    )


def format_conversation_history(history: Optional[List[Dict[str, str]]]) -> str:
    if not history:
        return "No previous conversation."
    return "\n".join(
        f"{entry.get('role', 'user')}: {entry.get('message', '')}" for entry in history
    )


def format_tool_results(tool_results: List[Dict[str, Any]]) -> str:
    """Summarize tool results for a reconciliation prompt."""
    if not tool_results:
        return "No tools were invoked."

    blocks = []
    for result in tool_results:
        outcome = result.get("result") if "result" in result else result.get("error")
        blocks.append(
            f"Tool: {result.get('tool_name')}\n"
            f"Target State Field: {result.get('state_field') or 'not specified'}\n"
            f"Result: {json.dumps(outcome, indent=2, ensure_ascii=False, default=str)}"
        )
    return "\n\n".join(blocks)


def _system_head(ctx: PromptContext) -> str:
    rendered = render_system_prompt(ctx.system_prompt, ctx.fields, ctx.state)
    return escape_braces(rendered) + "\n" if rendered else ""


def _history_section(ctx: PromptContext) -> str:
    return prompts.HISTORY_SECTION if ctx.history is not None else ""


def _base_variables(ctx: PromptContext) -> Dict[str, Any]:
    return {
        "message": ctx.message,
        "state_fields": format_field_descriptions(ctx.fields),
        "current_state": format_state(ctx.state),
        "available_tools": format_tool_catalog(ctx.tools),
        "conversation_history": format_conversation_history(ctx.history),
    }


def _assemble(system_text: str, variables: Dict[str, Any]) -> List[BaseMessage]:
    prompt = ChatPromptTemplate.from_messages(
        [("system", system_text), ("human", prompts.HUMAN_MESSAGE)]
    )
    values = {name: variables.get(name, "") for name in prompt.input_variables}
    messages = prompt.format_messages(**values)
    logger.debug(f"Assembled prompt with variables: {sorted(values)}")
    return messages


def build_state_extraction_messages(ctx: PromptContext) -> List[BaseMessage]:
    """State and response in a single call (no tools attached)."""
    system_text = (
        _system_head(ctx)
        + prompts.STATE_MODEL_SECTION
        + _history_section(ctx)
        + prompts.STATE_EXTRACTION_INSTRUCTIONS
    )
    return _assemble(system_text, _base_variables(ctx))


def build_state_and_tools_messages(
    ctx: PromptContext,
    include_tools: bool = True,
    include_post_analysis: bool = False,
    preamble: str = "",
) -> List[BaseMessage]:
    """
    State plus tool requests, with the response deferred.

    Args:
        ctx: Prompt inputs
        include_tools: When False only the state is requested
        include_post_analysis: Also ask for ``fields_needing_post_analysis``
        preamble: Text used instead of the system prompt
    """
    head = escape_braces(preamble) if preamble else _system_head(ctx)
    system_text = head + prompts.STATE_MODEL_SECTION

    if include_tools:
        system_text += prompts.TOOLS_SECTION
    system_text += _history_section(ctx)

    if not include_tools:
        system_text += prompts.STATE_ONLY_INSTRUCTIONS
    elif include_post_analysis:
        system_text += (
            prompts.STATE_AND_TOOLS_INSTRUCTIONS
            + prompts.POST_ANALYSIS_INSTRUCTIONS
            + prompts.STATE_AND_TOOLS_WITH_POST_ANALYSIS_FORMAT
        )
    else:
        system_text += (
            prompts.STATE_AND_TOOLS_INSTRUCTIONS + prompts.STATE_AND_TOOLS_FORMAT
        )

    return _assemble(system_text, _base_variables(ctx))


def build_tool_reconciliation_messages(
    ctx: PromptContext,
    tool_results: List[Dict[str, Any]],
    with_response: bool = False,
    focus_fields: Optional[List[str]] = None,
    preamble: str = "",
) -> List[BaseMessage]:
    """
    Reconcile state from tool results.

    Args:
        ctx: Prompt inputs, ``ctx.state`` being the state after tool dispatch
        tool_results: Per-tool results or errors
        with_response: Ask for ``{state, response}`` instead of ``{state}``
        focus_fields: Restrict the request to these dependent fields
        preamble: Text used instead of the system prompt
    """
    head = escape_braces(preamble) if preamble else _system_head(ctx)
    system_text = head + prompts.STATE_MODEL_SECTION + prompts.TOOL_RESULTS_SECTION

    if focus_fields:
        system_text += prompts.FOCUS_FIELDS_SECTION
    system_text += _history_section(ctx)
    system_text += prompts.RECONCILIATION_INSTRUCTIONS

    if with_response:
        system_text += prompts.RECONCILIATION_WITH_RESPONSE_FORMAT
    else:
        system_text += prompts.RECONCILIATION_STATE_FORMAT

    variables = _base_variables(ctx)
    variables["tool_results"] = format_tool_results(tool_results)
    variables["focus_fields"] = "\n".join(f"- {path}" for path in focus_fields or [])
    return _assemble(system_text, variables)


def build_system_update_messages(ctx: PromptContext) -> List[BaseMessage]:
    """Map a system message directly onto state fields."""
    system_text = (
        prompts.SYSTEM_UPDATE_PREAMBLE
        + prompts.STATE_MODEL_SECTION
        + prompts.SYSTEM_UPDATE_INSTRUCTIONS
    )
    return _assemble(system_text, _base_variables(ctx))


def build_response_messages(
    ctx: PromptContext, include_state: bool = False
) -> List[BaseMessage]:
    """
    Plain response generation.

    Args:
        ctx: Prompt inputs
        include_state: Show the finalized state to the model
    """
    system_text = _system_head(ctx)
    if include_state:
        system_text += prompts.STATE_MODEL_SECTION
    system_text += _history_section(ctx) + prompts.RESPONSE_INSTRUCTIONS
    return _assemble(system_text, _base_variables(ctx))


def build_agent_messages(ctx: PromptContext) -> List[BaseMessage]:
    """
    Messages seeding the tool-calling agent loop.

    History is replayed as chat messages rather than rendered text, so no
    template is involved here.
    """
    system_content = render_system_prompt(ctx.system_prompt, ctx.fields, ctx.state)
    messages: List[BaseMessage] = [
        SystemMessage(content=system_content + "\n" + prompts.AGENT_INSTRUCTIONS)
    ]
    if ctx.history:
        messages.extend(convert_history_to_messages(ctx.history))
    messages.append(HumanMessage(content=ctx.message))
    return messages
