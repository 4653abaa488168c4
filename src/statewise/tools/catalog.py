"""
Tool catalog helpers.

Tools are duck-typed: anything with a ``name``, an optional ``description``
and an ``ainvoke`` or ``invoke`` method taking a parameter dict. LangChain
tools and MCP tools loaded through langchain-mcp-adapters both qualify.
"""

import inspect
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from langchain_core.tools import BaseTool, StructuredTool

logger = logging.getLogger(__name__)


@runtime_checkable
class ToolLike(Protocol):
    name: str

    async def ainvoke(self, input: Any) -> Any: ...


def resolve_tool(tool_name: str, tools: Sequence[Any]) -> Optional[Any]:
    """
    Find a tool by exact name, then by case-insensitive name.

    Returns:
        The matching tool, or None when nothing matches
    """
    if not isinstance(tool_name, str) or not tool_name:
        return None

    for tool in tools:
        if tool.name == tool_name:
            return tool

    lowered = tool_name.lower()
    for tool in tools:
        if tool.name.lower() == lowered:
            logger.debug(f"Resolved tool '{tool_name}' to '{tool.name}' ignoring case")
            return tool

    return None


def describe_tools(tools: Sequence[Any]) -> List[Dict[str, str]]:
    return [
        {
            "name": tool.name,
            "description": getattr(tool, "description", "") or "No description available",
        }
        for tool in tools
    ]


async def invoke_tool(tool: Any, params: Dict[str, Any]) -> Any:
    """Invoke a tool, preferring its async entry point."""
    if hasattr(tool, "ainvoke"):
        return await tool.ainvoke(params)

    result = tool.invoke(params)
    if inspect.isawaitable(result):
        result = await result
    return result


def parse_tool_result(raw: Any) -> Any:
    """Decode string results as JSON when possible, otherwise keep them as-is."""
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


# Wrapped tools accept any arguments; they are forwarded as one parameter dict
OPEN_ARGS_SCHEMA = {"type": "object", "properties": {}, "additionalProperties": True}


def as_langchain_tool(tool: Any) -> BaseTool:
    """
    Adapt a duck-typed tool for native tool calling.

    LangChain tools are returned unchanged; anything else is wrapped in a
    ``StructuredTool`` that forwards the call arguments as one parameter dict.
    """
    if isinstance(tool, BaseTool):
        return tool

    async def _call(**kwargs: Any) -> Any:
        return await invoke_tool(tool, kwargs)

    logger.debug(f"Wrapping tool '{tool.name}' for native tool calling")
    return StructuredTool(
        name=tool.name,
        description=getattr(tool, "description", "") or "No description available",
        args_schema=OPEN_ARGS_SCHEMA,
        coroutine=_call,
    )
