"""
Tool-calling agent loop

Used when no state is tracked but tools are attached: the model calls tools
natively until it answers in plain text or the iteration bound is reached.
"""

import logging
from typing import Annotated, Any, List, Sequence
from typing_extensions import TypedDict

from langchain_core.messages import AIMessage, AnyMessage, BaseMessage
from langgraph.graph import StateGraph, START, END
from langgraph.graph.message import add_messages
from langgraph.prebuilt import ToolNode, tools_condition

from src.statewise.config.constants import orchestration_settings
from src.statewise.tools.catalog import as_langchain_tool

logger = logging.getLogger(__name__)


class AgentLoopState(TypedDict):
    messages: Annotated[List[AnyMessage], add_messages]
    iterations: int


def create_agent_loop_graph(
    llm: Any, tools: Sequence[Any], max_iterations: int
) -> StateGraph:
    """
    Build the agent loop: agent -> tools -> agent ... -> END.

    Args:
        llm: Object exposing ``get_llm_response(messages, tools=...)``
        tools: LangChain tools the model may call
        max_iterations: Maximum number of model calls
    """

    async def agent_node(state: AgentLoopState) -> dict:
        iteration = state.get("iterations", 0) + 1
        logger.info(f"Agent loop iteration {iteration}/{max_iterations}")
        response = await llm.get_llm_response(state["messages"], tools=tools)
        return {"messages": [response], "iterations": iteration}

    def route_after_agent(state: AgentLoopState) -> str:
        decision = tools_condition(state)
        if decision == "tools" and state.get("iterations", 0) >= max_iterations:
            logger.warning(f"Agent loop hit the {max_iterations} iteration bound")
            return END
        return decision

    graph = StateGraph(AgentLoopState)
    graph.add_node("agent", agent_node)
    graph.add_node("tools", ToolNode(list(tools)))

    graph.add_edge(START, "agent")
    graph.add_conditional_edges(
        "agent",
        route_after_agent,
        {
            "tools": "tools",
            END: END,
        },
    )
    graph.add_edge("tools", "agent")
    return graph


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    return content or ""


async def run_agent_loop(
    llm: Any,
    tools: Sequence[Any],
    messages: List[BaseMessage],
    max_iterations: int = 10,
) -> str:
    """
    Run the agent loop to completion.

    Returns:
        The final text answer, or the max-iterations notice if the model was
        still requesting tools when the bound was reached
    """
    native_tools = [as_langchain_tool(tool) for tool in tools]
    app = create_agent_loop_graph(llm, native_tools, max_iterations).compile()
    result = await app.ainvoke(
        {"messages": messages, "iterations": 0},
        config={"recursion_limit": 2 * max_iterations + 5},
    )

    final_message = result["messages"][-1]
    if isinstance(final_message, AIMessage) and final_message.tool_calls:
        return orchestration_settings["max_iterations_message"]
    return _message_text(final_message)
