"""
LangGraph Applications for Statewise

This module defines and compiles the two interaction pipelines: the stateful
agent (state tracking plus a natural-language response) and the state
handler (state tracking only, with user and system roles).
"""

import logging
from langgraph.graph import StateGraph, START, END

from src.statewise.graph.state import InteractionState
from src.statewise.graph.nodes import (
    start_node,
    load_state_node,
    single_analyze_node,
    double_analyze_node,
    dispatch_tools_node,
    single_finalize_node,
    reconcile_node,
    respond_node,
    plain_response_node,
    append_history_node,
    persist_node,
    route_by_mode,
    route_after_single_analyze,
    route_after_double_analyze,
    route_after_dispatch,
)
from src.statewise.graph.handler_nodes import (
    system_update_node,
    user_analyze_node,
    post_tool_analysis_node,
    route_by_role,
    route_after_user_analyze,
    route_after_handler_dispatch,
)

logger = logging.getLogger(__name__)


def create_agent_graph() -> StateGraph:
    """
    Create the stateful agent graph.

    Defines the workflow:
    START -> start -> load_state -> {plain_response | single_analyze | double_analyze}
          -> [dispatch_tools] -> [single_finalize | reconcile] -> [respond]
          -> append_history -> persist -> END

    Returns:
        Configured StateGraph ready for compilation
    """
    logger.info("Creating Statewise agent graph")

    graph = StateGraph(InteractionState)
    graph.add_node("start", start_node)
    graph.add_node("load_state", load_state_node)
    graph.add_node("plain_response", plain_response_node)
    graph.add_node("single_analyze", single_analyze_node)
    graph.add_node("double_analyze", double_analyze_node)
    graph.add_node("dispatch_tools", dispatch_tools_node)
    graph.add_node("single_finalize", single_finalize_node)
    graph.add_node("reconcile", reconcile_node)
    graph.add_node("respond", respond_node)
    graph.add_node("append_history", append_history_node)
    graph.add_node("persist", persist_node)

    graph.add_edge(START, "start")
    graph.add_edge("start", "load_state")

    # Branch selection happens once, right after the state is loaded
    graph.add_conditional_edges(
        "load_state",
        route_by_mode,
        {
            "plain": "plain_response",
            "single": "single_analyze",
            "double": "double_analyze",
        },
    )
    graph.add_conditional_edges(
        "single_analyze",
        route_after_single_analyze,
        {
            "append_history": "append_history",
            "dispatch_tools": "dispatch_tools",
            "single_finalize": "single_finalize",
        },
    )
    graph.add_conditional_edges(
        "double_analyze",
        route_after_double_analyze,
        {
            "dispatch_tools": "dispatch_tools",
            "respond": "respond",
        },
    )
    graph.add_conditional_edges(
        "dispatch_tools",
        route_after_dispatch,
        {
            "single_finalize": "single_finalize",
            "reconcile": "reconcile",
            "respond": "respond",
        },
    )
    graph.add_edge("reconcile", "respond")
    graph.add_edge("single_finalize", "append_history")
    graph.add_edge("respond", "append_history")
    graph.add_edge("plain_response", "append_history")
    graph.add_edge("append_history", "persist")
    graph.add_edge("persist", END)

    logger.info("Statewise agent graph structure defined")
    return graph


def create_handler_graph() -> StateGraph:
    """
    Create the state handler graph.

    Defines the workflow:
    START -> start -> load_state -> {system_update | user_analyze}
          -> [dispatch_tools] -> [post_tool_analysis] -> persist -> END
    """
    logger.info("Creating Statewise state handler graph")

    graph = StateGraph(InteractionState)
    graph.add_node("start", start_node)
    graph.add_node("load_state", load_state_node)
    graph.add_node("system_update", system_update_node)
    graph.add_node("user_analyze", user_analyze_node)
    graph.add_node("dispatch_tools", dispatch_tools_node)
    graph.add_node("post_tool_analysis", post_tool_analysis_node)
    graph.add_node("persist", persist_node)

    graph.add_edge(START, "start")
    graph.add_edge("start", "load_state")
    graph.add_conditional_edges(
        "load_state",
        route_by_role,
        {
            "system": "system_update",
            "user": "user_analyze",
        },
    )
    graph.add_edge("system_update", "persist")
    graph.add_conditional_edges(
        "user_analyze",
        route_after_user_analyze,
        {
            "dispatch_tools": "dispatch_tools",
            "persist": "persist",
        },
    )
    graph.add_conditional_edges(
        "dispatch_tools",
        route_after_handler_dispatch,
        {
            "post_tool_analysis": "post_tool_analysis",
            "persist": "persist",
        },
    )
    graph.add_edge("post_tool_analysis", "persist")
    graph.add_edge("persist", END)

    logger.info("Statewise state handler graph structure defined")
    return graph


def compile_agent_application():
    """
    Compile the stateful agent graph for execution.

    Returns:
        Compiled LangGraph application ready for invocation
    """
    logger.info("Compiling Statewise agent application")

    try:
        compiled_app = create_agent_graph().compile()
        logger.info("Statewise agent application compiled successfully")
        return compiled_app

    except Exception as e:
        logger.error(f"Failed to compile agent application: {str(e)}")
        raise Exception(f"Statewise agent compilation failed: {str(e)}") from e


def compile_handler_application():
    """
    Compile the state handler graph for execution.

    Returns:
        Compiled LangGraph application ready for invocation
    """
    logger.info("Compiling Statewise state handler application")

    try:
        compiled_app = create_handler_graph().compile()
        logger.info("Statewise state handler application compiled successfully")
        return compiled_app

    except Exception as e:
        logger.error(f"Failed to compile state handler application: {str(e)}")
        raise Exception(f"Statewise handler compilation failed: {str(e)}") from e


if __name__ == "__main__":
    print(compile_agent_application().get_graph().draw_mermaid())
    print(compile_handler_application().get_graph().draw_mermaid())
