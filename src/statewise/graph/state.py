"""
State Management for the Statewise LangGraph pipelines

This module defines the interaction context that flows between nodes, and
the collaborators (model, tools, store) handed to nodes through the
runnable config.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from typing_extensions import TypedDict

from langchain_core.runnables import RunnableConfig

from src.statewise.state.schema import FieldSpec
from src.statewise.state.store import StateStoreClient
from src.statewise.tools.targeting import TargetPolicy, default_target_field


class InteractionState(TypedDict, total=False):
    """
    Working context of one interaction.

    ``state`` and ``state_changed_props`` are the only values successive
    stages keep mutating; everything else is written once.
    """

    # Input data
    message: str
    role: str
    system_prompt: str
    state_model: Optional[Dict[str, Any]]
    fields: List[FieldSpec]
    track_history: bool
    single_prompt: bool
    use_tools: bool

    # Loaded from the store
    prev_state: Dict[str, Any]
    prev_state_model_only: Dict[str, Any]
    is_first_run: bool
    history: Optional[List[Dict[str, str]]]

    # Reconciled results
    state: Dict[str, Any]
    state_changed_props: List[str]

    # Tool dispatch
    tool_requests: List[Dict[str, Any]]
    post_analysis_fields: List[str]
    dispatched: bool
    invoked_tool_names: List[str]
    tool_results: List[Dict[str, Any]]

    # Model response
    response: Optional[str]

    # Metadata and tracking
    processing_metadata: Dict[str, Any]


@dataclass
class InteractionDeps:
    """External collaborators of one pipeline run."""

    llm: Any
    tools: Sequence[Any] = ()
    store: Optional[StateStoreClient] = None
    target_policy: TargetPolicy = default_target_field
    max_agent_iterations: int = 10


def get_deps(config: RunnableConfig) -> InteractionDeps:
    """Fetch the collaborators placed in ``config["configurable"]["deps"]``."""
    deps = (config or {}).get("configurable", {}).get("deps")
    if deps is None:
        raise RuntimeError("Pipeline invoked without interaction dependencies")
    return deps
