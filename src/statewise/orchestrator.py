"""
Public entry points for Statewise

``StatefulAgent`` tracks state and answers the user; ``StateHandler`` only
tracks state and accepts both user and system messages. Both validate their
configuration before any external call and can process one message or a
batch of them.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from src.statewise.config.constants import orchestration_settings
from src.statewise.errors import ConfigurationError, InteractionError, StatewiseError
from src.statewise.graph.handler_nodes import handler_status_message
from src.statewise.graph.singletons import get_agent_app, get_handler_app
from src.statewise.graph.state import InteractionDeps, InteractionState
from src.statewise.state.schema import flatten_state_model, parse_state_model
from src.statewise.state.store import StateStoreClient
from src.statewise.tools.catalog import ToolLike
from src.statewise.tools.targeting import TargetPolicy, default_target_field

logger = logging.getLogger(__name__)

BatchItem = Union[str, Mapping[str, Any]]


class _Orchestrator(ABC):
    """Configuration, validation and batch handling shared by both variants."""

    def __init__(
        self,
        llm: Any = None,
        tools: Optional[Sequence[ToolLike]] = None,
        store: Any = None,
        state_model: Union[str, Mapping[str, Any], None] = None,
        target_policy: TargetPolicy = default_target_field,
    ):
        """
        Args:
            llm: Model capability exposing ``generate(messages) -> str``
            tools: Tools the model may request
            store: State store backend (``ainvoke``/``invoke`` taking
                ``{"operation", "content"}``) or a ready ``StateStoreClient``
            state_model: State model as JSON text or a mapping
            target_policy: Picks the state field a tool result is written to

        Raises:
            ConfigurationError: If the state model or a tool is invalid
        """
        self.llm = llm
        self.tools = list(tools or [])
        self.state_model = parse_state_model(state_model)
        self.fields = flatten_state_model(self.state_model) if self.state_model else []
        self.target_policy = target_policy

        if store is None or isinstance(store, StateStoreClient):
            self.store = store
        else:
            self.store = StateStoreClient(store)

        for tool in self.tools:
            if not getattr(tool, "name", None) or not (
                hasattr(tool, "ainvoke") or hasattr(tool, "invoke")
            ):
                raise ConfigurationError(f"Invalid tool connected: {tool!r}")

    @abstractmethod
    def _tracks_state(self) -> bool:
        """Whether interactions read and write the state store."""

    def _validate(self, message: Any) -> None:
        if not isinstance(message, str) or not message.strip():
            raise ConfigurationError("User Message is required")
        if self.llm is None:
            raise ConfigurationError("LLM is required but not connected")
        if self._tracks_state() and self.store is None:
            raise ConfigurationError("State store is required but not connected")

    def _deps(self) -> InteractionDeps:
        return InteractionDeps(
            llm=self.llm,
            tools=self.tools,
            store=self.store,
            target_policy=self.target_policy,
            max_agent_iterations=orchestration_settings["agent_max_iterations"],
        )

    async def _execute(self, app: Any, initial_state: InteractionState) -> InteractionState:
        start_time = time.time()
        result = await app.ainvoke(
            initial_state, config={"configurable": {"deps": self._deps()}}
        )
        metadata = result.get("processing_metadata", {})
        logger.info(
            f"Interaction {metadata.get('pipeline_id')} finished in "
            f"{time.time() - start_time:.2f}s via {metadata.get('nodes_executed')}"
        )
        return result

    @abstractmethod
    async def _run_item(self, item: BatchItem) -> Dict[str, Any]:
        """Run one batch item and return its output."""

    async def run_batch(
        self, items: Iterable[BatchItem], continue_on_fail: bool = False
    ) -> List[Dict[str, Any]]:
        """
        Process several interactions in order.

        Args:
            items: Messages, or mappings with a ``message`` (and ``role``) key
            continue_on_fail: Record failures as ``{"error", "item_index"}``
                instead of aborting the batch

        Raises:
            StatewiseError: The first failure, tagged with its item index,
                unless ``continue_on_fail`` is set
        """
        results = []
        for index, item in enumerate(items):
            try:
                results.append(await self._run_item(item))
            except StatewiseError as e:
                e.item_index = index
                if not continue_on_fail:
                    raise
                logger.error(f"Batch item {index} failed: {e.message}")
                results.append({"error": e.message, "item_index": index})
            except Exception as e:
                if not continue_on_fail:
                    raise InteractionError(str(e), item_index=index) from e
                logger.error(f"Batch item {index} failed: {e}", exc_info=True)
                results.append({"error": str(e), "item_index": index})
        return results


class StatefulAgent(_Orchestrator):
    """
    Conversational agent that keeps structured state between turns.

    Without a state model it is a plain chat agent (with a tool-calling loop
    when tools are attached); with one, every turn extracts state, runs the
    requested tools and answers from the reconciled state.
    """

    def __init__(
        self,
        llm: Any = None,
        tools: Optional[Sequence[ToolLike]] = None,
        store: Any = None,
        state_model: Union[str, Mapping[str, Any], None] = None,
        system_prompt: Optional[str] = None,
        track_history: Optional[bool] = None,
        single_prompt: Optional[bool] = None,
        target_policy: TargetPolicy = default_target_field,
    ):
        super().__init__(llm, tools, store, state_model, target_policy)
        self.system_prompt = (
            system_prompt
            if system_prompt is not None
            else orchestration_settings["default_system_prompt"]
        )
        self.track_history = (
            track_history
            if track_history is not None
            else orchestration_settings["conversation_history"]
        )
        self.single_prompt = (
            single_prompt
            if single_prompt is not None
            else orchestration_settings["single_prompt_state_tracking"]
        )

    def _tracks_state(self) -> bool:
        return bool(self.state_model) or self.track_history

    async def run(self, message: str) -> Dict[str, Any]:
        """
        Process one user message.

        Returns:
            ``response``, ``state``, ``prevState`` and ``stateChangedProps``,
            plus ``toolsInvoked`` when tools were dispatched
        """
        self._validate(message)
        logger.info(
            f"Agent interaction (state model: {bool(self.state_model)}, "
            f"history: {self.track_history}, single prompt: {self.single_prompt}, "
            f"tools: {len(self.tools)})"
        )

        result = await self._execute(
            get_agent_app(),
            {
                "message": message,
                "role": "user",
                "system_prompt": self.system_prompt,
                "state_model": self.state_model,
                "fields": self.fields,
                "track_history": self.track_history,
                "single_prompt": self.single_prompt,
                "use_tools": bool(self.tools),
            },
        )

        output = {
            "response": result.get("response") or "",
            "state": result["state"],
            "prevState": result["prev_state"],
            "stateChangedProps": result["state_changed_props"],
        }
        if result.get("dispatched"):
            output["toolsInvoked"] = result["tool_results"]
        return output

    async def _run_item(self, item: BatchItem) -> Dict[str, Any]:
        message = item.get("message") if isinstance(item, Mapping) else item
        return await self.run(message)


class StateHandler(_Orchestrator):
    """
    State tracker without a response.

    User messages run state and tool analysis; system messages are mapped
    directly onto state fields.
    """

    def _tracks_state(self) -> bool:
        return True

    def _validate(self, message: Any, role: str = "user") -> None:
        if not isinstance(message, str) or not message.strip():
            raise ConfigurationError("message is required but was not provided")
        if not self.state_model:
            raise ConfigurationError("state_model is required but was not provided")
        if role not in ("user", "system"):
            raise ConfigurationError(f"Unsupported role: {role}")
        super()._validate(message)

    async def run(self, message: str, role: str = "user") -> Dict[str, Any]:
        """
        Process one message in the given role.

        Returns:
            ``state``, ``prevState``, ``stateChangedProps``, ``role`` and a
            status ``message``, plus ``toolsInvoked`` for the user role
        """
        self._validate(message, role)
        logger.info(f"State handler interaction (role: {role}, tools: {len(self.tools)})")

        result = await self._execute(
            get_handler_app(),
            {
                "message": message,
                "role": role,
                "system_prompt": "",
                "state_model": self.state_model,
                "fields": self.fields,
                "track_history": False,
                "single_prompt": False,
                "use_tools": bool(self.tools),
            },
        )

        output = {
            "state": result["state"],
            "prevState": result["prev_state"],
            "stateChangedProps": result["state_changed_props"],
        }
        if role == "user":
            output["toolsInvoked"] = result["tool_results"]
        output["role"] = role
        output["message"] = handler_status_message(result)
        return output

    async def _run_item(self, item: BatchItem) -> Dict[str, Any]:
        if isinstance(item, Mapping):
            return await self.run(item.get("message"), item.get("role", "user"))
        return await self.run(item)
