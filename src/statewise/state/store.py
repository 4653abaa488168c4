"""
State Store Module for Statewise

The engine never owns persistence. It talks to a store through one generic
invocation surface, ``ainvoke({"operation": "get" | "set", "content": str})``,
the same shape a LangChain tool or a sub-workflow exposes. This module holds
the client the engine uses plus two concrete backends.
"""

import copy
import inspect
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

from src.statewise.config.constants import store_settings
from src.statewise.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class StateStoreClient:
    """
    Client side of the state store contract.

    Accepts a bare state object or a one-element list wrapping it from ``get``,
    and serializes the full state as JSON for ``set``.
    """

    def __init__(self, backend: Any):
        """
        Args:
            backend: Anything exposing ``ainvoke(payload)`` or ``invoke(payload)``
        """
        self.backend = backend

    async def _call(self, operation: str, content: str) -> Any:
        payload = {"operation": operation, "content": content}
        try:
            if hasattr(self.backend, "ainvoke"):
                return await self.backend.ainvoke(payload)
            result = self.backend.invoke(payload)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            error_msg = f"State store '{operation}' failed: {str(e)}"
            logger.error(error_msg)
            raise StoreUnavailable(error_msg) from e

    async def get(self) -> Dict[str, Any]:
        """
        Load the stored state.

        Returns:
            The stored state, or an empty dict when nothing is stored yet

        Raises:
            StoreUnavailable: If the backend fails or returns an unusable payload
        """
        raw = await self._call("get", "")
        data = raw

        if isinstance(data, (bytes, bytearray)):
            data = data.decode("utf-8")

        if isinstance(data, str):
            if not data.strip():
                return {}
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                raise StoreUnavailable(
                    f"State store returned invalid JSON: {str(e)}"
                ) from e

        if isinstance(data, list):
            data = data[0] if data else None

        if data is None:
            return {}

        if not isinstance(data, dict):
            raise StoreUnavailable(
                f"State store returned an unusable payload of type {type(data).__name__}"
            )

        logger.debug(f"Loaded state with {len(data)} top-level keys")
        return data

    async def set(self, state: Dict[str, Any]) -> None:
        """Persist the full state object. The backend's return value is ignored."""
        content = json.dumps(state, ensure_ascii=False, default=str)
        await self._call("set", content)
        logger.debug(f"Persisted state ({len(content)} chars)")


class InMemoryStateStore:
    """
    Volatile store keeping one state object in memory.

    Useful for tests and throwaway CLI sessions. Every ``set`` content string is
    kept in ``writes``.
    """

    def __init__(self, initial_state: Optional[Dict[str, Any]] = None):
        self.state: Optional[Dict[str, Any]] = copy.deepcopy(initial_state)
        self.writes: list[str] = []

    async def ainvoke(self, payload: Dict[str, Any]) -> str:
        operation = payload.get("operation")
        if operation == "get":
            return json.dumps(self.state if self.state is not None else {})
        if operation == "set":
            content = payload.get("content", "")
            self.writes.append(content)
            self.state = json.loads(content)
            return "ok"
        raise ValueError(f"Unsupported state store operation: {operation}")


class JsonFileStateStore:
    """
    Durable store writing one JSON file per session.

    Session isolation comes from the file name, so two sessions never share a
    record. Writes replace the whole file.
    """

    def __init__(self, session_id: str, state_dir: Optional[str] = None):
        """
        Args:
            session_id: Identifier the state record is keyed by
            state_dir: Directory holding the state files
        """
        self.session_id = session_id
        self.state_dir = state_dir or store_settings["state_dir"]
        self.state_file = os.path.join(
            self.state_dir,
            store_settings["state_file_format"].format(session_id=session_id),
        )
        logger.info(f"State file set to: {self.state_file}")

    def load_state(self) -> Optional[Dict[str, Any]]:
        """
        Load the stored state from disk.

        Returns:
            The stored state, or None if the session has no file yet
        """
        if not os.path.exists(self.state_file):
            logger.info(f"No state file found at {self.state_file}")
            return None

        with open(self.state_file, "r", encoding="utf-8") as f:
            state = json.load(f)

        logger.info(f"Loaded state from {self.state_file}")
        return state

    def save_state(self, content: str) -> None:
        """Write serialized state to disk, replacing the previous record."""
        os.makedirs(os.path.dirname(self.state_file) or ".", exist_ok=True)
        state = json.loads(content)

        try:
            with open(self.state_file, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2, ensure_ascii=False)
            logger.info(f"Saved state to {self.state_file}")

        except OSError as e:
            error_msg = f"Failed to save state: {str(e)}"
            logger.error(error_msg)
            raise Exception(error_msg) from e

    def backup_state(self, backup_format: Optional[str] = None) -> str:
        """
        Create a timestamped backup of the session's state file.

        Returns:
            Path to the backup file, or an empty string if there was nothing to back up
        """
        if not os.path.exists(self.state_file):
            logger.info(f"No existing state file found at {self.state_file}")
            return ""

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_filename = (backup_format or store_settings["backup_format"]).format(
            session_id=self.session_id, timestamp=timestamp
        )

        try:
            with open(self.state_file, "r", encoding="utf-8") as source:
                os.makedirs(os.path.dirname(backup_filename) or ".", exist_ok=True)
                with open(backup_filename, "w", encoding="utf-8") as backup:
                    backup.write(source.read())

            logger.info(f"State backed up to: {backup_filename}")
            return backup_filename

        except OSError as e:
            error_msg = f"Failed to backup state: {str(e)}"
            logger.error(error_msg)
            raise Exception(error_msg) from e

    def reset_state(self) -> str:
        """Back up and delete the session's state. Returns the backup path."""
        backup_file = self.backup_state()
        if os.path.exists(self.state_file):
            os.remove(self.state_file)
            logger.info(f"Removed state file {self.state_file}")
        return backup_file

    async def ainvoke(self, payload: Dict[str, Any]) -> str:
        operation = payload.get("operation")
        if operation == "get":
            state = self.load_state()
            return json.dumps(state if state is not None else {})
        if operation == "set":
            self.save_state(payload.get("content", ""))
            return "ok"
        raise ValueError(f"Unsupported state store operation: {operation}")
