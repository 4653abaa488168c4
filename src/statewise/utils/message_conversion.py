from typing import List, Dict, Any
from langchain_core.messages import BaseMessage, HumanMessage, AIMessage, SystemMessage

import logging

logger = logging.getLogger(__name__)


def load_history(stored: Any) -> List[Dict[str, Any]]:
    """
    Read conversation history from a stored snapshot.

    Only ``{"role", "message"}`` mappings are kept; a history that is not a
    list at all is treated as empty.
    """
    if not stored:
        return []
    if not isinstance(stored, list):
        logger.warning(f"Ignoring stored conversation history of type {type(stored).__name__}")
        return []

    entries = [dict(entry) for entry in stored if isinstance(entry, dict)]
    if len(entries) != len(stored):
        logger.warning(f"Dropped {len(stored) - len(entries)} malformed history entries")
    return entries


def convert_history_to_messages(history: List[Dict[str, Any]]) -> List[BaseMessage]:
    """
    Convert conversation history entries to LangChain message objects.

    Args:
        history: Entries shaped ``{"role": "user" | "assistant", "message": str}``

    Returns:
        List of BaseMessage objects
    """
    messages: List[BaseMessage] = []

    for entry in history:
        role = entry.get("role", "user")
        content = entry.get("message", "")
        if not content:
            continue

        if role == "assistant":
            messages.append(AIMessage(content=str(content)))
        elif role == "system":
            messages.append(SystemMessage(content=str(content)))
        else:
            messages.append(HumanMessage(content=str(content)))

    return messages


def append_history_turn(
    history: List[Dict[str, str]], user_message: str, response: str
) -> List[Dict[str, str]]:
    """Return a copy of the history with one user/assistant turn appended."""
    return list(history) + [
        {"role": "user", "message": user_message},
        {"role": "assistant", "message": response},
    ]
