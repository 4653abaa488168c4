"""
State model normalization for Statewise

A state model maps field names to natural-language descriptions. Values that
are themselves objects introduce nesting, so every field is addressed by a
dot-joined path such as ``trip.destination``.
"""

import json
import logging
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Union

from src.statewise.errors import ConfigurationError

logger = logging.getLogger(__name__)

StateModel = Dict[str, Any]


class FieldSpec(NamedTuple):
    """One addressable field of a state model."""

    path: str
    description: str


def parse_state_model(raw: Union[str, Mapping[str, Any], None]) -> Optional[StateModel]:
    """
    Parse a state model definition.

    Args:
        raw: JSON text or an already decoded mapping

    Returns:
        The state model, or None when no model was given

    Raises:
        ConfigurationError: If the text is not valid JSON or not an object
    """
    if raw is None:
        return None

    if isinstance(raw, Mapping):
        return dict(raw) if raw else None

    if not raw.strip():
        return None

    try:
        model = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Could not parse state model: {e}")
        raise ConfigurationError(f"Invalid State Model JSON: {e}") from e

    if not isinstance(model, dict):
        raise ConfigurationError(
            f"Invalid State Model JSON: expected an object, got {type(model).__name__}"
        )

    return model or None


def _is_branch(value: Any) -> bool:
    # Only non-empty plain objects nest; arrays and scalars are leaves
    return isinstance(value, dict) and len(value) > 0


def _describe(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def flatten_state_model(model: Optional[Mapping[str, Any]]) -> List[FieldSpec]:
    """
    Flatten a possibly nested state model into addressable fields.

    Traversal is depth-first in key insertion order.

    Raises:
        ConfigurationError: If the model contains a reference cycle
    """
    fields: List[FieldSpec] = []
    if not model:
        return fields

    def walk(node: Mapping[str, Any], prefix: str, ancestors: set) -> None:
        if id(node) in ancestors:
            raise ConfigurationError("State model contains a cycle")
        ancestors = ancestors | {id(node)}
        for key, value in node.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            if _is_branch(value):
                walk(value, path, ancestors)
            else:
                fields.append(FieldSpec(path, _describe(value)))

    walk(model, "", set())
    return fields


def build_skeleton(model: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Build an empty snapshot mirroring the model's nesting, every leaf None."""
    skeleton: Dict[str, Any] = {}
    for field in flatten_state_model(model):
        set_path(skeleton, field.path, None)
    return skeleton


def get_path(snapshot: Any, path: str, default: Any = None) -> Any:
    """Read the value at a dot path; arrays are never traversed."""
    node = snapshot
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def has_path(snapshot: Any, path: str) -> bool:
    node = snapshot
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return False
        node = node[part]
    return True


def set_path(snapshot: Dict[str, Any], path: str, value: Any) -> None:
    """Write a value at a dot path, creating intermediate objects as needed."""
    parts = path.split(".")
    node = snapshot
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def format_field_descriptions(fields: List[FieldSpec]) -> str:
    """Render fields as ``- path: description`` lines for prompts."""
    return "\n".join(f"- {field.path}: {field.description}" for field in fields)
