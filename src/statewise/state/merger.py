"""
State merging for Statewise

Model output is untrusted: it may omit fields, null them out or invent new
ones. ``merge_state`` is the only place where such a candidate becomes a
snapshot, and the result always has exactly the state model's fields.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from .schema import build_skeleton, flatten_state_model, get_path, has_path, set_path

logger = logging.getLogger(__name__)


def merge_state(
    candidate: Any,
    model: Mapping[str, Any],
    current: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Reconcile a candidate state against the state model and the current state.

    For every field, a non-null candidate value wins; otherwise the current
    value is kept; otherwise the field stays null. Fields outside the model
    are dropped.

    Args:
        candidate: Parsed model output for the state (anything)
        model: The state model
        current: Fallback snapshot

    Returns:
        A new snapshot containing exactly the model's fields
    """
    merged = build_skeleton(model)
    current = current or {}
    if not isinstance(candidate, dict):
        if candidate is not None:
            logger.warning(
                f"Ignoring non-object state candidate of type {type(candidate).__name__}"
            )
        candidate = {}

    for field in flatten_state_model(model):
        value = get_path(candidate, field.path)
        if value is None and has_path(current, field.path):
            value = get_path(current, field.path)
        set_path(merged, field.path, value)

    return merged


def restrict_to_model(
    snapshot: Optional[Mapping[str, Any]], model: Mapping[str, Any]
) -> Dict[str, Any]:
    """Project a snapshot onto the model's fields, missing fields become null."""
    restricted = build_skeleton(model)
    snapshot = snapshot or {}
    for field in flatten_state_model(model):
        set_path(restricted, field.path, get_path(snapshot, field.path))
    return restricted
