"""
Change detection between state snapshots.

Values are compared by their stable JSON rendering so that two structurally
equal objects never register as a change.
"""

import json
import logging
from typing import Any, Iterable, List, Mapping

from .schema import FieldSpec, get_path

logger = logging.getLogger(__name__)


def stable_dumps(value: Any) -> str:
    """Serialize a value to JSON with sorted keys and compact separators."""
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )


def values_differ(a: Any, b: Any) -> bool:
    return stable_dumps(a) != stable_dumps(b)


def mark_changed(changed: List[str], path: str) -> None:
    """Append a path to the changeset unless it is already there."""
    if path not in changed:
        changed.append(path)


def is_first_run(prev_state: Mapping[str, Any], model: Mapping[str, Any]) -> bool:
    """True when the stored state carries none of the model's top-level fields."""
    return not any(key in prev_state for key in model)


def detect_changes(
    prev: Mapping[str, Any],
    new: Mapping[str, Any],
    fields: Iterable[FieldSpec],
    first_run: bool = False,
) -> List[str]:
    """
    Compute the ordered list of field paths whose values differ.

    Args:
        prev: Previous snapshot
        new: New snapshot
        fields: Fields to compare, in order
        first_run: When True and nothing differs, report every field so the
            store gets a baseline record

    Returns:
        Changed field paths in schema order
    """
    fields = list(fields)
    changed = [
        field.path
        for field in fields
        if values_differ(get_path(prev, field.path), get_path(new, field.path))
    ]

    if first_run and not changed:
        logger.debug("First interaction with no extracted changes, marking all fields")
        return [field.path for field in fields]

    return changed
