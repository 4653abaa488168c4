"""
Parsing of structured model output.

Models are asked to answer with bare JSON but often wrap it in a Markdown
code fence. The fence is stripped before decoding.
"""

import json
import logging
import re
from typing import Any, Dict

from src.statewise.errors import MalformedModelOutput

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\n?```\s*$")


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```/```json fence, if any, and trim whitespace."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE.sub("", cleaned)
        cleaned = _CLOSING_FENCE.sub("", cleaned)
    return cleaned.strip()


def parse_model_json(text: str) -> Any:
    """
    Decode a model response as JSON.

    Args:
        text: Raw model output

    Returns:
        The decoded JSON value

    Raises:
        MalformedModelOutput: If the text is not valid JSON after fence stripping
    """
    cleaned = strip_code_fence(text or "")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.debug(f"Unparseable model output: {cleaned[:200]}")
        raise MalformedModelOutput(str(e), raw_text=text) from e


def parse_model_object(text: str) -> Dict[str, Any]:
    """Like ``parse_model_json`` but the top-level value must be an object."""
    parsed = parse_model_json(text)
    if not isinstance(parsed, dict):
        raise MalformedModelOutput(
            f"expected a JSON object, got {type(parsed).__name__}", raw_text=text
        )
    return parsed
