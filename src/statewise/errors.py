"""
Error taxonomy for Statewise

Fatal errors abort the interaction and reach the caller. Tool failures and
optional-round failures are absorbed where they happen and never use these
classes as control flow beyond recording them.
"""

from typing import Optional


class StatewiseError(Exception):
    """Base class for all interaction errors."""

    def __init__(self, message: str, item_index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.item_index = item_index

    def __str__(self) -> str:
        if self.item_index is None:
            return self.message
        return f"{self.message} [item {self.item_index}]"


class ConfigurationError(StatewiseError):
    """Missing or invalid input detected before any external call."""


class ModelOutputError(StatewiseError):
    """The model produced text that could not be used."""


class MalformedModelOutput(ModelOutputError):
    """The model's text is not valid JSON after fence stripping."""

    def __init__(self, parse_error: str, raw_text: str = ""):
        super().__init__(f"Malformed model output: {parse_error}")
        self.parse_error = parse_error
        self.raw_text = raw_text


class StoreUnavailable(StatewiseError):
    """The state store failed or returned nothing usable."""


class ToolExecutionError(StatewiseError):
    """A resolved tool raised while being invoked."""

    def __init__(self, tool_name: str, cause: BaseException):
        super().__init__(str(cause) or cause.__class__.__name__)
        self.tool_name = tool_name
        self.cause = cause


class InteractionError(StatewiseError):
    """Wraps an unexpected exception raised while processing one batch item."""
