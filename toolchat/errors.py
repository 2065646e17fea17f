"""Error hierarchy for the chat loop.

Only fatal conditions are modelled here. Tool failures never raise past
the ToolDispatcher; they come back to the model as tool output.
"""

from __future__ import annotations


class ToolchatError(Exception):
    """Base for all errors that abort a conversational turn."""


class ToolArgumentsError(ToolchatError):
    """The model produced function arguments that are not a JSON object."""

    def __init__(self, tool_name: str, payload: str, reason: str = "") -> None:
        self.tool_name = tool_name
        self.payload = payload
        message = f"Failed to parse arguments for function {tool_name!r}: {payload!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class RunawayLoopError(ToolchatError):
    """The model kept requesting tools past the per-turn round-trip limit."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(
            f"Too many function call loops (limit {limit}). Possible runaway."
        )


class TransportError(ToolchatError):
    """The model service could not be reached or returned an error."""
