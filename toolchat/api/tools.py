"""Tool registry and dispatcher.

Provides:
- ToolRegistry: fixed name -> Tool mapping built once at startup
- ToolDispatcher: parses model-supplied arguments, resolves the tool and
  runs it, turning every tool failure into a string result

Only malformed arguments escape the dispatcher (as ToolArgumentsError);
they mean the model broke the function calling protocol.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from toolchat.api.models import Tool, ToolCallRequest, ToolSpec
from toolchat.errors import ToolArgumentsError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ToolRegistry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """Static mapping from tool name to its spec and executor.

    All tools are supplied to the constructor; there is no way to add or
    remove one afterwards.
    """

    def __init__(self, tools: Iterable[Tool]) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    def resolve(self, name: str) -> Tool | None:
        """Return the registered tool, or None if the name is unknown."""
        return self._tools.get(name)

    def all_specs(self) -> list[ToolSpec]:
        """Return every registered ToolSpec in registration order."""
        return [tool.spec for tool in self._tools.values()]

    def function_definitions(self) -> list[dict[str, Any]]:
        """Return all tool definitions in Chat Completions ``functions`` format."""
        return [spec.to_function_definition() for spec in self.all_specs()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


# ---------------------------------------------------------------------------
# ToolDispatcher
# ---------------------------------------------------------------------------


class ToolDispatcher:
    """Runs ToolCallRequests against a ToolRegistry.

    Executors are async callables invoked with the parsed arguments as
    keyword arguments and returning the text fed back to the model.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @staticmethod
    def parse_arguments(request: ToolCallRequest) -> dict[str, Any]:
        """Parse raw argument text into a dict.

        Empty text means no arguments. Raises ToolArgumentsError if the
        text is not a JSON object.
        """
        payload = request.arguments or "{}"
        try:
            args = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ToolArgumentsError(request.name, request.arguments, str(e)) from e
        if not isinstance(args, dict):
            raise ToolArgumentsError(
                request.name,
                request.arguments,
                f"expected a JSON object, got {type(args).__name__}",
            )
        return args

    async def dispatch(self, request: ToolCallRequest) -> str:
        """Dispatch a tool call and return its text result.

        Unknown tools and executor failures come back as descriptive
        strings so the model can adapt on its next call.
        """
        args = self.parse_arguments(request)

        tool = self._registry.resolve(request.name)
        if tool is None:
            logger.warning("Model requested unknown function %r", request.name)
            return f"Unknown function: {request.name}"

        logger.info("Calling %s(%s)", request.name, ", ".join(sorted(args)))
        try:
            result = await tool.executor(**args)
        except Exception as e:
            logger.exception("Tool dispatch error for %s", request.name)
            return f"Tool error ({request.name}): {e}"

        if not isinstance(result, str):
            result = str(result)
        return result
