"""Shared data models for the chat loop.

Messages are a closed set of frozen dataclasses, one per role, each able
to render itself in Chat Completions wire format. The Conversation is the
append-only history replayed to the model on every call.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SystemMessage:
    content: str
    role: str = field(default="system", init=False)

    def to_api(self) -> dict[str, Any]:
        return {"role": "system", "content": self.content}


@dataclass(frozen=True)
class UserMessage:
    content: str
    role: str = field(default="user", init=False)

    def to_api(self) -> dict[str, Any]:
        return {"role": "user", "content": self.content}


@dataclass(frozen=True)
class AssistantMessage:
    """Final assistant text for a turn."""

    content: str
    role: str = field(default="assistant", init=False)

    def to_api(self) -> dict[str, Any]:
        return {"role": "assistant", "content": self.content}


@dataclass(frozen=True)
class ToolRequestMessage:
    """Assistant message asking for a function call.

    ``arguments`` is the raw text the model streamed; only the dispatcher
    interprets it.
    """

    name: str
    arguments: str
    role: str = field(default="assistant", init=False)

    def to_api(self) -> dict[str, Any]:
        return {
            "role": "assistant",
            "content": None,
            "function_call": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class ToolResultMessage:
    """Output of a function call, fed back to the model."""

    name: str
    content: str
    role: str = field(default="function", init=False)

    def to_api(self) -> dict[str, Any]:
        return {"role": "function", "name": self.name, "content": self.content}


Message = Union[
    SystemMessage,
    UserMessage,
    AssistantMessage,
    ToolRequestMessage,
    ToolResultMessage,
]


class Conversation:
    """Ordered, append-only message history for one chat session.

    Insertion order is what the model sees. History is never trimmed.
    """

    def __init__(self, system_prompt: str | None = None) -> None:
        self._messages: list[Message] = []
        if system_prompt:
            self._messages.append(SystemMessage(content=system_prompt))

    def append(self, message: Message) -> None:
        """Append a message.

        Raises ValueError if a tool result does not directly follow the
        request it answers.
        """
        if isinstance(message, ToolResultMessage):
            last = self._messages[-1] if self._messages else None
            if not isinstance(last, ToolRequestMessage) or last.name != message.name:
                raise ValueError(
                    f"Tool result for {message.name!r} must directly follow "
                    "its function call request"
                )
        self._messages.append(message)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def to_api(self) -> list[dict[str, Any]]:
        return [m.to_api() for m in self._messages]

    def char_count(self) -> int:
        """Rough payload size: characters across all message bodies."""
        total = 0
        for m in self._messages:
            if isinstance(m, ToolRequestMessage):
                total += len(m.name) + len(m.arguments)
            else:
                total += len(m.content)
        return total

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParameterSpec:
    """One named input of a tool."""

    type: str  # JSON schema type: string, number, integer, boolean, ...
    description: str = ""
    required: bool = True


@dataclass(frozen=True)
class ToolSpec:
    """Immutable description of a tool advertised to the model."""

    name: str
    description: str
    parameters: Mapping[str, ParameterSpec] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the caller's mapping so the spec cannot change after startup
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def to_function_definition(self) -> dict[str, Any]:
        """Render as a Chat Completions ``functions`` entry."""
        properties = {
            name: {"type": p.type, "description": p.description}
            for name, p in self.parameters.items()
        }
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": [name for name, p in self.parameters.items() if p.required],
            },
        }


ToolExecutor = Callable[..., Awaitable[str]]


@dataclass(frozen=True)
class Tool:
    """A registry entry: the advertised spec plus the coroutine that runs it."""

    spec: ToolSpec
    executor: ToolExecutor

    @property
    def name(self) -> str:
        return self.spec.name


@dataclass(frozen=True)
class ToolCallRequest:
    """A complete function call request reduced from the stream.

    ``arguments`` is not validated here; the dispatcher parses it.
    """

    name: str
    arguments: str


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


@dataclass
class StreamEvent:
    """A single event from the streaming API response."""

    type: str  # delta, done, error
    text: str = ""
    tool_name: str = ""
    tool_arguments: str = ""
    is_tool_call: bool = False  # delta carried a function_call object
    finish_reason: str = ""
