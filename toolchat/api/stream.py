"""Streaming response parsing and accumulation.

A Chat Completions stream is a sequence of SSE ``data:`` lines, each a
JSON chunk whose ``choices[0].delta`` carries either a text fragment or a
fragment of a function call. ``_parse_sse_chunk`` turns a chunk into a
StreamEvent; ``StreamAccumulator`` reduces the events of one response
into the final text or a ToolCallRequest.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterable, Callable
from typing import Any

from toolchat.api.models import StreamEvent, ToolCallRequest

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

TextSink = Callable[[str], None]


def stdout_sink(text: str) -> None:
    """Write text to stdout immediately."""
    sys.stdout.write(text)
    sys.stdout.flush()


def _parse_sse_chunk(data: dict[str, Any]) -> StreamEvent | None:
    """Parse a Chat Completions stream chunk into a StreamEvent.

    Returns None for chunks with nothing to accumulate (empty choices,
    role-only deltas). In-stream ``error`` payloads become error events.
    """
    if "error" in data:
        error = data.get("error") or {}
        if isinstance(error, dict):
            return StreamEvent(
                type="error",
                text=f"{error.get('type', 'unknown')}: {error.get('message', '')}",
            )
        return StreamEvent(type="error", text=str(error))

    choices = data.get("choices") or []
    if not choices:
        return None

    choice = choices[0]
    delta = choice.get("delta") or {}
    finish_reason = choice.get("finish_reason") or ""

    function_call = delta.get("function_call")
    if function_call is not None:
        return StreamEvent(
            type="delta",
            tool_name=function_call.get("name") or "",
            tool_arguments=function_call.get("arguments") or "",
            is_tool_call=True,
            finish_reason=finish_reason,
        )

    content = delta.get("content")
    if content:
        return StreamEvent(type="delta", text=content, finish_reason=finish_reason)

    if finish_reason:
        return StreamEvent(type="done", finish_reason=finish_reason)

    return None


class StreamAccumulator:
    """Reduces the events of one model response.

    Text, function name and function argument fragments are concatenated
    into separate buffers in arrival order. Text fragments are echoed to
    ``echo`` as they arrive, the first one preceded by ``speaker_label``.
    """

    def __init__(self, echo: TextSink | None = None, speaker_label: str = "") -> None:
        self._echo = echo
        self._speaker_label = speaker_label
        self._text_parts: list[str] = []
        self._name_parts: list[str] = []
        self._argument_parts: list[str] = []
        self._saw_tool_call = False
        self._labelled = False
        self.finish_reason = ""

    def feed(self, event: StreamEvent) -> None:
        if event.finish_reason:
            self.finish_reason = event.finish_reason
        if event.type != "delta":
            return

        if event.is_tool_call:
            self._saw_tool_call = True
            if event.tool_name:
                self._name_parts.append(event.tool_name)
            if event.tool_arguments:
                self._argument_parts.append(event.tool_arguments)
        elif event.text:
            if self._echo is not None:
                if not self._labelled:
                    self._echo(self._speaker_label)
                    self._labelled = True
                self._echo(event.text)
            self._text_parts.append(event.text)

    @property
    def text(self) -> str:
        return "".join(self._text_parts)

    def result(self) -> str | ToolCallRequest:
        """Final shape of the response: a function call wins over text."""
        if self._saw_tool_call:
            return ToolCallRequest(
                name="".join(self._name_parts),
                arguments="".join(self._argument_parts),
            )
        return self.text


async def accumulate_stream(
    events: AsyncIterable[StreamEvent],
    echo: TextSink | None = None,
    speaker_label: str = "",
) -> str | ToolCallRequest:
    """Drive an event stream to exhaustion and return its reduced result."""
    accumulator = StreamAccumulator(echo=echo, speaker_label=speaker_label)
    async for event in events:
        accumulator.feed(event)
    logger.debug("Stream finished (finish_reason=%s)", accumulator.finish_reason or "none")
    return accumulator.result()
