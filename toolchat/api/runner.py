"""Chat runner -- executes conversational turns via the OpenAI Chat Completions API.

Streams each model response over direct httpx calls (no SDK), echoes text
as it arrives and manages the function calling loop internally:

    AWAITING_MODEL -> STREAMING -> DISPATCHING_TOOL -> AWAITING_MODEL ...
                               \\-> DONE

Every model call sees the whole Conversation, in order. Model calls and
tool calls never overlap.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from enum import StrEnum
from typing import Any

import httpx

from toolchat.api.models import (
    AssistantMessage,
    Conversation,
    StreamEvent,
    ToolCallRequest,
    ToolRequestMessage,
    ToolResultMessage,
    UserMessage,
)
from toolchat.api.stream import (
    DONE_SENTINEL,
    TextSink,
    _parse_sse_chunk,
    accumulate_stream,
    stdout_sink,
)
from toolchat.api.tools import ToolDispatcher
from toolchat.config import Settings
from toolchat.errors import RunawayLoopError, TransportError

logger = logging.getLogger(__name__)

_COMPLETIONS_PATH = "/v1/chat/completions"


class TurnState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    STREAMING = "streaming"
    DISPATCHING_TOOL = "dispatching_tool"
    DONE = "done"
    ABORTED = "aborted"


class ChatRunner:
    """Runs conversational turns against a streaming chat model.

    Owns one Conversation. ``run_turn()`` appends the user message, loops
    through model calls and tool dispatches, and returns the final text.
    """

    def __init__(
        self,
        settings: Settings,
        dispatcher: ToolDispatcher,
        *,
        conversation: Conversation | None = None,
        echo: TextSink | None = stdout_sink,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        if conversation is None:
            conversation = Conversation(settings.system_prompt)
        self._conversation = conversation
        self._echo = echo
        self._http = http_client
        self._owns_http = http_client is None
        self.state = TurnState.DONE

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        if self._http is not None:
            return

        settings = self._settings
        headers: dict[str, str] = {"content-type": "application/json"}
        if settings.openai_api_key:
            headers["authorization"] = f"Bearer {settings.openai_api_key}"
        else:
            logger.warning("OPENAI_API_KEY is not set -- API calls will fail")

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=timeout,
        )
        self._owns_http = True
        logger.info("httpx client initialized (model: %s)", settings.model)

    async def close(self) -> None:
        """Clean up the httpx client if this runner created it."""
        if self._http and self._owns_http:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    async def run_turn(self, user_message: str) -> str:
        """Execute a single conversational turn and return the final text.

        Raises ToolArgumentsError if the model sends unparseable function
        arguments, RunawayLoopError if it asks for more than
        ``max_round_trips`` tool calls, and TransportError if the model
        service fails. The Conversation keeps every message appended
        before the failure.
        """
        self._conversation.append(UserMessage(content=user_message))

        max_round_trips = self._settings.max_round_trips
        round_trips = 0
        events: AsyncGenerator[StreamEvent, None] | None = None
        pending: ToolCallRequest | None = None
        final_text = ""

        self._transition(TurnState.AWAITING_MODEL)
        try:
            while self.state is not TurnState.DONE:
                if self.state is TurnState.AWAITING_MODEL:
                    events = self._call_api_stream()
                    self._transition(TurnState.STREAMING)

                elif self.state is TurnState.STREAMING:
                    assert events is not None
                    try:
                        result = await accumulate_stream(
                            events, echo=self._echo, speaker_label=self._settings.speaker_label
                        )
                    finally:
                        # Release the HTTP stream even if the echo sink raised mid-stream
                        await events.aclose()
                        events = None
                    if isinstance(result, ToolCallRequest):
                        if round_trips >= max_round_trips:
                            logger.warning(
                                "Model requested %r after %d tool calls -- aborting turn",
                                result.name,
                                round_trips,
                            )
                            raise RunawayLoopError(max_round_trips)
                        self._conversation.append(
                            ToolRequestMessage(name=result.name, arguments=result.arguments)
                        )
                        pending = result
                        self._transition(TurnState.DISPATCHING_TOOL)
                    else:
                        final_text = result
                        self._conversation.append(AssistantMessage(content=final_text))
                        self._transition(TurnState.DONE)

                elif self.state is TurnState.DISPATCHING_TOOL:
                    assert pending is not None
                    output = await self._dispatcher.dispatch(pending)
                    self._conversation.append(
                        ToolResultMessage(name=pending.name, content=output)
                    )
                    round_trips += 1
                    pending = None
                    self._transition(TurnState.AWAITING_MODEL)
        except Exception:
            self._transition(TurnState.ABORTED)
            raise

        if self._echo is not None:
            self._echo("\n")
        return final_text

    def _transition(self, new_state: TurnState) -> None:
        logger.debug("Turn state %s -> %s", self.state, new_state)
        self.state = new_state

    # ------------------------------------------------------------------
    # API call
    # ------------------------------------------------------------------

    def _build_api_payload(self) -> dict[str, Any]:
        """Build the Chat Completions request payload for the whole Conversation."""
        settings = self._settings
        payload: dict[str, Any] = {
            "model": settings.model,
            "messages": self._conversation.to_api(),
            "temperature": settings.temperature,
            "frequency_penalty": settings.frequency_penalty,
            "presence_penalty": settings.presence_penalty,
            "stream": True,
        }
        functions = self._dispatcher.registry.function_definitions()
        if functions:
            payload["functions"] = functions
            payload["function_call"] = "auto"
        return payload

    async def _call_api_stream(self) -> AsyncGenerator[StreamEvent, None]:
        """Call the Chat Completions API with streaming enabled.

        Yields StreamEvent objects until ``data: [DONE]`` or end of body.
        Raises TransportError on HTTP errors, in-stream errors and
        undecodable chunks. Nothing is retried.
        """
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        payload = self._build_api_payload()
        logger.debug(
            "Calling %s with %d messages (%d chars)",
            self._settings.model,
            len(self._conversation),
            self._conversation.char_count(),
        )

        try:
            async with self._http.stream("POST", _COMPLETIONS_PATH, json=payload) as response:
                if response.status_code != 200:
                    error_body = await response.aread()
                    raise TransportError(
                        f"OpenAI API error ({response.status_code}): "
                        f"{error_body.decode('utf-8', errors='replace')[:500]}"
                    )

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data_str = line[5:].strip()
                    if data_str == DONE_SENTINEL:
                        return
                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError as e:
                        raise TransportError(f"Malformed stream chunk: {data_str[:200]!r}") from e
                    event = _parse_sse_chunk(data)
                    if event is None:
                        continue
                    if event.type == "error":
                        raise TransportError(f"Stream error: {event.text}")
                    yield event
        except httpx.TimeoutException as e:
            raise TransportError(f"API request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error: {e}") from e
