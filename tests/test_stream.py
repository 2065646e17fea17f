"""Tests for toolchat/api/stream.py.

Tests cover:
- Chat Completions chunk parsing (_parse_sse_chunk pure function)
- StreamAccumulator reduction under arbitrary fragmentation
- Echo ordering and the one-time speaker label
- accumulate_stream() over an async event source
"""

import random

import pytest

from helpers import RecordingSink, text_stream, tool_stream
from toolchat.api.models import StreamEvent, ToolCallRequest
from toolchat.api.stream import StreamAccumulator, _parse_sse_chunk, accumulate_stream


def _chunk(delta: dict, finish_reason=None) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def _random_partition(text: str, seed: int) -> list[str]:
    """Split text at random cut points (possibly producing empty pieces)."""
    rng = random.Random(seed)
    cuts = sorted(rng.randint(0, len(text)) for _ in range(rng.randint(0, len(text))))
    bounds = [0, *cuts, len(text)]
    return [text[a:b] for a, b in zip(bounds, bounds[1:])]


# ---------------------------------------------------------------------------
# TestParseSSEChunk
# ---------------------------------------------------------------------------


class TestParseSSEChunk:
    """Tests for _parse_sse_chunk() -- the pure function."""

    def test_content_delta(self):
        event = _parse_sse_chunk(_chunk({"content": "Hello"}))
        assert event == StreamEvent(type="delta", text="Hello")

    def test_function_call_name(self):
        event = _parse_sse_chunk(_chunk({"role": "assistant", "function_call": {"name": "getWeather", "arguments": ""}}))
        assert event is not None
        assert event.is_tool_call
        assert event.tool_name == "getWeather"
        assert event.tool_arguments == ""

    def test_function_call_arguments(self):
        event = _parse_sse_chunk(_chunk({"function_call": {"arguments": '{"loc'}}))
        assert event is not None
        assert event.is_tool_call
        assert event.tool_name == ""
        assert event.tool_arguments == '{"loc'

    def test_role_only_delta_skipped(self):
        assert _parse_sse_chunk(_chunk({"role": "assistant", "content": ""})) is None

    def test_finish_reason_only(self):
        event = _parse_sse_chunk(_chunk({}, finish_reason="stop"))
        assert event == StreamEvent(type="done", finish_reason="stop")

    def test_empty_choices_skipped(self):
        assert _parse_sse_chunk({"choices": []}) is None

    def test_in_stream_error(self):
        event = _parse_sse_chunk({"error": {"type": "server_error", "message": "Overloaded"}})
        assert event is not None
        assert event.type == "error"
        assert "server_error" in event.text
        assert "Overloaded" in event.text


# ---------------------------------------------------------------------------
# TestStreamAccumulator
# ---------------------------------------------------------------------------


class TestStreamAccumulator:
    """Reduction of fed events into text or a ToolCallRequest."""

    def test_empty_stream_is_empty_text(self):
        assert StreamAccumulator().result() == ""

    @pytest.mark.parametrize("seed", range(5))
    def test_text_independent_of_fragmentation(self, seed):
        message = "The U-value of a cavity wall, per Part L, is 0.18 W/m²K."
        acc = StreamAccumulator()
        for piece in _random_partition(message, seed):
            acc.feed(StreamEvent(type="delta", text=piece))
        assert acc.result() == message

    @pytest.mark.parametrize("seed", range(5))
    def test_tool_call_independent_of_fragmentation(self, seed):
        name = "convertCurrency"
        arguments = '{"amount": 100, "from": "GBP", "to": "EUR"}'
        acc = StreamAccumulator()
        for piece in _random_partition(name, seed):
            acc.feed(StreamEvent(type="delta", tool_name=piece, is_tool_call=True))
        for piece in _random_partition(arguments, seed + 100):
            acc.feed(StreamEvent(type="delta", tool_arguments=piece, is_tool_call=True))
        assert acc.result() == ToolCallRequest(name=name, arguments=arguments)

    def test_tool_call_takes_precedence_over_text(self):
        acc = StreamAccumulator()
        acc.feed(StreamEvent(type="delta", text="Let me check. "))
        acc.feed(StreamEvent(type="delta", tool_name="getWeather", is_tool_call=True))
        acc.feed(StreamEvent(type="delta", tool_arguments="{}", is_tool_call=True))
        assert acc.result() == ToolCallRequest("getWeather", "{}")
        assert acc.text == "Let me check. "

    def test_tool_call_without_name(self):
        """A function_call delta with no name still yields a ToolCallRequest."""
        acc = StreamAccumulator()
        acc.feed(StreamEvent(type="delta", tool_arguments='{"a": 1}', is_tool_call=True))
        assert acc.result() == ToolCallRequest(name="", arguments='{"a": 1}')

    def test_empty_function_call_delta_counts(self):
        acc = StreamAccumulator()
        acc.feed(StreamEvent(type="delta", is_tool_call=True))
        assert acc.result() == ToolCallRequest(name="", arguments="")

    def test_finish_reason_recorded(self):
        acc = StreamAccumulator()
        acc.feed(StreamEvent(type="delta", text="hi"))
        acc.feed(StreamEvent(type="done", finish_reason="stop"))
        assert acc.finish_reason == "stop"
        assert acc.result() == "hi"

    def test_echo_in_order_with_single_label(self):
        sink = RecordingSink()
        acc = StreamAccumulator(echo=sink, speaker_label="AI: ")
        for piece in ["It", "'s", " sun", "ny"]:
            acc.feed(StreamEvent(type="delta", text=piece))
        assert sink.writes == ["AI: ", "It", "'s", " sun", "ny"]

    def test_no_label_without_text(self):
        """Function-call-only responses print nothing."""
        sink = RecordingSink()
        acc = StreamAccumulator(echo=sink, speaker_label="AI: ")
        acc.feed(StreamEvent(type="delta", tool_name="getWeather", is_tool_call=True))
        acc.feed(StreamEvent(type="done", finish_reason="function_call"))
        assert sink.writes == []

    def test_echo_happens_on_feed(self):
        """Each fragment is echoed before the next one is fed."""
        sink = RecordingSink()
        acc = StreamAccumulator(echo=sink, speaker_label="AI: ")
        acc.feed(StreamEvent(type="delta", text="first"))
        assert sink.output == "AI: first"
        acc.feed(StreamEvent(type="delta", text=" second"))
        assert sink.output == "AI: first second"


# ---------------------------------------------------------------------------
# accumulate_stream
# ---------------------------------------------------------------------------


class TestAccumulateStream:
    @pytest.mark.asyncio
    async def test_text_response(self):
        sink = RecordingSink()
        result = await accumulate_stream(text_stream("Hel", "lo"), echo=sink, speaker_label="AI: ")
        assert result == "Hello"
        assert sink.output == "AI: Hello"

    @pytest.mark.asyncio
    async def test_tool_response(self):
        result = await accumulate_stream(tool_stream("getWeather", '{"location": "London, UK"}', chunk=3))
        assert result == ToolCallRequest("getWeather", '{"location": "London, UK"}')

    @pytest.mark.asyncio
    async def test_label_emitted_once_per_stream(self):
        sink = RecordingSink()
        await accumulate_stream(text_stream("a", "b"), echo=sink, speaker_label="AI: ")
        await accumulate_stream(text_stream("c"), echo=sink, speaker_label="AI: ")
        assert sink.writes == ["AI: ", "a", "b", "AI: ", "c"]
