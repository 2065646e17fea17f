"""Scripted model streams and a recording echo sink shared by the tests."""

from collections.abc import AsyncGenerator

from toolchat.api.models import StreamEvent


def text_stream(*fragments: str) -> AsyncGenerator[StreamEvent, None]:
    """A model response that streams plain text fragments."""

    async def gen():
        for fragment in fragments:
            yield StreamEvent(type="delta", text=fragment)
        yield StreamEvent(type="done", finish_reason="stop")

    return gen()


def tool_stream(name: str, arguments: str, chunk: int = 4) -> AsyncGenerator[StreamEvent, None]:
    """A model response that streams a function call, arguments split every `chunk` chars."""

    async def gen():
        yield StreamEvent(type="delta", tool_name=name, is_tool_call=True)
        for i in range(0, len(arguments), chunk):
            yield StreamEvent(
                type="delta",
                tool_arguments=arguments[i:i + chunk],
                is_tool_call=True,
            )
        yield StreamEvent(type="done", finish_reason="function_call")

    return gen()


class RecordingSink:
    """Echo sink that records every write."""

    def __init__(self) -> None:
        self.writes: list[str] = []

    def __call__(self, text: str) -> None:
        self.writes.append(text)

    @property
    def output(self) -> str:
        return "".join(self.writes)

