"""toolchat entry point.

Initializes all components and runs the console chat loop:
  Settings -> httpx clients -> ToolRegistry -> ToolDispatcher -> ChatRunner -> REPL
"""

from __future__ import annotations

import asyncio
import logging
import sys

import httpx

from toolchat.api.builtin_tools import create_builtin_tools
from toolchat.api.runner import ChatRunner
from toolchat.api.tools import ToolDispatcher, ToolRegistry
from toolchat.api.web_tools import create_web_tools
from toolchat.config import Settings
from toolchat.errors import ToolchatError

logger = logging.getLogger(__name__)

_EXIT_COMMANDS = frozenset({"exit", "quit"})


def build_default_registry(settings: Settings, web_http: httpx.AsyncClient) -> ToolRegistry:
    """Registry with every built-in tool: web tools first, then file tools."""
    return ToolRegistry([
        *create_web_tools(settings, web_http),
        *create_builtin_tools(settings),
    ])


async def chat_loop(settings: Settings) -> None:
    """Read user lines and run one turn per line until EOF or exit."""
    # Web tools httpx client (separate from runner -- no API auth headers)
    web_http = httpx.AsyncClient(
        timeout=httpx.Timeout(connect=10, read=30, write=10, pool=10),
        limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
    )
    registry = build_default_registry(settings, web_http)
    runner = ChatRunner(settings, ToolDispatcher(registry))
    await runner.start()
    logger.info("Registered tools: %s", ", ".join(s.name for s in registry.all_specs()))

    try:
        while True:
            try:
                user_input = await asyncio.to_thread(input, settings.user_prompt)
            except EOFError:
                break

            user_input = user_input.strip()
            if not user_input:
                continue
            if user_input.lower() in _EXIT_COMMANDS:
                break

            try:
                await runner.run_turn(user_input)
            except ToolchatError as e:
                logger.error("Turn aborted: %s", e)
                print(f"\nError: {e}\n", file=sys.stderr)
    finally:
        await runner.close()
        await web_http.aclose()


def main() -> None:
    """Entry point -- parse settings, configure logging, run the chat loop."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    logger.info("Starting toolchat (model: %s)", settings.model)

    try:
        asyncio.run(chat_loop(settings))
    except KeyboardInterrupt:
        print()


if __name__ == "__main__":
    main()
