"""Shared fixtures: settings and a recording echo sink."""

import pytest

from helpers import RecordingSink
from toolchat.config import Settings

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings with a fake key and the default round-trip limit."""
    return Settings(
        OPENAI_API_KEY="test-key",
        api_base_url="https://api.test",
        max_round_trips=5,
        system_prompt="You are a test assistant.",
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
