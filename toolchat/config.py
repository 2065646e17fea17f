"""Settings via pydantic-settings with TOOLCHAT_ env prefix.

The OpenAI key is read from the unprefixed OPENAI_API_KEY env var so an
existing .env file for the OpenAI SDK works unchanged.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = """
You are a helpful assistant.
You help architects working on a specification for a construction project. Assume that the user is UK based
and works with modern tools and BIM.
You can browse websites to find information.
"""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TOOLCHAT_", env_file=".env")

    log_level: str = "warning"

    # LLM
    openai_api_key: str = Field("", validation_alias="OPENAI_API_KEY")
    model: str = "gpt-4o"
    api_base_url: str = "https://api.openai.com"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Sampling
    temperature: float = 0.1
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.6

    # Tool loop
    max_round_trips: int = 5  # Max tool calls per user turn

    # Console
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    speaker_label: str = "AI: "
    user_prompt: str = "You: "

    # Tools
    workspace_dir: str = "."
    web_fetch_max_chars: int = 10000  # Max chars of a search page fed back
    exchangerate_api_key: str = Field("", validation_alias="EXCHANGERATE_API_KEY")

    @field_validator("max_round_trips")
    @classmethod
    def _validate_max_round_trips(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_round_trips must be >= 1")
        return value
