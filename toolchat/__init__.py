"""toolchat: a streaming chat loop with model-driven tool calls."""

__version__ = "0.1.0"
