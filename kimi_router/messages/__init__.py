"""Anthropic Messages API translation helpers.

Provides translation between Anthropic Messages API format and OpenAI Chat
Completions API format, so Anthropic-format requests can be served by an
OpenAI-compatible backend.
"""

from .model_selector import map_model_alias, resolve_model, select_model
from .tool_pairing import validate_tool_pairing
from .translator import chat_completion_to_messages, messages_to_chat_completions
from .stream_adapter import (
    ChatToMessagesStreamAdapter,
    adapt_chat_stream_to_messages,
)

__all__ = [
    "messages_to_chat_completions",
    "chat_completion_to_messages",
    "ChatToMessagesStreamAdapter",
    "adapt_chat_stream_to_messages",
    "map_model_alias",
    "resolve_model",
    "select_model",
    "validate_tool_pairing",
]
