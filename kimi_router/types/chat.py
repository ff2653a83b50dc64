"""Types for the OpenAI-compatible side of the bridge.

These follow the OpenAI Chat Completions format spoken by the aggregator
backend: the translated request we send, and the completion or streamed
chunks we receive back.
"""

from typing import Any
from typing_extensions import TypedDict


class FunctionCall(TypedDict, total=False):
    """A function call within a tool call.

    Attributes:
        name: Name of the function to call. Can be None for streamed
            follow-up chunks where the name was already stated.
        arguments: JSON string containing the arguments. Streamed
            incrementally, one fragment per chunk.
    """
    name: str | None
    arguments: str | None


class ToolCall(TypedDict, total=False):
    """A tool call in a chat request or response.

    Attributes:
        id: Unique identifier, echoed back by the tool-role message that
            answers it.
        type: Always "function".
        function: The function to call with its arguments.
        index: Position of the call while streaming. Stable for the
            lifetime of the call within one response.
    """
    id: str
    type: str
    function: FunctionCall
    index: int


class ContentPart(TypedDict, total=False):
    """A multi-modal content part ("text" or "image_url")."""
    type: str
    text: str | None
    image_url: dict[str, Any] | None
    cache_control: dict[str, Any] | None


class ChatMessage(TypedDict, total=False):
    """A message in a chat conversation.

    Attributes:
        role: "system", "user", "assistant" or "tool".
        content: A string, a list of ContentPart, or None when only
            tool_calls is present.
        tool_calls: Tool calls requested by the assistant.
        tool_call_id: Back-reference to the answered tool call (tool role).
    """
    role: str
    content: str | list[ContentPart] | None
    tool_calls: list[ToolCall] | None
    tool_call_id: str | None


class ToolDefinition(TypedDict, total=False):
    """A function tool offered to the model."""
    type: str
    function: dict[str, Any]


class ChatCompletionRequest(TypedDict, total=False):
    """The outbound request body sent to the backend."""
    model: str
    messages: list[ChatMessage]
    temperature: float | None
    stream: bool
    tools: list[ToolDefinition] | None
    tool_choice: str | dict[str, Any] | None
    max_tokens: int | None
    top_p: float | None
    stop: list[str] | None


class Delta(TypedDict, total=False):
    """A streamed delta of a choice.

    Attributes:
        role: Typically "assistant" on the first chunk only.
        content: Incremental text content.
        tool_calls: Tool call fragments keyed by their index.
    """
    role: str | None
    content: str | None
    tool_calls: list[ToolCall] | None


class Choice(TypedDict, total=False):
    """A choice in a completion or chunk.

    Attributes:
        index: Zero-based index of this choice.
        delta: The incremental content for streaming responses.
        message: The complete message for non-streaming responses.
        finish_reason: "stop", "length", "tool_calls", "content_filter"
            or the legacy "function_call".
        native_finish_reason: Provider-native reason reported by OpenRouter.
    """
    index: int
    delta: Delta | None
    message: ChatMessage | None
    finish_reason: str | None
    native_finish_reason: str | None


class Usage(TypedDict, total=False):
    """Token usage information."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    prompt_tokens_details: dict[str, int] | None


class ChatCompletionChunk(TypedDict, total=False):
    """A streamed chunk of a chat completion."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage | None


class ChatCompletionResponse(TypedDict, total=False):
    """A complete (non-streaming) chat completion."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage | None
    error: dict[str, Any] | None
