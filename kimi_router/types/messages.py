"""Types for the Anthropic Messages side of the bridge.

Inbound content parts form a closed union discriminated by ``type``:
``text``, ``image``, ``tool_use`` and ``tool_result``. Every translation
site dispatches on ``type`` and rejects anything outside the union, so a
new part kind has to be handled explicitly wherever parts are consumed.
"""

from typing import Any, Literal, Union
from typing_extensions import TypedDict


class TextPart(TypedDict, total=False):
    type: Literal["text"]
    text: str
    cache_control: dict[str, Any] | None


class ImageSource(TypedDict, total=False):
    """Image payload: ``base64`` (media_type + data) or ``url``."""
    type: str
    media_type: str
    data: str
    url: str


class ImagePart(TypedDict, total=False):
    type: Literal["image"]
    source: ImageSource


class ToolUsePart(TypedDict, total=False):
    """A tool invocation made by the assistant.

    Attributes:
        id: Identifier, unique within the conversation.
        name: Name of the invoked tool.
        input: JSON object of arguments.
    """
    type: Literal["tool_use"]
    id: str
    name: str
    input: dict[str, Any]


class ToolResultPart(TypedDict, total=False):
    """The caller-supplied outcome of a tool invocation.

    Attributes:
        tool_use_id: Identifier of the answered ToolUsePart.
        content: String or JSON value.
        is_error: Whether the tool failed.
    """
    type: Literal["tool_result"]
    tool_use_id: str
    content: Any
    is_error: bool | None


ContentPart = Union[TextPart, ImagePart, ToolUsePart, ToolResultPart]

PART_TYPES = frozenset({"text", "image", "tool_use", "tool_result"})

# Client-side reasoning history; never forwarded to the backend.
IGNORED_PART_TYPES = frozenset({"thinking", "redacted_thinking"})


class Message(TypedDict, total=False):
    role: str
    content: str | list[ContentPart]


class ToolDeclaration(TypedDict, total=False):
    name: str
    description: str
    input_schema: dict[str, Any]


class MessagesRequest(TypedDict, total=False):
    """Inbound ``POST /v1/messages`` body."""
    model: str
    messages: list[Message]
    system: str | list[TextPart] | None
    tools: list[ToolDeclaration] | None
    tool_choice: str | dict[str, Any] | None
    temperature: float | None
    top_p: float | None
    max_tokens: int | None
    stop_sequences: list[str] | None
    stream: bool | None


class MessagesUsage(TypedDict, total=False):
    input_tokens: int
    output_tokens: int
    cache_read_input_tokens: int | None


class MessagesResponse(TypedDict, total=False):
    """Outbound response envelope.

    Attributes:
        stop_reason: One of "end_turn", "tool_use", "max_tokens",
            "stop_sequence".
    """
    id: str
    type: str
    role: str
    model: str
    content: list[dict[str, Any]]
    stop_reason: str
    stop_sequence: str | None
    usage: MessagesUsage
