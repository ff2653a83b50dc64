"""Type definitions for the bridge."""

from .chat import (
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    ContentPart,
    Delta,
    FunctionCall,
    ToolCall,
    ToolDefinition,
    Usage,
)
from .messages import (
    IGNORED_PART_TYPES,
    PART_TYPES,
    ImagePart,
    Message,
    MessagesRequest,
    MessagesResponse,
    MessagesUsage,
    TextPart,
    ToolDeclaration,
    ToolResultPart,
    ToolUsePart,
)

__all__ = [
    "ChatCompletionChunk",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "Choice",
    "ContentPart",
    "Delta",
    "FunctionCall",
    "IGNORED_PART_TYPES",
    "ImagePart",
    "Message",
    "MessagesRequest",
    "MessagesResponse",
    "MessagesUsage",
    "PART_TYPES",
    "TextPart",
    "ToolCall",
    "ToolDeclaration",
    "ToolDefinition",
    "ToolResultPart",
    "ToolUsePart",
    "Usage",
]
