"""Anthropic <-> OpenAI Messages translation.

This module translates between Anthropic Messages API format and OpenAI Chat
Completions API format, so Anthropic-speaking clients can be served by an
OpenAI-compatible aggregator.

Key mappings:
- Anthropic system (top-level) -> one OpenAI system message per text segment
- Anthropic content parts -> OpenAI content / tool_calls / tool messages
- Anthropic tools -> OpenAI function tools
- OpenAI completion -> Anthropic message envelope

Both directions are pure functions of their inputs.

Reference:
- Anthropic Messages API: https://docs.anthropic.com/en/api/messages
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Mapping, Optional

from ..core.exceptions import BackendError, InvalidRequestError, TranslationError
from ..settings import ModelSettings
from ..types import (
    IGNORED_PART_TYPES,
    ChatCompletionRequest,
    ChatCompletionResponse,
    MessagesResponse,
    MessagesUsage,
    ToolCall,
    ToolDefinition,
    Usage,
)
from .model_selector import is_premium_model, resolve_model
from .tool_pairing import validate_tool_pairing

logger = logging.getLogger("kimi-router")

CACHE_HINT = {"type": "ephemeral"}

STOP_REASON_MAP = {
    "stop": "end_turn",
    "length": "max_tokens",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "content_filter": "end_turn",
}


# =============================================================================
# Request direction
# =============================================================================


def _part_text(part: Mapping[str, Any]) -> str:
    text = part.get("text", "")
    if isinstance(text, str):
        return text
    return json.dumps(text, ensure_ascii=False)


def _serialize_tool_input(input_data: Any) -> str:
    """Serialize tool input to JSON string for OpenAI format."""
    if input_data is None:
        input_data = {}
    return json.dumps(input_data, ensure_ascii=False)


def _serialize_tool_result(content: Any) -> str:
    if isinstance(content, str):
        return content
    if content is None:
        return ""
    return json.dumps(content, ensure_ascii=False)


def _convert_image(part: Mapping[str, Any]) -> dict[str, Any]:
    """Convert an Anthropic image part to an OpenAI image_url part.

    Anthropic format:
        {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "..."}}
        {"type": "image", "source": {"type": "url", "url": "https://..."}}

    OpenAI format:
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,..."}}
    """
    source = part.get("source")
    if not isinstance(source, Mapping):
        raise InvalidRequestError("image part requires a source object", code="invalid_image")

    if source.get("type") == "url":
        url = source.get("url")
        if not isinstance(url, str) or not url:
            raise InvalidRequestError("url image source requires a url", code="invalid_image")
        return {"type": "image_url", "image_url": {"url": url}}

    media_type = source.get("media_type")
    data = source.get("data")
    if not isinstance(media_type, str) or not media_type or not isinstance(data, str) or not data:
        raise InvalidRequestError(
            "base64 image source requires media_type and data", code="invalid_image"
        )
    return {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{data}"}}


def _convert_tool_use(part: Mapping[str, Any]) -> ToolCall:
    call_id = part.get("id")
    name = part.get("name")
    if not isinstance(call_id, str) or not call_id:
        raise InvalidRequestError("tool_use part requires an id", code="invalid_tool_use")
    if not isinstance(name, str) or not name:
        raise InvalidRequestError("tool_use part requires a name", code="invalid_tool_use")
    return {
        "id": call_id,
        "type": "function",
        "function": {
            "name": name,
            "arguments": _serialize_tool_input(part.get("input")),
        },
    }


def _convert_tool_result(part: Mapping[str, Any]) -> dict[str, Any]:
    tool_use_id = part.get("tool_use_id")
    if not isinstance(tool_use_id, str) or not tool_use_id:
        raise InvalidRequestError(
            "tool_result part requires a tool_use_id", code="invalid_tool_result"
        )
    return {
        "role": "tool",
        "tool_call_id": tool_use_id,
        "content": _serialize_tool_result(part.get("content")),
    }


def _part_type(part: Any) -> str:
    if not isinstance(part, Mapping):
        raise InvalidRequestError("content parts must be objects", code="invalid_content")
    part_type = part.get("type")
    if not isinstance(part_type, str) or not part_type:
        raise InvalidRequestError("content part is missing its type", code="invalid_content")
    return part_type


def _unknown_part(part_type: str) -> InvalidRequestError:
    return InvalidRequestError(
        f"Unsupported content part type: {part_type}", code="unsupported_content"
    )


def _convert_assistant_parts(parts: list[Any]) -> Optional[dict[str, Any]]:
    """Flatten assistant parts into one message, or None if nothing is left."""
    text_parts: list[str] = []
    tool_calls: list[dict[str, Any]] = []

    for part in parts:
        part_type = _part_type(part)
        if part_type == "text":
            text_parts.append(_part_text(part))
        elif part_type == "tool_use":
            tool_calls.append(_convert_tool_use(part))
        elif part_type in ("image", "tool_result"):
            logger.debug(f"Dropping {part_type} part from assistant message")
        elif part_type in IGNORED_PART_TYPES:
            logger.debug(f"Dropping {part_type} part during translation")
        else:
            raise _unknown_part(part_type)

    text = "\n".join(text_parts).strip()
    message: dict[str, Any] = {"role": "assistant", "content": text or None}
    if tool_calls:
        message["tool_calls"] = tool_calls
    if message["content"] is None and not tool_calls:
        return None
    return message


def _convert_user_parts(parts: list[Any]) -> list[dict[str, Any]]:
    """Flatten user parts into a user message followed by its tool messages."""
    text_parts: list[str] = []
    content_parts: list[dict[str, Any]] = []
    tool_messages: list[dict[str, Any]] = []
    has_image = False

    for part in parts:
        part_type = _part_type(part)
        if part_type == "text":
            text = _part_text(part)
            text_parts.append(text)
            content_parts.append({"type": "text", "text": text})
        elif part_type == "image":
            content_parts.append(_convert_image(part))
            has_image = True
        elif part_type == "tool_result":
            tool_messages.append(_convert_tool_result(part))
        elif part_type == "tool_use":
            logger.debug("Dropping tool_use part from user message")
        elif part_type in IGNORED_PART_TYPES:
            logger.debug(f"Dropping {part_type} part during translation")
        else:
            raise _unknown_part(part_type)

    converted: list[dict[str, Any]] = []
    if has_image:
        converted.append({"role": "user", "content": content_parts})
    else:
        text = "\n".join(text_parts).strip()
        if text:
            converted.append({"role": "user", "content": text})
    converted.extend(tool_messages)
    return converted


def _convert_message(message: Any) -> list[dict[str, Any]]:
    if not isinstance(message, Mapping):
        raise InvalidRequestError("each message must be an object", code="invalid_message")
    role = message.get("role")
    if not isinstance(role, str) or not role:
        raise InvalidRequestError("each message requires a role", code="invalid_message")

    content = message.get("content")
    if isinstance(content, str):
        return [{"role": role, "content": content}]
    if not isinstance(content, list):
        raise InvalidRequestError(
            f"message content must be a string or a list of parts (role={role})",
            code="invalid_message",
        )

    if role == "assistant":
        converted = _convert_assistant_parts(content)
        return [converted] if converted is not None else []
    if role == "user":
        return _convert_user_parts(content)
    raise InvalidRequestError(
        f"structured content is not supported for role '{role}'", code="invalid_message"
    )


def _convert_system(
    system: str | list[Mapping[str, Any]] | None,
    cache_hint: bool,
) -> list[dict[str, Any]]:
    """Convert the top-level system prompt to system messages.

    A string becomes one message, a list of text parts one message per part.
    """
    if system is None:
        return []

    if isinstance(system, str):
        segments = [system] if system else []
    elif isinstance(system, list):
        segments = []
        for part in system:
            part_type = _part_type(part)
            if part_type != "text":
                raise InvalidRequestError(
                    f"system prompt only accepts text parts, got {part_type}",
                    code="invalid_system",
                )
            segments.append(_part_text(part))
    else:
        raise InvalidRequestError(
            "system must be a string or a list of text parts", code="invalid_system"
        )

    system_messages = []
    for segment in segments:
        text_part: dict[str, Any] = {"type": "text", "text": segment}
        if cache_hint:
            text_part["cache_control"] = dict(CACHE_HINT)
        system_messages.append({"role": "system", "content": [text_part]})
    return system_messages


def _convert_tools(tools: Any) -> Optional[list[ToolDefinition]]:
    """Convert Anthropic tools to OpenAI format.

    Anthropic: {"name": "...", "description": "...", "input_schema": {...}}
    OpenAI: {"type": "function", "function": {"name": "...", "description": "...", "parameters": {...}}}
    """
    if tools is None:
        return None
    if not isinstance(tools, list):
        raise InvalidRequestError("tools must be a list", code="invalid_tools")

    openai_tools: list[ToolDefinition] = []
    for tool in tools:
        if not isinstance(tool, Mapping) or not tool.get("name"):
            raise InvalidRequestError("each tool requires a name", code="invalid_tools")
        openai_tools.append({
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema", {"type": "object", "properties": {}}),
            },
        })
    return openai_tools


def _convert_tool_choice(tool_choice: Any) -> str | dict[str, Any] | None:
    """Convert Anthropic tool_choice to OpenAI format.

    Anthropic: "auto" | "any" | "none" | {"type": "tool", "name": "..."}
    OpenAI: "auto" | "required" | "none" | {"type": "function", "function": {"name": "..."}}
    """
    if tool_choice is None:
        return None

    if isinstance(tool_choice, str):
        choice_type = tool_choice
    elif isinstance(tool_choice, Mapping):
        choice_type = tool_choice.get("type", "")
    else:
        return None

    if choice_type == "tool" and isinstance(tool_choice, Mapping):
        return {"type": "function", "function": {"name": tool_choice.get("name", "")}}
    if choice_type == "any":
        return "required"
    if choice_type in ("auto", "none"):
        return choice_type
    return None


def messages_to_chat_completions(
    payload: Mapping[str, Any],
    settings: Optional[ModelSettings] = None,
) -> ChatCompletionRequest:
    """Translate an Anthropic Messages request to an OpenAI Chat Completions request.

    Args:
        payload: Anthropic Messages API request body.
        settings: Model selection settings; defaults when omitted.

    Returns:
        OpenAI Chat Completions request body with a pairing-safe message list.

    Raises:
        InvalidRequestError: If the payload is malformed.
    """
    if not isinstance(payload, Mapping):
        raise InvalidRequestError("request body must be a JSON object", code="invalid_json_shape")

    model = payload.get("model")
    if not isinstance(model, str) or not model.strip():
        raise InvalidRequestError("You must provide a model parameter", code="missing_parameter")

    messages = payload.get("messages")
    if not isinstance(messages, list):
        raise InvalidRequestError("messages must be a list", code="missing_parameter")

    settings = settings or ModelSettings()
    target_model = resolve_model(model.strip(), messages, settings)

    conversation: list[dict[str, Any]] = []
    for message in messages:
        conversation.extend(_convert_message(message))

    system_messages = _convert_system(
        payload.get("system"), cache_hint=is_premium_model(target_model, settings)
    )

    result: ChatCompletionRequest = {
        "model": target_model,
        "messages": system_messages + validate_tool_pairing(conversation),
        "stream": bool(payload.get("stream")),
    }

    for param in ("temperature", "top_p", "max_tokens"):
        if payload.get(param) is not None:
            result[param] = payload[param]

    if payload.get("stop_sequences"):
        result["stop"] = payload["stop_sequences"]

    tools = _convert_tools(payload.get("tools"))
    if tools:
        result["tools"] = tools

    tool_choice = _convert_tool_choice(payload.get("tool_choice"))
    if tool_choice is not None and tools:
        result["tool_choice"] = tool_choice

    return result


# =============================================================================
# Response direction
# =============================================================================


def convert_stop_reason(
    finish_reason: Optional[str],
    native_finish_reason: Optional[str] = None,
    has_tool_calls: bool = False,
) -> str:
    """Convert OpenAI finish_reason to Anthropic stop_reason.

    OpenAI: stop, length, tool_calls, content_filter, function_call
    Anthropic: end_turn, max_tokens, stop_sequence, tool_use
    """
    if has_tool_calls:
        return "tool_use"
    if native_finish_reason == "stop_sequence":
        return "stop_sequence"
    if finish_reason is None:
        return "end_turn"
    return STOP_REASON_MAP.get(finish_reason, "end_turn")


def parse_tool_arguments(arguments: Any, tool_name: str = "") -> dict[str, Any]:
    """Parse streamed or returned tool arguments into a JSON object.

    Empty argument text means a call without arguments.

    Raises:
        TranslationError: If the arguments are not a JSON object.
    """
    if isinstance(arguments, Mapping):
        return dict(arguments)
    if arguments is None or (isinstance(arguments, str) and not arguments.strip()):
        return {}
    if not isinstance(arguments, str):
        raise TranslationError(f"tool call '{tool_name}' has non-string arguments")
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as exc:
        raise TranslationError(
            f"tool call '{tool_name}' has invalid JSON arguments: {exc}"
        ) from exc
    if not isinstance(parsed, dict):
        raise TranslationError(f"tool call '{tool_name}' arguments are not a JSON object")
    return parsed


def convert_usage(usage: Optional[Usage]) -> MessagesUsage:
    usage = usage or {}
    converted: MessagesUsage = {
        "input_tokens": usage.get("prompt_tokens") or 0,
        "output_tokens": usage.get("completion_tokens") or 0,
    }
    details = usage.get("prompt_tokens_details")
    if isinstance(details, Mapping) and details.get("cached_tokens"):
        converted["cache_read_input_tokens"] = details["cached_tokens"]
    return converted


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "")
            for part in content
            if isinstance(part, Mapping) and part.get("type") == "text"
        )
    return ""


def _error_status(error: Mapping[str, Any]) -> int:
    code = error.get("code")
    if isinstance(code, int) and 400 <= code <= 599:
        return code
    return 502


def chat_completion_to_messages(
    payload: ChatCompletionResponse,
    model: Optional[str] = None,
    message_id: Optional[str] = None,
) -> MessagesResponse:
    """Translate an OpenAI Chat Completions response to an Anthropic message.

    Args:
        payload: OpenAI Chat Completions API response body.
        model: Model identifier the request was sent with.
        message_id: Message id to use; generated when omitted.

    Returns:
        Anthropic Messages API response body.

    Raises:
        BackendError: If the body carries an error object instead of choices.
        TranslationError: If the body cannot be interpreted.
    """
    if not isinstance(payload, Mapping):
        raise TranslationError("backend response is not a JSON object")

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        error = payload.get("error")
        if isinstance(error, Mapping):
            body = json.dumps({"error": dict(error)}, ensure_ascii=False).encode("utf-8")
            raise BackendError(
                _error_status(error), body, {"content-type": "application/json"}
            )
        raise TranslationError("backend response has no choices")

    # Anthropic only supports n=1
    choice = choices[0]
    if not isinstance(choice, Mapping):
        raise TranslationError("backend choice is not a JSON object")
    message = choice.get("message") or {}
    if not isinstance(message, Mapping):
        raise TranslationError("backend message is not a JSON object")

    blocks: list[dict[str, Any]] = []
    text = _message_text(message.get("content"))
    if text:
        blocks.append({"type": "text", "text": text})

    tool_calls = message.get("tool_calls") or []
    if not isinstance(tool_calls, list):
        raise TranslationError("backend tool_calls is not a list")
    for call in tool_calls:
        function = call.get("function") if isinstance(call, Mapping) else None
        if not isinstance(function, Mapping):
            raise TranslationError(f"malformed tool call in backend response: {call!r:.100}")
        name = function.get("name") or ""
        blocks.append({
            "type": "tool_use",
            "id": call.get("id") or f"toolu_{uuid.uuid4().hex[:24]}",
            "name": name,
            "input": parse_tool_arguments(function.get("arguments"), name),
        })

    if not blocks:
        blocks = [{"type": "text", "text": ""}]

    return {
        "id": message_id or f"msg_{uuid.uuid4().hex[:24]}",
        "type": "message",
        "role": "assistant",
        "model": model or payload.get("model", ""),
        "content": blocks,
        "stop_reason": convert_stop_reason(
            choice.get("finish_reason"),
            choice.get("native_finish_reason"),
            has_tool_calls=bool(tool_calls),
        ),
        "stop_sequence": None,
        "usage": convert_usage(payload.get("usage")),
    }
