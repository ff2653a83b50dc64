"""Stream adapter for converting OpenAI Chat Completions SSE to Anthropic Messages SSE.

Converts the OpenAI chat completion streaming format to Anthropic Messages
streaming format with proper event types and lifecycle events.

OpenAI Chat Completion Events:
    data: {"choices":[{"delta":{"role":"assistant"},"index":0}]}
    data: {"choices":[{"delta":{"content":"Hello"},"index":0}]}
    data: {"choices":[{"delta":{"tool_calls":[...]},"index":0}]}
    data: {"choices":[{"delta":{},"finish_reason":"stop","index":0}]}
    data: [DONE]

Anthropic Messages Events:
    event: message_start
    data: {"type":"message_start","message":{...}}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":10}}

    event: message_stop
    data: {"type":"message_stop"}

At most one content block is open at any time: opening a block always
closes the previous one first.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from ..core.exceptions import TranslationError
from ..core.sse import DONE_SENTINEL, SSELineDecoder, detect_sse_stream_error, format_sse_event, parse_data_line
from ..types import ChatCompletionChunk, MessagesResponse, MessagesUsage
from .translator import convert_stop_reason, convert_usage, parse_tool_arguments

logger = logging.getLogger("kimi-router")


@dataclass
class ToolCallState:
    """Accumulated fragments of one backend tool call (keyed by its index)."""

    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""
    block_index: Optional[int] = None
    closed: bool = False
    dropped_fragments: int = 0

    @property
    def opened(self) -> bool:
        return self.block_index is not None


@dataclass
class StreamState:
    message_started: bool = False
    message_closed: bool = False
    open_block: Optional[int] = None
    open_kind: Optional[str] = None
    open_tool_index: Optional[int] = None
    next_block_index: int = 0
    tool_calls: dict[int, ToolCallState] = field(default_factory=dict)
    usage: MessagesUsage = field(default_factory=lambda: {"input_tokens": 0, "output_tokens": 0})
    finish_reason: Optional[str] = None
    native_finish_reason: Optional[str] = None
    emitted_tool: bool = False


class ChatToMessagesStreamAdapter:
    """Converts OpenAI chat completion SSE stream to Anthropic Messages SSE events.

    The adapter can be driven synchronously with ``feed``/``finish`` or
    wrapped around an async byte iterator with ``adapt_stream``.
    """

    def __init__(
        self,
        message_id: Optional[str] = None,
        model: str = "",
    ):
        """Initialize the stream adapter.

        Args:
            message_id: The message ID to use (e.g., "msg_xxx")
            model: Model name for the response
        """
        self.message_id = message_id or f"msg_{uuid.uuid4().hex[:24]}"
        self.model = model
        self.state = StreamState()
        self._decoder = SSELineDecoder()
        # Blocks in emission order, for build_final_message
        self._blocks: list[dict[str, Any]] = []

    @property
    def done(self) -> bool:
        return self.state.message_closed

    async def adapt_stream(
        self,
        chat_stream: AsyncIterator[bytes],
    ) -> AsyncIterator[bytes]:
        """Transform OpenAI chat completion stream to Anthropic Messages SSE events.

        Reading stops as soon as the backend sends ``[DONE]``.

        Args:
            chat_stream: The incoming OpenAI chat completion SSE stream

        Yields:
            Anthropic Messages API SSE events as bytes
        """
        async for chunk in chat_stream:
            for event in self.feed(chunk):
                yield event
            if self.done:
                return

        for event in self.finish():
            yield event

    def feed(self, chunk: bytes) -> list[bytes]:
        """Process one raw chunk and return the events it produces."""
        events: list[bytes] = []
        for line in self._decoder.feed(chunk):
            if self.done:
                break
            events.extend(self._process_line(line))
        return events

    def finish(self) -> list[bytes]:
        """Handle end of the backend stream, closing the message if needed."""
        events: list[bytes] = []
        for line in self._decoder.flush():
            if self.done:
                break
            events.extend(self._process_line(line))
        if not self.done:
            logger.debug("MessagesStreamAdapter: stream ended without [DONE]")
            events.extend(self._close_message())
        return events

    def _process_line(self, line: str) -> list[bytes]:
        data_str = parse_data_line(line)
        if data_str is None:
            return []

        events: list[bytes] = []
        if not self.state.message_started:
            events.append(self._emit_message_start())

        if data_str == DONE_SENTINEL:
            events.extend(self._close_message())
            return events
        if not data_str:
            return events

        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            logger.debug(f"MessagesStreamAdapter: Failed to parse: {data_str[:100]}")
            return events

        if not isinstance(data, dict):
            logger.debug(f"MessagesStreamAdapter: Ignoring non-object chunk: {data_str[:100]}")
            return events

        error_message = detect_sse_stream_error(data)
        if error_message:
            logger.warning(f"MessagesStreamAdapter: {error_message}")

        events.extend(self._process_chat_event(data))
        return events

    def _process_chat_event(self, data: ChatCompletionChunk) -> list[bytes]:
        events: list[bytes] = []

        choices = data.get("choices") or []
        if not isinstance(choices, list):
            logger.debug(f"MessagesStreamAdapter: Ignoring non-list choices: {choices!r:.100}")
            choices = []

        for choice in choices:
            if not isinstance(choice, dict):
                continue
            delta = choice.get("delta") or {}
            if not isinstance(delta, dict):
                logger.debug(f"MessagesStreamAdapter: Ignoring non-object delta: {delta!r:.100}")
                delta = {}

            content = delta.get("content")
            if isinstance(content, str) and content:
                events.extend(self._process_text_delta(content))

            tool_calls = delta.get("tool_calls") or []
            if not isinstance(tool_calls, list):
                logger.debug(f"MessagesStreamAdapter: Ignoring non-list tool_calls: {tool_calls!r:.100}")
                tool_calls = []
            for tc in tool_calls:
                if isinstance(tc, dict):
                    events.extend(self._process_tool_call_delta(tc))

            finish_reason = choice.get("finish_reason")
            if isinstance(finish_reason, str) and finish_reason:
                self.state.finish_reason = finish_reason
            native_finish_reason = choice.get("native_finish_reason")
            if isinstance(native_finish_reason, str) and native_finish_reason:
                self.state.native_finish_reason = native_finish_reason

        usage = data.get("usage")
        if isinstance(usage, dict) and usage:
            self.state.usage = convert_usage(usage)

        return events

    def _process_text_delta(self, text: str) -> list[bytes]:
        events: list[bytes] = []
        if self.state.open_kind != "text":
            events.extend(self._close_open_block())
            block_index = self._open_block("text")
            self._blocks.append({"type": "text", "text": ""})
            events.append(self._emit_content_block_start(block_index, {"type": "text", "text": ""}))

        self._blocks[-1]["text"] += text
        events.append(self._emit_content_block_delta(
            self.state.open_block,
            {"type": "text_delta", "text": text},
        ))
        return events

    def _process_tool_call_delta(self, tc: dict[str, Any]) -> list[bytes]:
        tc_index = tc.get("index", 0)
        function = tc.get("function") or {}
        if not isinstance(tc_index, int) or not isinstance(function, dict):
            logger.debug(f"MessagesStreamAdapter: Ignoring malformed tool call fragment: {tc!r:.100}")
            return []

        call = self.state.tool_calls.setdefault(tc_index, ToolCallState())
        if call.closed:
            call.dropped_fragments += 1
            logger.warning(
                f"MessagesStreamAdapter: Dropping fragment for closed tool call index {tc_index}"
            )
            return []

        call_id = tc.get("id")
        if isinstance(call_id, str) and call_id and not call.id:
            call.id = call_id
        name = function.get("name")
        if isinstance(name, str) and name and not call.name:
            call.name = name
        args_delta = function.get("arguments") or ""
        if not isinstance(args_delta, str):
            args_delta = json.dumps(args_delta, ensure_ascii=False)

        if call.opened:
            if not args_delta:
                return []
            call.arguments += args_delta
            return [self._emit_content_block_delta(
                call.block_index,
                {"type": "input_json_delta", "partial_json": args_delta},
            )]

        call.arguments += args_delta
        if not call.name:
            # Buffer until the name arrives
            return []

        events = self._close_open_block()
        if not call.id:
            call.id = f"toolu_{uuid.uuid4().hex[:24]}"
        call.block_index = self._open_block("tool_use", tool_index=tc_index)
        self.state.emitted_tool = True
        block = {"type": "tool_use", "id": call.id, "name": call.name, "input": {}}
        self._blocks.append(block)
        events.append(self._emit_content_block_start(call.block_index, dict(block)))
        events.append(self._emit_content_block_delta(
            call.block_index,
            {"type": "input_json_delta", "partial_json": call.arguments},
        ))
        return events

    def _open_block(self, kind: str, tool_index: Optional[int] = None) -> int:
        block_index = self.state.next_block_index
        self.state.next_block_index += 1
        self.state.open_block = block_index
        self.state.open_kind = kind
        self.state.open_tool_index = tool_index
        return block_index

    def _close_open_block(self) -> list[bytes]:
        if self.state.open_block is None:
            return []
        block_index = self.state.open_block
        if self.state.open_tool_index is not None:
            self.state.tool_calls[self.state.open_tool_index].closed = True
        self.state.open_block = None
        self.state.open_kind = None
        self.state.open_tool_index = None
        return [self._emit_content_block_stop(block_index)]

    def _close_message(self) -> list[bytes]:
        events: list[bytes] = []
        if not self.state.message_started:
            events.append(self._emit_message_start())
        events.extend(self._close_open_block())

        for tc_index, call in sorted(self.state.tool_calls.items()):
            if not call.opened:
                logger.warning(
                    f"MessagesStreamAdapter: Dropping tool call index {tc_index} "
                    f"that never received a name"
                )

        events.append(self._emit_message_delta(self._stop_reason()))
        events.append(self._emit_message_stop())
        self.state.message_closed = True
        return events

    def _stop_reason(self) -> str:
        return convert_stop_reason(
            self.state.finish_reason,
            self.state.native_finish_reason,
            has_tool_calls=self.state.emitted_tool,
        )

    def _emit_message_start(self) -> bytes:
        self.state.message_started = True
        message = {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self.model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": self.state.usage.get("input_tokens", 0), "output_tokens": 0},
        }
        return format_sse_event("message_start", {"type": "message_start", "message": message})

    def _emit_content_block_start(self, index: int, content_block: dict[str, Any]) -> bytes:
        event_data = {
            "type": "content_block_start",
            "index": index,
            "content_block": content_block,
        }
        return format_sse_event("content_block_start", event_data)

    def _emit_content_block_delta(self, index: int, delta: dict[str, Any]) -> bytes:
        event_data = {
            "type": "content_block_delta",
            "index": index,
            "delta": delta,
        }
        return format_sse_event("content_block_delta", event_data)

    def _emit_content_block_stop(self, index: int) -> bytes:
        return format_sse_event("content_block_stop", {"type": "content_block_stop", "index": index})

    def _emit_message_delta(self, stop_reason: str) -> bytes:
        event_data = {
            "type": "message_delta",
            "delta": {"stop_reason": stop_reason, "stop_sequence": None},
            "usage": dict(self.state.usage),
        }
        return format_sse_event("message_delta", event_data)

    def _emit_message_stop(self) -> bytes:
        return format_sse_event("message_stop", {"type": "message_stop"})

    def build_final_message(self) -> MessagesResponse:
        """Build the complete message accumulated so far.

        Returns:
            Complete Anthropic message object
        """
        content: list[dict[str, Any]] = []
        calls_by_block = {
            call.block_index: call
            for call in self.state.tool_calls.values()
            if call.opened
        }
        for block_index, block in enumerate(self._blocks):
            block = dict(block)
            call = calls_by_block.get(block_index)
            if call is not None and call.dropped_fragments:
                index = call.block_index
                logger.error(
                    f"MessagesStreamAdapter: tool call '{call.name}' in block {index} lost "
                    f"{call.dropped_fragments} fragment(s) after its block closed"
                )
                block["input"] = {"raw": call.arguments, "dropped_fragments": call.dropped_fragments}
            elif call is not None:
                try:
                    block["input"] = parse_tool_arguments(call.arguments, call.name or "")
                except TranslationError as exc:
                    logger.warning(f"MessagesStreamAdapter: {exc.message}")
                    block["input"] = {"raw": call.arguments}
            content.append(block)

        # Ensure at least one content block
        if not content:
            content = [{"type": "text", "text": ""}]

        return {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "content": content,
            "model": self.model,
            "stop_reason": self._stop_reason(),
            "stop_sequence": None,
            "usage": dict(self.state.usage),
        }


async def adapt_chat_stream_to_messages(
    message_id: str,
    model: str,
    chat_stream: AsyncIterator[bytes],
) -> AsyncIterator[bytes]:
    """Convenience function to adapt an OpenAI chat stream to Anthropic Messages.

    Args:
        message_id: Message ID for the response
        model: Model name
        chat_stream: Input OpenAI chat completion stream

    Yields:
        Anthropic Messages API SSE events
    """
    adapter = ChatToMessagesStreamAdapter(message_id, model)
    async for event in adapter.adapt_stream(chat_stream):
        yield event
