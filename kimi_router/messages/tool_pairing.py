"""Tool call / tool result pairing repair for translated messages.

OpenAI-compatible backends reject (or quietly mishandle) an assistant
``tool_calls`` entry without a matching ``tool`` message, and a ``tool``
message without the call it answers. Client histories routinely contain
both (interrupted turns, truncated context), so instead of failing the
request we drop whatever cannot be paired.

Pairing is strict: a tool message only pairs with the assistant message
directly before its run of tool messages, never with one further back.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

logger = logging.getLogger("kimi-router")


def _following_tool_ids(messages: Sequence[Mapping[str, Any]], start: int) -> set[str]:
    """Collect tool_call_ids of the tool-message run beginning at ``start``."""
    ids: set[str] = set()
    j = start
    while j < len(messages) and messages[j].get("role") == "tool":
        tool_call_id = messages[j].get("tool_call_id")
        if tool_call_id:
            ids.add(tool_call_id)
        j += 1
    return ids


def _run_start(messages: Sequence[Mapping[str, Any]], index: int) -> int:
    """Index of the first tool message in the run containing ``index``."""
    k = index
    while k > 0 and messages[k - 1].get("role") == "tool":
        k -= 1
    return k


def _preceding_assistant(
    messages: Sequence[Mapping[str, Any]], run_start: int
) -> Optional[Mapping[str, Any]]:
    if run_start == 0:
        return None
    candidate = messages[run_start - 1]
    if candidate.get("role") != "assistant":
        return None
    return candidate


def _declared_ids(message: Mapping[str, Any]) -> set[str]:
    return {
        call.get("id")
        for call in message.get("tool_calls") or []
        if isinstance(call, Mapping) and call.get("id")
    }


def validate_tool_pairing(messages: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Drop tool calls and tool results that have no immediate counterpart.

    Args:
        messages: OpenAI-format messages (output of the request translator).

    Returns:
        A new list; the input and its messages are not mutated. Running the
        function again on its own output returns an equal list.
    """
    validated: list[dict[str, Any]] = []

    for i, message in enumerate(messages):
        role = message.get("role")

        if role == "assistant" and message.get("tool_calls"):
            answered = _following_tool_ids(messages, i + 1)
            current = dict(message)
            kept: list[Any] = []
            dropped: list[Any] = []
            seen: set[str] = set()
            for call in message["tool_calls"]:
                call_id = call.get("id")
                if call_id in answered and call_id not in seen:
                    kept.append(call)
                    seen.add(call_id)
                else:
                    dropped.append(call_id)
            if dropped:
                logger.debug(f"Dropping unanswered tool calls: {dropped}")
            if kept:
                current["tool_calls"] = kept
            else:
                current.pop("tool_calls", None)
            if current.get("content") or current.get("tool_calls"):
                validated.append(current)
            else:
                logger.debug("Dropping assistant message left empty after tool call repair")

        elif role == "tool":
            run_start = _run_start(messages, i)
            assistant = _preceding_assistant(messages, run_start)
            tool_call_id = message.get("tool_call_id")
            answered_earlier = any(
                messages[k].get("tool_call_id") == tool_call_id for k in range(run_start, i)
            )
            if answered_earlier:
                logger.debug(f"Dropping duplicate tool result: {tool_call_id}")
            elif assistant is not None and tool_call_id in _declared_ids(assistant):
                validated.append(dict(message))
            else:
                logger.debug(f"Dropping orphaned tool result: {tool_call_id}")

        else:
            validated.append(dict(message))

    return validated
