"""Tests for tool call / tool result pairing repair."""

import copy
import logging

import pytest

from kimi_router.messages.tool_pairing import validate_tool_pairing


def _call(call_id, name="tool"):
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": "{}"}}


def _assistant(*call_ids, content=None):
    message = {"role": "assistant", "content": content}
    if call_ids:
        message["tool_calls"] = [_call(call_id) for call_id in call_ids]
    return message


def _tool(call_id, content="ok"):
    return {"role": "tool", "tool_call_id": call_id, "content": content}


def _assert_paired(messages):
    """Every call has exactly one adjacent result and every result an adjacent call."""
    for i, message in enumerate(messages):
        if message["role"] == "assistant" and message.get("tool_calls"):
            run = []
            j = i + 1
            while j < len(messages) and messages[j]["role"] == "tool":
                run.append(messages[j]["tool_call_id"])
                j += 1
            for call in message["tool_calls"]:
                assert run.count(call["id"]) == 1, f"call {call['id']} has {run.count(call['id'])} results"
        if message["role"] == "tool":
            k = i
            while messages[k - 1]["role"] == "tool":
                k -= 1
            owner = messages[k - 1] if k > 0 else None
            assert owner is not None and owner["role"] == "assistant"
            assert message["tool_call_id"] in {c["id"] for c in owner.get("tool_calls", [])}


class TestValidateToolPairing:
    def test_complete_pairs_are_unchanged(self):
        messages = [
            {"role": "user", "content": "go"},
            _assistant("a", "b", content="Working"),
            _tool("a"),
            _tool("b"),
            {"role": "assistant", "content": "Done"},
        ]
        assert validate_tool_pairing(messages) == messages

    def test_unanswered_call_is_removed(self):
        messages = [
            {"role": "user", "content": "go"},
            _assistant("abc", "xyz", content="Sure"),
            _tool("abc"),
        ]
        result = validate_tool_pairing(messages)
        assert [c["id"] for c in result[1]["tool_calls"]] == ["abc"]
        _assert_paired(result)

    def test_assistant_without_surviving_calls_keeps_text(self):
        messages = [
            {"role": "user", "content": "go"},
            _assistant("a", content="Let me look"),
            {"role": "user", "content": "never mind"},
        ]
        result = validate_tool_pairing(messages)
        assert result[1] == {"role": "assistant", "content": "Let me look"}

    def test_assistant_left_empty_is_dropped(self):
        messages = [
            {"role": "user", "content": "go"},
            _assistant("a"),
            {"role": "user", "content": "never mind"},
        ]
        result = validate_tool_pairing(messages)
        assert [m["role"] for m in result] == ["user", "user"]

    def test_orphaned_result_is_removed(self):
        messages = [
            {"role": "user", "content": "hi"},
            _tool("ghost"),
            {"role": "assistant", "content": "hello"},
        ]
        result = validate_tool_pairing(messages)
        assert [m["role"] for m in result] == ["user", "assistant"]

    def test_result_only_pairs_with_immediate_assistant(self):
        messages = [
            _assistant("a", content="first"),
            _tool("a"),
            {"role": "user", "content": "more"},
            _tool("a"),
        ]
        result = validate_tool_pairing(messages)
        assert [m["role"] for m in result] == ["assistant", "tool", "user"]

    def test_result_after_sibling_results_is_kept(self):
        messages = [_assistant("a", "b", "c"), _tool("a"), _tool("b"), _tool("c")]
        assert validate_tool_pairing(messages) == messages

    def test_result_for_undeclared_id_is_removed(self):
        messages = [_assistant("a"), _tool("a"), _tool("zzz")]
        result = validate_tool_pairing(messages)
        assert [m.get("tool_call_id") for m in result] == [None, "a"]

    def test_duplicate_results_keep_the_first(self):
        messages = [_assistant("a"), _tool("a", "first"), _tool("a", "second")]
        result = validate_tool_pairing(messages)
        assert result[1:] == [_tool("a", "first")]
        _assert_paired(result)

    def test_duplicate_calls_keep_the_first(self):
        messages = [_assistant("a", "a"), _tool("a")]
        result = validate_tool_pairing(messages)
        assert len(result[0]["tool_calls"]) == 1
        _assert_paired(result)

    def test_input_is_not_mutated(self):
        messages = [_assistant("a", "b", content="x"), _tool("a")]
        snapshot = copy.deepcopy(messages)
        validate_tool_pairing(messages)
        assert messages == snapshot

    def test_logs_dropped_ids(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="kimi-router"):
            validate_tool_pairing([_assistant("lost", content="x"), {"role": "user", "content": "y"}])
        assert "lost" in caplog.text

    @pytest.mark.parametrize(
        "messages",
        [
            [_assistant("a", "b"), _tool("b"), _tool("c"), {"role": "user", "content": "x"}, _tool("a")],
            [_tool("a"), _assistant("a", content="t"), _tool("a"), _tool("a")],
            [{"role": "user", "content": "u"}, _assistant("a"), _assistant("b"), _tool("b"), _tool("a")],
            [_assistant("a", content="x"), {"role": "system", "content": "s"}, _tool("a")],
        ],
    )
    def test_output_is_paired_and_idempotent(self, messages):
        once = validate_tool_pairing(messages)
        _assert_paired(once)
        assert validate_tool_pairing(once) == once
