"""Unit tests for the message sanitizer."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from domain.conversation.message_sanitizer import message_text, sanitize_messages


def call(call_id, name="saveMemory", args=None):
    return {"id": call_id, "name": name, "args": args or {}, "type": "tool_call"}


class TestSanitizeMessages:
    """Tests for closing out dangling tool calls"""

    def test_resolved_history_unchanged(self):
        """Should leave a fully resolved history untouched."""
        history = [
            HumanMessage(content="remember I like tea"),
            AIMessage(content="", tool_calls=[call("c1")]),
            ToolMessage(content="ok", tool_call_id="c1"),
            AIMessage(content="Noted!"),
        ]

        assert sanitize_messages(history) == history

    def test_trailing_call_without_result_removed(self):
        """Should drop an assistant message that is only a dangling tool call."""
        history = [
            HumanMessage(content="hi"),
            AIMessage(content="", tool_calls=[call("c1")]),
        ]

        assert sanitize_messages(history) == [HumanMessage(content="hi")]

    def test_trailing_call_keeps_text(self):
        """Should keep the text of an assistant message whose call is dropped."""
        history = [
            HumanMessage(content="hi"),
            AIMessage(content="Let me save that", tool_calls=[call("c1")]),
        ]

        result = sanitize_messages(history)

        assert len(result) == 2
        assert message_text(result[1]) == "Let me save that"
        assert result[1].tool_calls == []

    def test_only_unanswered_calls_removed(self):
        """Should keep answered calls of a trailing message and drop the rest."""
        history = [
            HumanMessage(content="do two things"),
            AIMessage(content="", tool_calls=[call("c1"), call("c2")]),
            ToolMessage(content="ok", tool_call_id="c1"),
        ]

        result = sanitize_messages(history)

        assert [c["id"] for c in result[1].tool_calls] == ["c1"]
        assert result[2].tool_call_id == "c1"

    def test_non_trailing_calls_left_for_resolver(self):
        """Should not touch dangling calls that are followed by a user turn."""
        history = [
            AIMessage(content="", tool_calls=[call("c1", "resetAvatar")]),
            HumanMessage(content="never mind"),
        ]

        assert sanitize_messages(history) == history

    def test_orphan_tool_result_dropped(self):
        """Should drop tool results that answer no earlier call."""
        history = [
            HumanMessage(content="hi"),
            ToolMessage(content="stray", tool_call_id="nope"),
            AIMessage(content="hello"),
        ]

        assert sanitize_messages(history) == [HumanMessage(content="hi"), AIMessage(content="hello")]

    @pytest.mark.parametrize("history", [
        [],
        [ToolMessage(content="stray", tool_call_id="x1"), ToolMessage(content="stray", tool_call_id="x2")],
        [AIMessage(content="", tool_calls=[call("c1"), call("c2")])],
        [HumanMessage(content="hi"), AIMessage(content="Saving", tool_calls=[call("c1")])],
        [
            HumanMessage(content="hi"),
            AIMessage(content="", tool_calls=[call("c1", "resetAvatar")]),
            HumanMessage(content="never mind"),
            AIMessage(content="ok"),
        ],
        [
            HumanMessage(content="hi"),
            AIMessage(content="", tool_calls=[call("c1")]),
            ToolMessage(content="ok", tool_call_id="c1"),
            AIMessage(content="then", tool_calls=[call("c2"), call("c3")]),
            ToolMessage(content="ok", tool_call_id="c3"),
        ],
        [
            HumanMessage(content="hi"),
            AIMessage(content="", tool_calls=[call("c1")]),
            AIMessage(content="", tool_calls=[call("c2")]),
            ToolMessage(content="stray", tool_call_id="c9"),
        ],
    ], ids=[
        "empty", "orphans-only", "calls-only", "text-and-call", "unresolved-mid-history",
        "partially-answered", "stacked-dangling",
    ])
    def test_idempotent(self, history):
        """Should return the same history when applied twice."""
        once = sanitize_messages(history)

        assert sanitize_messages(once) == once

    def test_empty_history(self):
        assert sanitize_messages([]) == []

    def test_list_content_blocks(self):
        """Should strip tool_use blocks for removed calls from list content."""
        message = AIMessage(
            content=[
                {"type": "text", "text": "Checking"},
                {"type": "tool_use", "id": "c1", "name": "saveMemory", "input": {}},
            ],
            tool_calls=[call("c1")],
        )

        result = sanitize_messages([HumanMessage(content="hi"), message])

        assert result[1].content == [{"type": "text", "text": "Checking"}]
        assert message_text(result[1]) == "Checking"
