"""Tests for collapsing tool call/result spans outside the recent tail."""

from conftest import assistant, dialogue, tool_result, user
from context_engine.core.compressor import HistoryCompressor
from context_engine.types import CompressionConfig, MessageRole, ToolCall


def test_pair_outside_tail_collapses():
    call = ToolCall(name="search_memories")
    messages = [assistant("checking", call), tool_result("3 results", call)] + dialogue(10)
    result = HistoryCompressor().summarize_tool_interactions(messages)

    assert len(result) == 11
    summary = result[0]
    assert summary.role == MessageRole.SUMMARY
    assert summary.is_summary
    assert summary.content == "[Tool Interaction: search_memories executed. Results hidden.]"
    assert result[1:] == messages[2:]


def test_pair_inside_tail_untouched():
    call = ToolCall(name="search_memories")
    messages = dialogue(5) + [assistant("checking", call), tool_result("3 results", call)] + dialogue(8)
    assert HistoryCompressor().summarize_tool_interactions(messages) == messages


def test_multiple_calls_and_results_become_one_message():
    a, b = ToolCall(name="read_file"), ToolCall(name="list_dir")
    messages = [
        user("look around"),
        assistant("", a, b),
        tool_result("contents", a),
        tool_result("entries", b),
        assistant("done"),
    ] + dialogue(10)
    result = HistoryCompressor().summarize_tool_interactions(messages)

    assert len(result) == 13
    assert result[0] is messages[0]
    assert result[1].content == "[Tool Interaction: read_file, list_dir executed. Results hidden.]"
    assert result[2] is messages[4]


def test_call_without_result_kept():
    call = ToolCall(name="search")
    messages = [assistant("checking", call), user("never mind")] + dialogue(10)
    assert HistoryCompressor().summarize_tool_interactions(messages) == messages


def test_orphan_tool_result_kept():
    messages = [tool_result("stray output"), user("hi")] + dialogue(10)
    assert HistoryCompressor().summarize_tool_interactions(messages) == messages


def test_short_history_unchanged():
    call = ToolCall(name="search")
    messages = [assistant("checking", call), tool_result("ok", call)]
    assert HistoryCompressor().summarize_tool_interactions(messages) == messages


def test_recent_buffer_configurable():
    call = ToolCall(name="search")
    messages = [assistant("checking", call), tool_result("ok", call), user("thanks")]
    result = HistoryCompressor(CompressionConfig(recent_buffer=1)).summarize_tool_interactions(messages)
    assert len(result) == 2
    assert result[0].is_summary
    assert result[1] is messages[2]
