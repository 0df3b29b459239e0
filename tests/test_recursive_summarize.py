"""Tests for recursive (Raptor-style) summarization."""

import pytest

from conftest import MockCompletionProvider, assistant, dialogue, tool_result, user
from context_engine.core.compressor import CHUNK_SUMMARY_FALLBACK, HistoryCompressor
from context_engine.core.summary_tree import (
    LeafNode,
    SummaryNode,
    iter_leaves,
    tree_depth,
)
from context_engine.types import CompressionConfig, MessageRole, SummaryType, ToolCall


def _long_messages(count: int, chars: int = 400) -> list:
    """Messages of exactly ``chars // 4`` estimated tokens each."""
    return [
        user(f"{i:03d}" + "x" * (chars - 3)) if i % 2 == 0 else assistant(f"{i:03d}" + "y" * (chars - 3))
        for i in range(count)
    ]


class TestWithinBudget:
    @pytest.mark.asyncio
    async def test_no_llm_calls_when_fits(self, llm):
        messages = dialogue(20)
        result = await HistoryCompressor(llm=llm).recursive_summarize(messages, target_tokens=10_000)
        assert result == messages
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_tool_collapse_alone_can_fit(self, llm):
        call = ToolCall(name="read_file")
        messages = [assistant("reading", call), tool_result("z" * 8000, call)] + dialogue(12)
        compressor = HistoryCompressor(llm=llm)
        result = await compressor.recursive_summarize(messages, target_tokens=200)

        assert llm.call_count == 0
        assert result == compressor.summarize_tool_interactions(messages)
        assert result[0].content == "[Tool Interaction: read_file executed. Results hidden.]"
        assert len(result) == 13

    @pytest.mark.asyncio
    async def test_only_recent_messages_returned_as_is(self, llm):
        messages = _long_messages(5)
        result = await HistoryCompressor(llm=llm).recursive_summarize(messages, target_tokens=10)
        assert result == messages
        assert llm.call_count == 0


class TestSummarization:
    @pytest.mark.asyncio
    async def test_older_collapsed_recent_kept(self, llm):
        messages = _long_messages(30)
        result = await HistoryCompressor(llm=llm).recursive_summarize(messages, target_tokens=1500)

        assert len(result) == 11
        assert result[0].role == MessageRole.SUMMARY
        assert result[0].summary_type == SummaryType.TOPIC
        assert result[0].content == "Summary text."
        assert result[1:] == messages[20:]
        assert llm.call_count == 1
        assert llm.fast_flags == [True]

    @pytest.mark.asyncio
    async def test_tree_keeps_children(self, llm):
        messages = _long_messages(30)
        tree = await HistoryCompressor(llm=llm).build_summary_tree(messages, target_tokens=1500)

        assert isinstance(tree[0], SummaryNode)
        assert len(tree[0].children) == 20
        assert list(iter_leaves(tree[0])) == messages[:20]
        assert tree_depth(tree[0]) == 1
        assert all(isinstance(n, LeafNode) for n in tree[1:])

    @pytest.mark.asyncio
    async def test_fallback_text_on_llm_failure(self):
        llm = MockCompletionProvider(fail=True)
        result = await HistoryCompressor(llm=llm).recursive_summarize(_long_messages(30), target_tokens=1500)
        assert result[0].content == CHUNK_SUMMARY_FALLBACK
        assert len(result) == 11

    @pytest.mark.asyncio
    async def test_stops_at_max_levels_when_target_unreachable(self):
        # Every summary is as long as a source message, so each level only halves the node count
        llm = MockCompletionProvider(response="s" * 400)
        compressor = HistoryCompressor(CompressionConfig(raptor_chunk_tokens=250), llm=llm)
        messages = _long_messages(74)

        tree = await compressor.build_summary_tree(messages, target_tokens=1)

        # 64 older leaves -> 32 -> 16 -> 8 -> 4 -> 2 after five levels
        assert len(tree) == 12
        assert llm.call_count == 32 + 16 + 8 + 4 + 2
        assert all(tree_depth(n) == 5 for n in tree[:2])
        assert [n.message for n in tree[2:]] == messages[64:]

    @pytest.mark.asyncio
    async def test_level_count_capped(self, llm, monkeypatch):
        compressor = HistoryCompressor(llm=llm)
        levels = []

        async def merge_first_two(nodes, llm=None):
            levels.append(len(nodes))
            merged = SummaryNode(content="m" * 4000, children=tuple(nodes[:2]))
            return [merged] + list(nodes[2:])

        monkeypatch.setattr(compressor, "summarize_level", merge_first_two)
        await compressor.recursive_summarize(_long_messages(40), target_tokens=1)
        assert len(levels) == 5
        assert levels == [30, 29, 28, 27, 26]

    @pytest.mark.asyncio
    async def test_stops_when_level_makes_no_progress(self, llm, monkeypatch):
        compressor = HistoryCompressor(llm=llm)
        calls = []
        original = compressor.summarize_level

        async def spy(nodes, llm=None):
            calls.append(len(nodes))
            return await original(nodes, llm)

        monkeypatch.setattr(compressor, "summarize_level", spy)
        # Each message exceeds half the chunk cap, so no two ever share a chunk
        messages = _long_messages(15, chars=4800)
        result = await compressor.recursive_summarize(messages, target_tokens=100)

        assert calls == [5]
        assert llm.call_count == 0
        assert result == messages


class TestSummarizeLevel:
    @pytest.mark.asyncio
    async def test_greedy_chunks_respect_cap(self, llm):
        compressor = HistoryCompressor(CompressionConfig(raptor_chunk_tokens=300), llm=llm)
        nodes = [LeafNode(m) for m in _long_messages(7)]
        result = await compressor.summarize_level(nodes)

        # 100 tokens each, cap 300: chunks of 3, 3, 1
        assert [type(n) for n in result] == [SummaryNode, SummaryNode, LeafNode]
        assert [len(n.children) for n in result[:2]] == [3, 3]
        assert result[2] is nodes[6]
        assert llm.call_count == 2

    @pytest.mark.asyncio
    async def test_single_node_not_resummarized(self, llm):
        nodes = [LeafNode(user("only"))]
        result = await HistoryCompressor(llm=llm).summarize_level(nodes)
        assert result == nodes
        assert llm.call_count == 0
