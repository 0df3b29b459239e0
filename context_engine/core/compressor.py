"""HistoryCompressor: fit long conversation histories into a token budget.

Two strategies share one cheap pre-pass:

* ``compress`` - topic chunks become one summary each; too many topic
  summaries (or an explicit broad request) collapse into one broad summary.
* ``recursive_summarize`` - Raptor-style: greedy token-capped chunks are
  summarized level by level until the older history fits.
* ``summarize_tool_interactions`` - assistant tool calls and their results
  outside the recent tail collapse into a one-line marker.

The most recent ``recent_buffer`` messages are always kept verbatim. LLM
failures never propagate; each summary has a deterministic fallback.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, TypeVar

from ..formatting import format_transcript, render_memories
from ..token_counter import count_parts, estimate_tokens
from ..types import (
    TOPIC_CHANGE_TOOL,
    CompletionProvider,
    CompressionConfig,
    CompressionScope,
    ConversationMessage,
    MemoryItem,
    MessageRole,
    SummarizationFailed,
    SummaryType,
)
from .summary_tree import LeafNode, SummaryNode, SummaryTreeNode, flatten_node, node_tokens

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOPIC_SUMMARY_PROMPT = """\
Summarize the following discussion topic concisely (max {max_words} words). Focus on key decisions,
technical details, and outcomes.

TRANSCRIPT:
{transcript}"""

BROAD_SUMMARY_PROMPT = """\
Create a high-level "Broad Summary" of the conversation so far, based on the following topic summaries.
The goal is to compress context while retaining the overall narrative arc and critical facts.

TOPIC SUMMARIES:
{summaries}"""

CHUNK_SUMMARY_PROMPT = """\
Summarize the following conversation segment. Capture the key points, user intent, and outcomes.

TRANSCRIPT:
{transcript}"""

MEMORY_CHUNK_PROMPT = """\
Compress the following user memories into a single concise paragraph. Preserve key facts, names,
and preferences.

MEMORIES:
{memories}"""

MEMORY_ROLLUP_PROMPT = """\
Create a high-level summary of the user's memory context.

CONTEXT:
{context}"""

TOPIC_SUMMARY_FALLBACK = "Topic Summary (Generation Failed): {count} messages."
BROAD_SUMMARY_FALLBACK = "Broad Conversation Summary (Generation Failed)."
CHUNK_SUMMARY_FALLBACK = "Summary failed."
TOOL_INTERACTION_SUMMARY = "[Tool Interaction: {names} executed. Results hidden.]"


class HistoryCompressor:
    """Summarize older conversation history with an LLM."""

    def __init__(
        self,
        config: CompressionConfig | None = None,
        token_counter: Callable[[str], int] | None = None,
        llm: CompletionProvider | None = None,
    ) -> None:
        self.config = config or CompressionConfig()
        self.token_counter = token_counter or estimate_tokens
        self.llm = llm

    # ------------------------------------------------------------------
    # Topic / broad compression
    # ------------------------------------------------------------------

    async def compress(
        self,
        messages: list[ConversationMessage],
        scope: CompressionScope = CompressionScope.TOPIC,
        llm: CompletionProvider | None = None,
    ) -> list[ConversationMessage]:
        """Replace everything but the recent tail with topic (or broad) summaries."""
        llm = llm or self.llm
        buffer = self.config.recent_buffer
        if len(messages) <= buffer:
            return list(messages)

        split = len(messages) - buffer
        older, recent = messages[:split], messages[split:]

        chunks = self.smart_chunk(older)
        compressed = await self._run_bounded(
            [self._compress_chunk(chunk, llm) for chunk in chunks]
        )

        total_tokens = count_parts((m.content for m in compressed), self.token_counter)
        over_threshold = total_tokens > self.config.broad_summary_threshold
        if (over_threshold or scope == CompressionScope.BROAD) and len(compressed) > 1:
            broad = await self._broad_summary(compressed, llm)
            logger.info(
                "Collapsed %d topic summaries (%d tokens, scope=%s) into a broad summary",
                len(compressed), total_tokens, scope.value,
            )
            compressed = [ConversationMessage.summary(broad, SummaryType.BROAD)]

        logger.info(
            "Compressed %d older messages into %d summaries, kept %d recent",
            len(older), len(compressed), len(recent),
        )
        return compressed + list(recent)

    def smart_chunk(self, messages: list[ConversationMessage]) -> list[list[ConversationMessage]]:
        """Split messages into topic chunks.

        A chunk closes at a ``mark_topic_change`` tool call, or once it holds
        ``topic_group_size`` messages. The size rule waits while the current
        message is a tool call followed by its tool result, so a pair is
        never split (the chunk may grow past the group size).
        """
        chunks: list[list[ConversationMessage]] = []
        current: list[ConversationMessage] = []

        for index, msg in enumerate(messages):
            current.append(msg)

            if msg.find_tool_call(TOPIC_CHANGE_TOOL) is not None:
                chunks.append(current)
                current = []
                continue

            defer = (
                msg.has_tool_calls
                and index + 1 < len(messages)
                and messages[index + 1].role == MessageRole.TOOL
            )
            if len(current) >= self.config.topic_group_size and not defer:
                chunks.append(current)
                current = []

        if current:
            chunks.append(current)
        return chunks

    async def _compress_chunk(
        self, chunk: list[ConversationMessage], llm: CompletionProvider | None,
    ) -> ConversationMessage:
        # Already compressed on an earlier pass
        if len(chunk) == 1 and chunk[0].role == MessageRole.SUMMARY:
            return chunk[0]

        provided = self._provided_topic_summary(chunk)
        if provided is not None:
            content = provided
        else:
            content = await self._topic_summary(chunk, llm)
        return ConversationMessage.summary(content, SummaryType.TOPIC)

    @staticmethod
    def _provided_topic_summary(chunk: list[ConversationMessage]) -> str | None:
        """Summary the assistant passed to ``mark_topic_change``, if any."""
        for msg in chunk:
            call = msg.find_tool_call(TOPIC_CHANGE_TOOL)
            if call is None:
                continue
            summary = call.arguments.get("summary")
            if isinstance(summary, str):
                return summary
        return None

    async def _topic_summary(
        self, chunk: list[ConversationMessage], llm: CompletionProvider | None,
    ) -> str:
        prompt = TOPIC_SUMMARY_PROMPT.format(
            max_words=self.config.topic_summary_words,
            transcript=format_transcript(chunk),
        )
        try:
            return await self._complete(llm, prompt)
        except SummarizationFailed as e:
            logger.warning(f"Topic summary failed for {len(chunk)} messages: {e}")
            return TOPIC_SUMMARY_FALLBACK.format(count=len(chunk))

    async def _broad_summary(
        self, summaries: list[ConversationMessage], llm: CompletionProvider | None,
    ) -> str:
        prompt = BROAD_SUMMARY_PROMPT.format(
            summaries="\n\n".join(m.content for m in summaries),
        )
        try:
            return await self._complete(llm, prompt)
        except SummarizationFailed as e:
            logger.warning(f"Broad summary failed: {e}")
            return BROAD_SUMMARY_FALLBACK

    # ------------------------------------------------------------------
    # Recursive (Raptor-style) compression
    # ------------------------------------------------------------------

    async def recursive_summarize(
        self,
        messages: list[ConversationMessage],
        target_tokens: int,
        llm: CompletionProvider | None = None,
    ) -> list[ConversationMessage]:
        """Summarize older history level by level until it fits ``target_tokens``.

        Best effort: stops after ``raptor_max_levels`` levels even when the
        target is still out of reach.
        """
        tree = await self.build_summary_tree(messages, target_tokens, llm)
        return [flatten_node(node) for node in tree]

    async def build_summary_tree(
        self,
        messages: list[ConversationMessage],
        target_tokens: int,
        llm: CompletionProvider | None = None,
    ) -> list[SummaryTreeNode]:
        """Same as ``recursive_summarize`` but keeps the summary nodes and their children."""
        llm = llm or self.llm
        collapsed = self.summarize_tool_interactions(messages)

        if count_parts((m.content for m in collapsed), self.token_counter) <= target_tokens:
            return [LeafNode(m) for m in collapsed]

        keep = min(self.config.recent_buffer, len(collapsed))
        split = len(collapsed) - keep
        older, recent = collapsed[:split], collapsed[split:]
        recent_nodes: list[SummaryTreeNode] = [LeafNode(m) for m in recent]
        if not older:
            return recent_nodes

        nodes: list[SummaryTreeNode] = [LeafNode(m) for m in older]
        recent_tokens = count_parts((m.content for m in recent), self.token_counter)
        available = max(0, target_tokens - recent_tokens)

        levels = 0
        while levels < self.config.raptor_max_levels:
            older_tokens = sum(node_tokens(n, self.token_counter) for n in nodes)
            if older_tokens <= available:
                break
            reduced = await self.summarize_level(nodes, llm)
            levels += 1
            if len(reduced) == len(nodes):
                # Every chunk was a single node; further levels would be identical
                logger.debug("Summary level %d made no progress, stopping", levels)
                break
            nodes = reduced

        logger.info(
            "Recursive summarization: %d older messages -> %d nodes after %d levels",
            len(older), len(nodes), levels,
        )
        return nodes + recent_nodes

    async def summarize_level(
        self,
        nodes: list[SummaryTreeNode],
        llm: CompletionProvider | None = None,
    ) -> list[SummaryTreeNode]:
        """One Raptor level: greedy token-capped chunks, each multi-node chunk summarized."""
        llm = llm or self.llm
        cap = self.config.raptor_chunk_tokens
        chunks: list[list[SummaryTreeNode]] = []
        current: list[SummaryTreeNode] = []
        current_tokens = 0

        for node in nodes:
            tokens = node_tokens(node, self.token_counter)
            if current and current_tokens + tokens > cap:
                chunks.append(current)
                current = []
                current_tokens = 0
            current.append(node)
            current_tokens += tokens
        if current:
            chunks.append(current)

        return await self._run_bounded([self._reduce_chunk(c, llm) for c in chunks])

    async def _reduce_chunk(
        self, chunk: list[SummaryTreeNode], llm: CompletionProvider | None,
    ) -> SummaryTreeNode:
        if len(chunk) == 1:
            return chunk[0]
        transcript = "\n\n".join(n.content for n in chunk)
        try:
            content = await self._complete(llm, CHUNK_SUMMARY_PROMPT.format(transcript=transcript))
        except SummarizationFailed as e:
            logger.warning(f"Recursive summary failed for {len(chunk)} nodes: {e}")
            content = CHUNK_SUMMARY_FALLBACK
        return SummaryNode(content=content, children=tuple(chunk))

    # ------------------------------------------------------------------
    # Tool interaction collapsing
    # ------------------------------------------------------------------

    def summarize_tool_interactions(
        self, messages: list[ConversationMessage],
    ) -> list[ConversationMessage]:
        """Collapse assistant tool calls plus their tool results into one marker message.

        Only messages before the recent tail are touched. A call with no
        following tool result is kept as-is.
        """
        buffer = self.config.recent_buffer
        if len(messages) <= buffer:
            return list(messages)

        split = len(messages) - buffer
        older, recent = messages[:split], messages[split:]

        processed: list[ConversationMessage] = []
        i = 0
        while i < len(older):
            msg = older[i]
            if msg.role == MessageRole.ASSISTANT and msg.has_tool_calls:
                j = i + 1
                while j < len(older) and older[j].role == MessageRole.TOOL:
                    j += 1
                if j - i > 1:
                    names = ", ".join(call.name for call in msg.tool_calls or [])
                    processed.append(ConversationMessage.summary(
                        TOOL_INTERACTION_SUMMARY.format(names=names), summary_type=None,
                    ))
                    i = j
                    continue
            processed.append(msg)
            i += 1

        return processed + list(recent)

    # ------------------------------------------------------------------
    # Memory list summarization
    # ------------------------------------------------------------------

    async def summarize_memories(
        self,
        memories: list[MemoryItem],
        target_tokens: int,
        llm: CompletionProvider | None = None,
    ) -> str:
        """Render memories for a prompt, summarizing in chunks when over budget."""
        llm = llm or self.llm
        if not memories:
            return ""

        raw = render_memories(memories)
        if self.token_counter(raw) <= target_tokens:
            return raw

        size = max(1, self.config.memory_chunk_size)
        chunks = [memories[i:i + size] for i in range(0, len(memories), size)]
        summaries = await self._run_bounded(
            [self._summarize_memory_chunk(chunk, llm) for chunk in chunks]
        )
        combined = "\n\n".join(summaries)

        if self.token_counter(combined) > target_tokens:
            try:
                return await self._complete(llm, MEMORY_ROLLUP_PROMPT.format(context=combined))
            except SummarizationFailed as e:
                logger.warning(f"Memory rollup failed, using chunk summaries: {e}")
                return combined
        return combined

    async def _summarize_memory_chunk(
        self, chunk: list[MemoryItem], llm: CompletionProvider | None,
    ) -> str:
        chunk_text = "\n".join(f"- {m.content}" for m in chunk)
        try:
            return await self._complete(llm, MEMORY_CHUNK_PROMPT.format(memories=chunk_text))
        except SummarizationFailed as e:
            logger.warning(f"Memory chunk summary failed, using raw text: {e}")
            return chunk_text

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _complete(self, llm: CompletionProvider | None, prompt: str) -> str:
        if llm is None:
            raise SummarizationFailed("No completion provider configured")
        try:
            return await llm.complete(prompt, use_fast_model=True)
        except Exception as e:
            raise SummarizationFailed(str(e)) from e

    async def _run_bounded(self, coros: Iterable[Awaitable[T]]) -> list[T]:
        """Await coroutines concurrently (at most ``max_concurrent_summaries``), in order."""
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_summaries))

        async def run(coro: Awaitable[T]) -> T:
            async with semaphore:
                return await coro

        return list(await asyncio.gather(*(run(c) for c in coros)))
