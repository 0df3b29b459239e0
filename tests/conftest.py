"""Shared fixtures and fakes for context-engine tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from context_engine.types import (
    TOPIC_CHANGE_TOOL,
    ConversationMessage,
    MemoryItem,
    MessageRole,
    NoteFile,
    ToolCall,
)


class MockCompletionProvider:
    """Records prompts; returns canned text or fails on demand."""

    def __init__(self, response: str = "Summary text.", fail: bool = False, delay: float = 0.0):
        self.response = response
        self.fail = fail
        self.delay = delay
        self.prompts: list[str] = []
        self.fast_flags: list[bool] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str, use_fast_model: bool = False) -> str:
        self.prompts.append(prompt)
        self.fast_flags.append(use_fast_model)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                raise RuntimeError("LLM unavailable")
            return self.response
        finally:
            self.in_flight -= 1


class FakeEmbedder:
    def __init__(self, vector: list[float] | None = None, fail: bool = False):
        self.vector = vector if vector is not None else [1.0, 0.0, 0.0]
        self.fail = fail
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("model not loaded")
        return list(self.vector)


class FakeMemorySearch:
    def __init__(
        self,
        semantic: list[tuple[MemoryItem, float]] | None = None,
        tagged: list[MemoryItem] | None = None,
        fail: bool = False,
    ):
        self.semantic = semantic or []
        self.tagged = tagged or []
        self.fail = fail
        self.similarity_calls: list[tuple[list[float], int, float]] = []
        self.tag_calls: list[list[str]] = []

    async def search_by_similarity(self, vector, limit, min_similarity):
        self.similarity_calls.append((vector, limit, min_similarity))
        if self.fail:
            raise RuntimeError("database is locked")
        return self.semantic[:limit]

    async def search_by_any_tag(self, tags):
        self.tag_calls.append(list(tags))
        if self.fail:
            raise RuntimeError("database is locked")
        return list(self.tagged) if tags else []


class FakeNotesSource:
    def __init__(self, notes: list[NoteFile] | None = None, fail: bool = False):
        self.notes = notes or []
        self.fail = fail

    async def list_notes(self) -> list[NoteFile]:
        if self.fail:
            raise OSError("permission denied")
        return list(self.notes)


def user(content: str) -> ConversationMessage:
    return ConversationMessage(role=MessageRole.USER, content=content)


def assistant(content: str, *calls: ToolCall) -> ConversationMessage:
    return ConversationMessage(
        role=MessageRole.ASSISTANT, content=content, tool_calls=list(calls) or None,
    )


def tool_result(content: str, call: ToolCall | None = None) -> ConversationMessage:
    return ConversationMessage(
        role=MessageRole.TOOL, content=content, tool_call_id=call.id if call else None,
    )


def topic_change(summary: str) -> ConversationMessage:
    return assistant("Switching topics.", ToolCall(name=TOPIC_CHANGE_TOOL, arguments={"summary": summary}))


def dialogue(count: int, prefix: str = "message") -> list[ConversationMessage]:
    """Alternating user/assistant messages."""
    return [
        user(f"{prefix} {i}") if i % 2 == 0 else assistant(f"{prefix} {i}")
        for i in range(count)
    ]


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_memory(now):
    def _make(
        title: str,
        embedding: list[float] | None = None,
        age_days: float = 0.0,
        tags: list[str] | None = None,
        content: str | None = None,
    ) -> MemoryItem:
        updated = now - timedelta(days=age_days)
        return MemoryItem(
            title=title,
            content=content or f"Content of {title}",
            tags=tags or [],
            embedding=embedding or [],
            created_at=updated,
            updated_at=updated,
        )
    return _make


@pytest.fixture
def llm() -> MockCompletionProvider:
    return MockCompletionProvider()
