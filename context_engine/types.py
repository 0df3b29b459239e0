"""All dataclasses, Protocols, and errors for context-engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Protocol, Union, runtime_checkable


# ---------------------------------------------------------------------------
# Memory & Notes
# ---------------------------------------------------------------------------

@dataclass
class MemoryItem:
    """Persisted knowledge unit. Owned by the persistence layer; read-only here."""
    title: str
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    tags: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    embedding: list[float] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ScoredMemory:
    memory: MemoryItem
    similarity: float | None = None  # None = not scored yet, orders as 0

    @property
    def score(self) -> float:
        return self.similarity if self.similarity is not None else 0.0


@dataclass
class NoteFile:
    name: str
    content: str
    source: str  # e.g. "Notes/roadmap.md"


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"
    SUMMARY = "summary"


class SummaryType(str, Enum):
    TOPIC = "topic"
    BROAD = "broad"


class CompressionScope(str, Enum):
    """How far ``compress`` goes."""
    TOPIC = "topic"  # one summary per topic chunk
    BROAD = "broad"  # always collapse topic summaries into one broad summary


TOPIC_CHANGE_TOOL = "mark_topic_change"


@dataclass
class ToolCall:
    name: str
    arguments: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class ConversationMessage:
    role: MessageRole
    content: str
    tool_calls: list[ToolCall] | None = None
    is_summary: bool = False
    summary_type: SummaryType | None = None
    tool_call_id: str | None = None  # set on tool-role results

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def find_tool_call(self, name: str) -> ToolCall | None:
        for call in self.tool_calls or []:
            if call.name == name:
                return call
        return None

    @classmethod
    def summary(cls, content: str, summary_type: SummaryType | None = SummaryType.TOPIC) -> ConversationMessage:
        return cls(
            role=MessageRole.SUMMARY,
            content=content,
            is_summary=True,
            summary_type=summary_type,
        )


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

class GatherPhase(str, Enum):
    """Progress phases of one gather call, in emission order."""
    AUGMENTING = "augmenting"
    TAGGING = "tagging"
    EMBEDDING = "embedding"
    SEARCHING = "searching"
    RANKING = "ranking"
    COMPLETE = "complete"

    @property
    def label(self) -> str:
        return _PHASE_LABELS[self]


_PHASE_LABELS = {
    GatherPhase.AUGMENTING: "Augmenting Query",
    GatherPhase.TAGGING: "Generating Tags",
    GatherPhase.EMBEDDING: "Generating Embedding",
    GatherPhase.SEARCHING: "Searching Memories",
    GatherPhase.RANKING: "Ranking Results",
    GatherPhase.COMPLETE: "Context Ready",
}


@dataclass(frozen=True)
class GatherResult:
    """Aggregate output of one gather call."""
    notes: list[NoteFile] = field(default_factory=list)
    memories: list[ScoredMemory] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    query_vector: list[float] = field(default_factory=list)
    augmented_query: str = ""
    semantic_results: list[ScoredMemory] = field(default_factory=list)
    tag_results: list[MemoryItem] = field(default_factory=list)
    elapsed: float = 0.0  # seconds


@dataclass(frozen=True)
class ProgressEvent:
    phase: GatherPhase


@dataclass(frozen=True)
class CompleteEvent:
    result: GatherResult


GatherEvent = Union[ProgressEvent, CompleteEvent]

TagGeneratorFn = Callable[[str], Awaitable[list[str]]]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ContextEngineError(Exception):
    """Base class for context-engine errors."""


class EmbeddingFailed(ContextEngineError):
    """Query embedding could not be generated. Aborts a gather."""


class PersistenceFailed(ContextEngineError):
    """Memory search failed. Aborts a gather."""


class TagGenerationFailed(ContextEngineError):
    """Tag generation failed. Logged; the gather continues without tags."""


class SummarizationFailed(ContextEngineError):
    """An LLM summary failed. Replaced with fallback text, never surfaced."""


class ConfigError(ContextEngineError):
    """Config file is malformed."""


class LLMProviderError(ContextEngineError):
    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Collaborator Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]: ...


@runtime_checkable
class MemorySearchProvider(Protocol):
    async def search_by_similarity(
        self, vector: list[float], limit: int, min_similarity: float,
    ) -> list[tuple[MemoryItem, float]]: ...

    async def search_by_any_tag(self, tags: list[str]) -> list[MemoryItem]: ...


@runtime_checkable
class CompletionProvider(Protocol):
    async def complete(self, prompt: str, use_fast_model: bool = False) -> str: ...


@runtime_checkable
class NotesSource(Protocol):
    async def list_notes(self) -> list[NoteFile]: ...


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class RankerConfig:
    tag_boost: float = 0.5
    half_life_days: float = 42.0


@dataclass
class RetrievalConfig:
    default_limit: int = 5
    overfetch_factor: int = 2        # semantic candidates = limit * factor
    min_similarity: float = 0.35
    history_context_messages: int = 3  # user/assistant turns fed to the tagger
    notes_dir: str | None = None
    note_extensions: list[str] = field(default_factory=lambda: [".md"])


@dataclass
class CompressionConfig:
    recent_buffer: int = 10
    topic_group_size: int = 10
    broad_summary_threshold: int = 2000
    raptor_chunk_tokens: int = 2000
    raptor_max_levels: int = 5
    memory_chunk_size: int = 10
    topic_summary_words: int = 100
    max_concurrent_summaries: int = 4


@dataclass
class SummarizationConfig:
    provider: str = "ollama"
    model: str = "qwen3:4b-instruct-2507-fp16"
    fast_model: str = ""             # empty = reuse model
    max_tokens: int = 1000
    temperature: float = 0.3


@dataclass
class EmbeddingConfig:
    provider: str = "sentence-transformers"  # or "openai"
    model: str = "all-MiniLM-L6-v2"
    base_url: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"


@dataclass
class TagGeneratorConfig:
    enabled: bool = True
    max_tags: int = 8


@dataclass
class ContextEngineConfig:
    version: str = "0.1"
    token_counter: str = "estimate"
    ranker: RankerConfig = field(default_factory=RankerConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    tag_generator: TagGeneratorConfig = field(default_factory=TagGeneratorConfig)
    providers: dict[str, dict] = field(default_factory=dict)
