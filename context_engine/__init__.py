"""context-engine: retrieval and compression of conversational context."""

from .config import load_config
from .core.compressor import HistoryCompressor
from .core.ranker import ContextRanker
from .core.retriever import ContextRetriever
from .engine import ContextEngine
from .types import (
    CompleteEvent,
    CompressionScope,
    ContextEngineConfig,
    ConversationMessage,
    GatherPhase,
    GatherResult,
    MemoryItem,
    MessageRole,
    NoteFile,
    ProgressEvent,
    ScoredMemory,
    SummaryType,
    ToolCall,
)

__version__ = "0.1.0"

__all__ = [
    "ContextEngine",
    "ContextRanker",
    "ContextRetriever",
    "HistoryCompressor",
    "load_config",
    "CompleteEvent",
    "CompressionScope",
    "ContextEngineConfig",
    "ConversationMessage",
    "GatherPhase",
    "GatherResult",
    "MemoryItem",
    "MessageRole",
    "NoteFile",
    "ProgressEvent",
    "ScoredMemory",
    "SummaryType",
    "ToolCall",
]
