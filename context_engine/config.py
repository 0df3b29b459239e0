"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .types import (
    CompressionConfig,
    ConfigError,
    ContextEngineConfig,
    EmbeddingConfig,
    RankerConfig,
    RetrievalConfig,
    SummarizationConfig,
    TagGeneratorConfig,
)

CONFIG_FILENAMES = [
    "context-engine.yaml",
    "context-engine.yml",
    "context-engine.json",
]

TOKEN_COUNTER_MODES = ("estimate", "words", "tiktoken")


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _build_config(raw: dict[str, Any]) -> ContextEngineConfig:
    """Build a ContextEngineConfig from a raw dict."""
    # Ranking
    ranker_raw = _section(raw, "ranker")
    ranker = RankerConfig(
        tag_boost=ranker_raw.get("tag_boost", 0.5),
        half_life_days=ranker_raw.get("half_life_days", 42.0),
    )

    # Retrieval
    retrieval_raw = _section(raw, "retrieval")
    retrieval = RetrievalConfig(
        default_limit=retrieval_raw.get("default_limit", 5),
        overfetch_factor=retrieval_raw.get("overfetch_factor", 2),
        min_similarity=retrieval_raw.get("min_similarity", 0.35),
        history_context_messages=retrieval_raw.get("history_context_messages", 3),
        notes_dir=retrieval_raw.get("notes_dir"),
        note_extensions=retrieval_raw.get("note_extensions", [".md"]),
    )

    # Compression
    comp_raw = _section(raw, "compression")
    compression = CompressionConfig(
        recent_buffer=comp_raw.get("recent_buffer", 10),
        topic_group_size=comp_raw.get("topic_group_size", 10),
        broad_summary_threshold=comp_raw.get("broad_summary_threshold", 2000),
        raptor_chunk_tokens=comp_raw.get("raptor_chunk_tokens", 2000),
        raptor_max_levels=comp_raw.get("raptor_max_levels", 5),
        memory_chunk_size=comp_raw.get("memory_chunk_size", 10),
        topic_summary_words=comp_raw.get("topic_summary_words", 100),
        max_concurrent_summaries=comp_raw.get("max_concurrent_summaries", 4),
    )

    # Summarization
    summ_raw = _section(raw, "summarization")
    summarization = SummarizationConfig(
        provider=summ_raw.get("provider", "ollama"),
        model=summ_raw.get("model", "qwen3:4b-instruct-2507-fp16"),
        fast_model=summ_raw.get("fast_model", ""),
        max_tokens=summ_raw.get("max_tokens", 1000),
        temperature=summ_raw.get("temperature", 0.3),
    )

    # Embedding
    emb_raw = _section(raw, "embedding")
    embedding = EmbeddingConfig(
        provider=emb_raw.get("provider", "sentence-transformers"),
        model=emb_raw.get("model", "all-MiniLM-L6-v2"),
        base_url=emb_raw.get("base_url", "https://api.openai.com/v1"),
        api_key_env=emb_raw.get("api_key_env", "OPENAI_API_KEY"),
    )

    # Tag generation
    tag_raw = _section(raw, "tag_generator")
    tag_generator = TagGeneratorConfig(
        enabled=tag_raw.get("enabled", True),
        max_tags=tag_raw.get("max_tags", 8),
    )

    return ContextEngineConfig(
        version=str(raw.get("version", "0.1")),
        token_counter=raw.get("token_counter", "estimate"),
        ranker=ranker,
        retrieval=retrieval,
        compression=compression,
        summarization=summarization,
        embedding=embedding,
        tag_generator=tag_generator,
        providers=_section(raw, "providers"),
    )


def validate_config(config: ContextEngineConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []

    counter = config.token_counter
    if counter not in TOKEN_COUNTER_MODES and not counter.startswith("callable:"):
        errors.append(f"Unknown token_counter mode: '{counter}'")

    if config.ranker.half_life_days <= 0:
        errors.append("half_life_days must be > 0")

    if config.retrieval.default_limit < 1:
        errors.append("default_limit must be >= 1")

    if config.retrieval.overfetch_factor < 1:
        errors.append("overfetch_factor must be >= 1")

    if not 0.0 <= config.retrieval.min_similarity <= 1.0:
        errors.append(
            f"min_similarity ({config.retrieval.min_similarity}) must be in [0, 1]"
        )

    if config.compression.recent_buffer < 0:
        errors.append("recent_buffer must be >= 0")

    if config.compression.topic_group_size < 1:
        errors.append("topic_group_size must be >= 1")

    if config.compression.raptor_max_levels < 1:
        errors.append("raptor_max_levels must be >= 1")

    if config.compression.memory_chunk_size < 1:
        errors.append("memory_chunk_size must be >= 1")

    if config.compression.max_concurrent_summaries < 1:
        errors.append("max_concurrent_summaries must be >= 1")

    # Check that summarization provider exists in providers
    if config.providers and config.summarization.provider not in config.providers:
        errors.append(
            f"Summarization provider '{config.summarization.provider}' "
            f"not found in providers section"
        )

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> ContextEngineConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        # Return defaults
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    try:
        if path.suffix == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not parse config file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")

    return _build_config(raw)
