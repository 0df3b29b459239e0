"""Token counting utilities."""

from __future__ import annotations

import re
from typing import Callable, Iterable

_WORD_RE = re.compile(r"\w+")
WORDS_TO_TOKENS = 1.33


def estimate_tokens(text: str) -> int:
    """Rough estimate: ~4 chars per token."""
    if not text:
        return 0
    return max(1, len(text) // 4)


def estimate_word_tokens(text: str) -> int:
    """Word count scaled by 1.33 (about 3/4 of a word per token in English)."""
    if not text:
        return 0
    return int(len(_WORD_RE.findall(text)) * WORDS_TO_TOKENS)


def count_parts(parts: Iterable[str], counter: Callable[[str], int] = estimate_tokens) -> int:
    """Count a collection of strings in one pass by joining them with spaces."""
    return counter(" ".join(parts))


def create_token_counter(mode: str = "estimate") -> Callable[[str], int]:
    """Factory for token counters.

    Modes:
        "estimate" - len(text) // 4 (zero deps)
        "words" - word count * 1.33
        "tiktoken" - requires tiktoken package
        "callable:module.path:func" - custom callable
    """
    if mode == "estimate":
        return estimate_tokens

    if mode == "words":
        return estimate_word_tokens

    if mode == "tiktoken":
        try:
            import tiktoken
            enc = tiktoken.encoding_for_model("gpt-4")
            return lambda text: len(enc.encode(text)) if text else 0
        except ImportError:
            raise ImportError(
                "tiktoken not installed. Install with: pip install context-engine[tiktoken]"
            )

    if mode.startswith("callable:"):
        # Format: callable:module.path:func_name
        parts = mode[len("callable:"):].rsplit(":", 1)
        if len(parts) != 2:
            raise ValueError(f"Invalid callable spec: {mode}. Expected callable:module:func")
        module_path, func_name = parts
        import importlib
        mod = importlib.import_module(module_path)
        return getattr(mod, func_name)

    raise ValueError(f"Unknown token counter mode: {mode}")
