"""Prompt rendering for memories, notes and transcripts."""

from __future__ import annotations

from .types import ConversationMessage, MemoryItem, NoteFile


def render_memory(memory: MemoryItem) -> str:
    parts = [f"ID: {memory.id}", f"Title: {memory.title}"]
    if memory.tags:
        parts.append(f"Tags: {', '.join(memory.tags)}")
    parts.append("Content:")
    parts.append(memory.content)
    return "\n".join(parts)


def render_memories(memories: list[MemoryItem]) -> str:
    """Format memories as one ``# Memories`` prompt block ("" when empty)."""
    if not memories:
        return ""
    body = "\n\n".join(render_memory(m) for m in memories)
    return f"# Memories\n\n{body}"


def render_notes(notes: list[NoteFile]) -> str:
    if not notes:
        return ""
    return "\n\n".join(f"## {n.name} ({n.source})\n{n.content}" for n in notes)


def format_transcript(messages: list[ConversationMessage]) -> str:
    """Format messages as '[ROLE] content' lines."""
    return "\n".join(f"[{m.role.value.upper()}] {m.content}" for m in messages)
