"""FilesystemNotesSource: static markdown notes read from a directory."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from ..types import NoteFile

logger = logging.getLogger(__name__)


class FilesystemNotesSource:
    """List the notes in ``root`` whose suffix is one of ``extensions``.

    A note is named by its file stem and sourced as ``Notes/<filename>``.
    Hidden files and files that cannot be decoded are skipped. A missing
    directory yields no notes.
    """

    def __init__(self, root: str | Path, extensions: list[str] | None = None) -> None:
        self.root = Path(root)
        self.extensions = {e.lower() for e in (extensions or [".md"])}

    async def list_notes(self) -> list[NoteFile]:
        return await asyncio.to_thread(self._read_notes)

    def _read_notes(self) -> list[NoteFile]:
        if not self.root.is_dir():
            logger.debug("Notes directory %s does not exist", self.root)
            return []

        notes: list[NoteFile] = []
        for path in sorted(self.root.iterdir()):
            if path.name.startswith(".") or not path.is_file():
                continue
            if path.suffix.lower() not in self.extensions:
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable note {path.name}: {e}")
                continue
            notes.append(NoteFile(
                name=path.stem,
                content=content,
                source=f"Notes/{path.name}",
            ))
        return sorted(notes, key=lambda n: n.name)
