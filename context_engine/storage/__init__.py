from .memory import InMemoryMemoryStore
from .notes import FilesystemNotesSource

__all__ = ["FilesystemNotesSource", "InMemoryMemoryStore"]
