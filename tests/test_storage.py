"""Tests for FilesystemNotesSource and InMemoryMemoryStore."""

import pytest

from context_engine.storage import FilesystemNotesSource, InMemoryMemoryStore
from context_engine.types import MemorySearchProvider, NotesSource


class TestFilesystemNotesSource:
    @pytest.mark.asyncio
    async def test_lists_markdown_notes_sorted(self, tmp_path):
        (tmp_path / "roadmap.md").write_text("# Roadmap")
        (tmp_path / "ideas.md").write_text("# Ideas")
        (tmp_path / "image.png").write_bytes(b"\x89PNG")
        (tmp_path / ".hidden.md").write_text("secret")
        (tmp_path / "sub.md").mkdir()

        notes = await FilesystemNotesSource(tmp_path).list_notes()

        assert [n.name for n in notes] == ["ideas", "roadmap"]
        assert notes[1].content == "# Roadmap"
        assert notes[1].source == "Notes/roadmap.md"

    @pytest.mark.asyncio
    async def test_name_is_stem_and_source_keeps_filename(self, tmp_path):
        (tmp_path / "plan-b.md").write_text("b")
        (tmp_path / "plan.md").write_text("a")

        notes = await FilesystemNotesSource(tmp_path).list_notes()

        # "plan-b.md" sorts before "plan.md" as a filename but after it as a stem
        assert [n.name for n in notes] == ["plan", "plan-b"]
        assert [n.source for n in notes] == ["Notes/plan.md", "Notes/plan-b.md"]

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        assert await FilesystemNotesSource(tmp_path / "missing").list_notes() == []

    @pytest.mark.asyncio
    async def test_custom_extensions(self, tmp_path):
        (tmp_path / "a.md").write_text("a")
        (tmp_path / "b.TXT").write_text("b")
        notes = await FilesystemNotesSource(tmp_path, [".txt"]).list_notes()
        assert [n.name for n in notes] == ["b"]

    @pytest.mark.asyncio
    async def test_undecodable_file_skipped(self, tmp_path):
        (tmp_path / "good.md").write_text("ok")
        (tmp_path / "bad.md").write_bytes(b"\xff\xfe\xfa")
        notes = await FilesystemNotesSource(tmp_path).list_notes()
        assert [n.name for n in notes] == ["good"]

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(FilesystemNotesSource(tmp_path), NotesSource)


class TestInMemoryMemoryStore:
    @pytest.fixture
    def store(self, make_memory):
        return InMemoryMemoryStore([
            make_memory("north", embedding=[1.0, 0.0], tags=["Travel"]),
            make_memory("diagonal", embedding=[1.0, 1.0], tags=["food"]),
            make_memory("east", embedding=[0.0, 1.0]),
            make_memory("no-vector", tags=["travel"]),
        ])

    @pytest.mark.asyncio
    async def test_similarity_search_ordered_and_filtered(self, store):
        results = await store.search_by_similarity([1.0, 0.0], limit=10, min_similarity=0.35)
        assert [m.title for m, _ in results] == ["north", "diagonal"]
        assert results[0][1] == pytest.approx(1.0)
        assert results[1][1] == pytest.approx(0.7071, rel=1e-3)

    @pytest.mark.asyncio
    async def test_similarity_limit(self, store):
        results = await store.search_by_similarity([1.0, 0.0], limit=1, min_similarity=0.0)
        assert [m.title for m, _ in results] == ["north"]

    @pytest.mark.asyncio
    async def test_zero_query_vector(self, store):
        assert await store.search_by_similarity([0.0, 0.0], limit=5, min_similarity=0.0) == []

    @pytest.mark.asyncio
    async def test_tag_search_case_insensitive(self, store):
        results = await store.search_by_any_tag(["travel", "FOOD"])
        assert sorted(m.title for m in results) == ["diagonal", "no-vector", "north"]

    @pytest.mark.asyncio
    async def test_tag_search_empty_tags(self, store):
        assert await store.search_by_any_tag([]) == []

    def test_add_get_remove(self, store, make_memory):
        memory = make_memory("new")
        store.add(memory)
        assert len(store) == 5
        assert store.get(memory.id) is memory
        assert store.remove(memory.id) is True
        assert store.remove(memory.id) is False
        assert store.get(memory.id) is None

    def test_satisfies_protocol(self, store):
        assert isinstance(store, MemorySearchProvider)
