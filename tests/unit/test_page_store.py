"""Unit tests for the in-memory and JSON file page stores."""

import json
import os

import pytest

from saynote.models.blocks import BlockType, paragraph
from saynote.services.exceptions import InvalidPageHierarchyError, PageNotFoundError, PersistenceError
from saynote.services.page_store import InMemoryPageStore, JsonFilePageStore


class TestInMemoryPageStore:
    """Test InMemoryPageStore."""

    @pytest.mark.asyncio
    async def test_create_root_page(self, page_store):
        """Test that a new page gets default content and timestamps."""
        page = await page_store.create_page(None, "Journal", "📓")

        assert page.is_root
        assert (page.title, page.icon) == ("Journal", "📓")
        assert [b.type for b in page.content] == [BlockType.HEADING, BlockType.PARAGRAPH]
        assert page.content[0].text == "Journal"
        assert page.created_at == page.updated_at
        assert await page_store.get_page_by_id(page.id) == page

    @pytest.mark.asyncio
    async def test_create_defaults(self, page_store):
        """Test that empty title and icon fall back to defaults."""
        page = await page_store.create_page(None, "", "")
        assert (page.title, page.icon) == ("Untitled Page", "📄")

    @pytest.mark.asyncio
    async def test_create_under_missing_parent(self, page_store):
        """Test that the parent must exist."""
        with pytest.raises(PageNotFoundError):
            await page_store.create_page("page_missing", "Orphan")
        assert await page_store.load_all_pages() == []

    @pytest.mark.asyncio
    async def test_child_pages_oldest_first(self, page_store):
        """Test listing children and roots."""
        root = await page_store.create_page(None, "Root")
        first = await page_store.create_page(root.id, "First")
        second = await page_store.create_page(root.id, "Second")

        assert [p.id for p in await page_store.get_child_pages(root.id)] == [first.id, second.id]
        assert [p.id for p in await page_store.get_child_pages(None)] == [root.id]
        assert await page_store.get_child_pages(first.id) == []

    @pytest.mark.asyncio
    async def test_get_missing_page(self, page_store):
        """Test that unknown ids give None."""
        assert await page_store.get_page_by_id("page_missing") is None

    @pytest.mark.asyncio
    async def test_save_stamps_updated_at(self, page_store):
        """Test that saving keeps the content and advances updated_at."""
        page = await page_store.create_page(None, "Notes")
        content = page.content + (paragraph("More", block_id="more"),)
        saved = await page_store.save_page(page.evolve(content=content))

        assert saved.content == content
        assert saved.updated_at > page.updated_at
        assert saved.created_at == page.created_at
        assert await page_store.get_page_by_id(page.id) == saved

    @pytest.mark.asyncio
    async def test_updated_at_never_decreases(self):
        """Test that a clock going backwards does not move updated_at back."""
        times = iter([100.0, 50.0])
        store = InMemoryPageStore(clock=lambda: next(times))
        page = await store.create_page(None, "Notes")
        saved = await store.save_page(page)
        assert saved.updated_at == 100.0

    @pytest.mark.asyncio
    async def test_save_rejects_cycle(self, page_store):
        """Test that a page cannot become its own ancestor."""
        root = await page_store.create_page(None, "Root")
        child = await page_store.create_page(root.id, "Child")

        with pytest.raises(InvalidPageHierarchyError):
            await page_store.save_page(root.evolve(parent_id=child.id))
        with pytest.raises(InvalidPageHierarchyError):
            await page_store.save_page(root.evolve(parent_id=root.id))
        assert (await page_store.get_page_by_id(root.id)).parent_id is None

    @pytest.mark.asyncio
    async def test_save_rejects_missing_parent(self, page_store):
        """Test that a save cannot point at a missing parent."""
        page = await page_store.create_page(None, "Root")
        with pytest.raises(PageNotFoundError):
            await page_store.save_page(page.evolve(parent_id="page_missing"))

    @pytest.mark.asyncio
    async def test_remove_page(self, page_store):
        """Test single-page removal."""
        page = await page_store.create_page(None, "Root")
        assert await page_store.remove_page(page.id) is True
        assert await page_store.remove_page(page.id) is False

    @pytest.mark.asyncio
    async def test_delete_page_cascades(self, page_store):
        """Test that deleting a page removes its whole subtree."""
        root = await page_store.create_page(None, "Root")
        child = await page_store.create_page(root.id, "Child")
        await page_store.create_page(child.id, "Grandchild")
        sibling = await page_store.create_page(root.id, "Sibling")

        assert await page_store.delete_page(child.id)
        assert sorted(p.id for p in await page_store.load_all_pages()) == sorted([root.id, sibling.id])


class TestJsonFilePageStore:
    """Test JsonFilePageStore."""

    @pytest.fixture
    def path(self, tmp_path):
        return tmp_path / "data" / "pages.json"

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, path, clock):
        """Test that a new store starts empty without creating the file."""
        store = JsonFilePageStore(path, clock=clock)
        assert await store.load_all_pages() == []
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, path, clock):
        """Test that pages are written and read back."""
        store = JsonFilePageStore(path, clock=clock)
        root = await store.create_page(None, "Root", "🏠")
        child = await store.create_page(root.id, "Child")

        data = json.loads(path.read_text(encoding="utf-8"))
        assert [record["id"] for record in data["pages"]] == [root.id, child.id]
        assert data["pages"][1]["parentId"] == root.id

        reopened = JsonFilePageStore(path, clock=clock)
        loaded = await reopened.get_page_by_id(child.id)
        assert (loaded.title, loaded.parent_id) == ("Child", root.id)
        assert [b.id for b in loaded.content] == [b.id for b in child.content]
        assert (await reopened.get_page_by_id(root.id)).icon == "🏠"

    @pytest.mark.asyncio
    async def test_removal_is_persisted(self, path, clock):
        """Test that cascading deletes are written to disk."""
        store = JsonFilePageStore(path, clock=clock)
        root = await store.create_page(None, "Root")
        await store.create_page(root.id, "Child")
        await store.delete_page(root.id)

        assert json.loads(path.read_text(encoding="utf-8")) == {"pages": []}

    def test_corrupt_file(self, path, clock):
        """Test that an unreadable file raises PersistenceError."""
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            JsonFilePageStore(path, clock=clock)

    def test_record_without_id(self, path, clock):
        """Test that a page record without an id is rejected."""
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"pages": [{"title": "No id"}]}), encoding="utf-8")
        with pytest.raises(PersistenceError):
            JsonFilePageStore(path, clock=clock)

    @pytest.mark.asyncio
    async def test_concurrent_writer_detected(self, path, clock):
        """Test that a write after another process changed the file fails and rolls back."""
        store = JsonFilePageStore(path, clock=clock)
        root = await store.create_page(None, "Root")

        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))

        with pytest.raises(PersistenceError):
            await store.create_page(root.id, "Child")
        assert [p.id for p in await store.load_all_pages()] == [root.id]
