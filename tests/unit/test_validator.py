"""Unit tests for LinkConsistencyValidator."""

import pytest
import pytest_asyncio

from saynote.links.validator import LinkConsistencyValidator
from saynote.models.blocks import BlockType, page_link, paragraph


class TestLinkConsistencyValidator:
    """Test reconciliation of pageLinks against child pages."""

    @pytest_asyncio.fixture
    async def pages(self, page_store):
        """Parent page with one child page and one grandchild page."""
        parent = await page_store.create_page(None, "Project")
        child = await page_store.create_page(parent.id, "Child", "📁")
        grandchild = await page_store.create_page(child.id, "Grandchild")
        return parent, child, grandchild

    @pytest.fixture
    def validator(self, page_store):
        return LinkConsistencyValidator(page_store)

    def linked(self, parent, child, **kwargs):
        """Parent's default content plus a link to ``child``."""
        link = page_link(child.id, kwargs.get("title", child.title), kwargs.get("icon", child.icon), block_id="link1")
        return parent.content + (link,)

    @pytest.mark.asyncio
    async def test_consistent_document_unchanged(self, validator, pages):
        """Test that a consistent document passes through untouched."""
        parent, child, _ = pages
        document = self.linked(parent, child)

        report = await validator.reconcile(parent.id, document)

        assert not report.changed
        assert report.is_consistent
        assert report.document == document

    @pytest.mark.asyncio
    async def test_stale_link_becomes_paragraph(self, validator, pages):
        """Test that a link to a missing page keeps its title and id as a paragraph."""
        parent, _, _ = pages
        document = parent.content + (page_link("page_gone", "Old notes", block_id="stale1"),)

        report = await validator.reconcile(parent.id, document)

        block = report.document[-1]
        assert (block.id, block.type, block.text) == ("stale1", BlockType.PARAGRAPH, "Old notes")
        assert report.stale_page_ids == ["page_gone"]
        assert report.changed
        assert not report.is_consistent

    @pytest.mark.asyncio
    async def test_link_to_non_child_is_stale(self, validator, pages):
        """Test that a link to a page with another parent is stale."""
        parent, _, grandchild = pages
        document = parent.content + (page_link(grandchild.id, "Grandchild", block_id="l"),)
        report = await validator.reconcile(parent.id, document)
        assert report.stale_page_ids == [grandchild.id]

    @pytest.mark.asyncio
    async def test_nested_stale_link(self, validator, pages):
        """Test that stale links inside nested blocks are found."""
        parent, _, _ = pages
        nested = paragraph("Wrapper", block_id="w", children=(page_link("page_gone", "Gone", block_id="l"),))
        report = await validator.reconcile(parent.id, parent.content + (nested,))
        assert report.document[-1].children[0].type is BlockType.PARAGRAPH

    @pytest.mark.asyncio
    async def test_duplicate_link_is_stale(self, validator, pages):
        """Test that each child is linked at most once."""
        parent, child, _ = pages
        document = self.linked(parent, child) + (page_link(child.id, "Child", block_id="link2"),)

        report = await validator.reconcile(parent.id, document)

        assert report.document[-2].is_page_link
        assert report.document[-1].type is BlockType.PARAGRAPH
        assert report.stale_page_ids == [child.id]

    @pytest.mark.asyncio
    async def test_orphan_linked_on_initial_load(self, validator, pages):
        """Test that an unlinked child gets a link appended when a page is opened."""
        parent, child, _ = pages

        report = await validator.reconcile(parent.id, parent.content, initial_load=True)

        link = report.document[-1]
        assert link.is_page_link
        assert link.props == {"pageId": child.id, "pageTitle": "Child", "pageIcon": "📁"}
        assert report.orphan_page_ids == [child.id]

    @pytest.mark.asyncio
    async def test_orphan_ignored_during_editing(self, validator, pages):
        """Test that a missing link is not re-added outside of initial load."""
        parent, _, _ = pages
        report = await validator.reconcile(parent.id, parent.content)
        assert not report.changed
        assert report.orphan_page_ids == []

    @pytest.mark.asyncio
    async def test_reconcile_is_idempotent(self, validator, pages):
        """Test that a second pass changes nothing."""
        parent, _, _ = pages
        document = parent.content + (page_link("page_gone", "Gone", block_id="l"),)

        first = await validator.reconcile(parent.id, document, initial_load=True)
        second = await validator.reconcile(parent.id, first.document, initial_load=True)

        assert not second.changed
        assert second.document == first.document
        assert second.is_consistent

    @pytest.mark.asyncio
    async def test_link_metadata_refreshed(self, validator, pages):
        """Test that a renamed child page updates its link."""
        parent, child, _ = pages
        document = self.linked(parent, child, title="Old title", icon="📄")

        report = await validator.reconcile(parent.id, document)

        assert report.document[-1].props["pageTitle"] == "Child"
        assert report.document[-1].props["pageIcon"] == "📁"
        assert report.document[-1].id == "link1"
        assert report.refreshed_page_ids == [child.id]

    @pytest.mark.asyncio
    async def test_removed_link_deletes_subtree(self, validator, page_store, pages):
        """Test that deleting a link deletes the linked page and its descendants."""
        parent, child, grandchild = pages
        previous = self.linked(parent, child)

        report = await validator.reconcile(parent.id, parent.content, previous_document=previous)

        assert report.deleted_page_ids == [grandchild.id, child.id]
        assert await page_store.get_page_by_id(child.id) is None
        assert await page_store.get_page_by_id(grandchild.id) is None
        assert await page_store.get_page_by_id(parent.id) is not None

    @pytest.mark.asyncio
    async def test_removed_link_to_foreign_page_deletes_nothing(self, validator, page_store, pages):
        """Test that only the page's own children are deleted."""
        parent, _, grandchild = pages
        previous = parent.content + (page_link(grandchild.id, "Grandchild", block_id="l"),)

        report = await validator.reconcile(parent.id, parent.content, previous_document=previous)

        assert report.deleted_page_ids == []
        assert await page_store.get_page_by_id(grandchild.id) is not None

    @pytest.mark.asyncio
    async def test_moved_link_deletes_nothing(self, validator, page_store, pages):
        """Test that moving a link within the document is not a deletion."""
        parent, child, _ = pages
        previous = self.linked(parent, child)
        current = (previous[-1],) + previous[:-1]

        report = await validator.reconcile(parent.id, current, previous_document=previous)

        assert report.deleted_page_ids == []
        assert await page_store.get_page_by_id(child.id) is not None
