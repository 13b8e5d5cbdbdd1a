"""Unit tests for selector resolution."""

import pytest

from saynote.executor.selectors import Selection, resolve_range, resolve_selector, resolve_single
from saynote.models.blocks import BlockType, heading, page_link, paragraph, text_block
from saynote.models.intents import BlockSelector, TextRange


@pytest.fixture
def document():
    """Heading, two paragraphs (one with a nested paragraph), a bullet and a link."""
    return (
        heading("Groceries", block_id="h1"),
        paragraph("Buy milk and eggs", block_id="p1", children=(paragraph("nested milk note", block_id="n1"),)),
        paragraph("Call the dentist", block_id="p2"),
        text_block(BlockType.BULLET_LIST_ITEM, "bread", block_id="b1"),
        page_link("page_r", "Recipes", block_id="l1"),
    )


def ids(blocks):
    return [block.id for block in blocks]


class TestResolveSelector:
    """Test resolve_selector."""

    def test_last_of_type(self, document):
        """Test 'the last paragraph'."""
        assert ids(resolve_selector(document, BlockSelector.last(BlockType.PARAGRAPH))) == ["p2"]

    def test_first_any_type(self, document):
        """Test 'the first block'."""
        assert ids(resolve_selector(document, BlockSelector.first())) == ["h1"]

    def test_nth_out_of_range(self, document):
        """Test that an index past the matches resolves to nothing."""
        assert resolve_selector(document, BlockSelector.nth(3, BlockType.PARAGRAPH)) == []

    def test_nth_from_end(self, document):
        """Test 'the second to last paragraph'."""
        selector = BlockSelector.nth(2, BlockType.PARAGRAPH, from_end=True)
        assert ids(resolve_selector(document, selector)) == ["p1"]

    def test_all_top_level(self, document):
        """Test that ALL only looks at the top level by default."""
        assert ids(resolve_selector(document, BlockSelector.all(BlockType.PARAGRAPH))) == ["p1", "p2"]

    def test_all_nested(self, document):
        """Test that nested ALL includes children."""
        selector = BlockSelector.all(BlockType.PARAGRAPH, nested=True)
        assert ids(resolve_selector(document, selector)) == ["p1", "n1", "p2"]

    def test_containing_first_match_depth_first(self, document):
        """Test that CONTAINING returns the first match, case-insensitively."""
        assert ids(resolve_selector(document, BlockSelector.containing("MILK"))) == ["p1"]
        assert ids(resolve_selector(document, BlockSelector.containing("note"))) == ["n1"]

    def test_containing_matches_link_title(self, document):
        """Test that a pageLink matches on its title."""
        assert ids(resolve_selector(document, BlockSelector.containing("recipes"))) == ["l1"]

    def test_containing_no_match(self, document):
        """Test that a missing text resolves to nothing."""
        assert resolve_selector(document, BlockSelector.containing("caviar")) == []

    def test_ids_in_document_order(self, document):
        """Test that IDS skips missing ids and keeps document order."""
        selector = BlockSelector.with_ids("p2", "gone", "n1")
        assert ids(resolve_selector(document, selector)) == ["n1", "p2"]

    def test_current_uses_selection(self, document):
        """Test that CURRENT resolves to the selected blocks."""
        selection = Selection(("p2", "b1"))
        assert ids(resolve_selector(document, BlockSelector.current(), selection)) == ["p2", "b1"]

    def test_current_filters_by_type(self, document):
        """Test that 'this paragraph' ignores selected blocks of other types."""
        selection = Selection(("p2", "b1"))
        selector = BlockSelector.current(BlockType.PARAGRAPH)
        assert ids(resolve_selector(document, selector, selection)) == ["p2"]

    def test_current_without_selection_falls_back_to_last(self, document):
        """Test that CURRENT without a usable selection picks the last match."""
        assert ids(resolve_selector(document, BlockSelector.current(BlockType.PARAGRAPH))) == ["p2"]
        stale = Selection(("deleted",))
        assert ids(resolve_selector(document, BlockSelector.current(), stale)) == ["l1"]

    def test_empty_document(self):
        """Test that nothing resolves in an empty document."""
        assert resolve_selector((), BlockSelector.last()) == []
        assert resolve_selector((), BlockSelector.current()) == []


class TestResolveSingle:
    """Test resolve_single."""

    def test_last_match_wins(self, document):
        """Test that a multi-match resolves to the last block."""
        assert resolve_single(document, BlockSelector.all(BlockType.PARAGRAPH)).id == "p2"

    def test_no_match(self, document):
        """Test that no match gives None."""
        assert resolve_single(document, BlockSelector.containing("caviar")) is None


class TestResolveRange:
    """Test resolve_range."""

    def test_offsets(self, document):
        """Test an offset range, clamped to the block text."""
        block, start, end = resolve_range(document, TextRange(BlockSelector.with_ids("p2"), start=5, end=100))
        assert (block.id, start, end) == ("p2", 5, 16)

    def test_anchor_text_inclusive(self, document):
        """Test a range covering exactly the anchor text."""
        text_range = TextRange(BlockSelector.containing("milk"), start_text="milk", end_text="milk")
        block, start, end = resolve_range(document, text_range)
        assert block.text[start:end] == "milk"

    def test_between_exclusive(self, document):
        """Test 'between buy and eggs'."""
        text_range = TextRange(BlockSelector.containing("buy"), start_text="buy", end_text="eggs", inclusive=False)
        block, start, end = resolve_range(document, text_range)
        assert block.text[start:end] == " milk and "

    def test_everything_after(self, document):
        """Test an open-ended range after an anchor."""
        text_range = TextRange(BlockSelector.containing("milk"), start_text="milk", inclusive=False)
        block, start, end = resolve_range(document, text_range)
        assert block.text[start:end] == " and eggs"

    def test_missing_anchor(self, document):
        """Test that a missing end anchor resolves to None."""
        text_range = TextRange(BlockSelector.containing("milk"), start_text="milk", end_text="caviar")
        assert resolve_range(document, text_range) is None

    def test_page_link_has_no_range(self, document):
        """Test that ranges never resolve inside a link."""
        assert resolve_range(document, TextRange(BlockSelector.with_ids("l1"))) is None
