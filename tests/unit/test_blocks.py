"""Unit tests for the block document model."""

import pytest

from saynote.models.blocks import (
    Block,
    BlockType,
    InlineText,
    StyleName,
    TextStyles,
    default_document,
    heading,
    page_link,
    paragraph,
    text_block,
    todo_item,
)
from saynote.services.exceptions import StructuralViolationError


class TestBlockType:
    """Test BlockType parsing."""

    def test_parse_canonical_names(self):
        """Test that wire names parse to their members."""
        assert BlockType.parse("paragraph") is BlockType.PARAGRAPH
        assert BlockType.parse("bulletListItem") is BlockType.BULLET_LIST_ITEM
        assert BlockType.parse("pageLink") is BlockType.PAGE_LINK

    def test_parse_spoken_aliases(self):
        """Test that spoken phrases map onto block types."""
        assert BlockType.parse("to-do list") is BlockType.TODO_LIST_ITEM
        assert BlockType.parse("checkListItem") is BlockType.TODO_LIST_ITEM
        assert BlockType.parse("code block") is BlockType.CODE
        assert BlockType.parse("quotation") is BlockType.QUOTE
        assert BlockType.parse("Bullet List") is BlockType.BULLET_LIST_ITEM

    def test_parse_plurals(self):
        """Test that plural nouns are accepted."""
        assert BlockType.parse("headings") is BlockType.HEADING
        assert BlockType.parse("quotes") is BlockType.QUOTE

    def test_parse_unknown_raises(self):
        """Test that unknown names raise ValueError."""
        with pytest.raises(ValueError, match="Unknown block type"):
            BlockType.parse("table")


class TestTextStyles:
    """Test TextStyles."""

    def test_default_is_plain(self):
        """Test that a default style set is plain and serializes to {}."""
        assert TextStyles().is_plain
        assert TextStyles().to_dict() == {}

    def test_with_style_toggle(self):
        """Test setting a boolean style."""
        styles = TextStyles().with_style(StyleName.BOLD, True)
        assert styles.bold is True
        assert styles.to_dict() == {"bold": True}

    def test_default_color_is_none(self):
        """Test that the 'default' color clears the color."""
        styles = TextStyles().with_style(StyleName.TEXT_COLOR, "Blue")
        assert styles.text_color == "blue"
        assert styles.with_style(StyleName.TEXT_COLOR, "default") == TextStyles()

    def test_constructor_normalizes_colors(self):
        """Test that colors given directly are lowercased like parsed ones."""
        assert TextStyles(text_color="Blue", background_color=" YELLOW ") == TextStyles(
            text_color="blue", background_color="yellow"
        )
        assert TextStyles(text_color="default") == TextStyles()

    def test_color_requires_name(self):
        """Test that True is not a valid color."""
        with pytest.raises(ValueError):
            TextStyles().with_style(StyleName.BACKGROUND_COLOR, True)

    def test_from_dict_ignores_unknown_keys(self):
        """Test that unknown style keys are skipped."""
        styles = TextStyles.from_dict({"bold": True, "sparkle": True, "textColor": "red"})
        assert styles == TextStyles(bold=True, text_color="red")

    def test_style_name_aliases(self):
        """Test lenient style name parsing."""
        assert StyleName.parse("strikethrough") is StyleName.STRIKE
        assert StyleName.parse("Highlight") is StyleName.BACKGROUND_COLOR
        with pytest.raises(ValueError):
            StyleName.parse("blink")


class TestBlock:
    """Test Block construction and invariants."""

    def test_text_concatenates_runs(self):
        """Test that text joins all runs of the block."""
        block = Block(
            id="b1",
            type=BlockType.PARAGRAPH,
            content=(InlineText("Hello "), InlineText("world", TextStyles(bold=True))),
        )
        assert block.text == "Hello world"

    def test_blocks_are_not_hashable(self):
        """Test that hashing a block fails cleanly instead of on its props dict."""
        block = paragraph("x", block_id="p1")
        assert Block.__hash__ is None
        with pytest.raises(TypeError):
            hash(block)
        assert block == paragraph("x", block_id="p1")

    def test_type_coerced_from_string(self):
        """Test that a wire type string is converted to BlockType."""
        block = Block(id="b1", type="heading", props={"level": 2})
        assert block.type is BlockType.HEADING

    def test_empty_id_rejected(self):
        """Test that blocks require an id."""
        with pytest.raises(StructuralViolationError):
            Block(id="", type=BlockType.PARAGRAPH)

    def test_unknown_type_rejected(self):
        """Test that unknown type strings raise StructuralViolationError."""
        with pytest.raises(StructuralViolationError, match="Unknown block type"):
            Block(id="b1", type="table")

    def test_page_link_rejects_content(self):
        """Test that a pageLink with inline content cannot exist."""
        with pytest.raises(StructuralViolationError, match="inline content"):
            Block(
                id="l1",
                type=BlockType.PAGE_LINK,
                props={"pageId": "page_1"},
                content=(InlineText("oops"),),
            )

    def test_page_link_rejects_children(self):
        """Test that a pageLink with children cannot exist."""
        with pytest.raises(StructuralViolationError, match="children"):
            Block(
                id="l1",
                type=BlockType.PAGE_LINK,
                props={"pageId": "page_1"},
                children=(paragraph("child"),),
            )

    def test_page_link_requires_page_id(self):
        """Test that a pageLink must point somewhere."""
        with pytest.raises(StructuralViolationError, match="pageId"):
            Block(id="l1", type=BlockType.PAGE_LINK, props={})

    def test_evolve_to_page_link_with_content_rejected(self):
        """Test that evolve re-runs validation."""
        block = paragraph("text", block_id="p1")
        with pytest.raises(StructuralViolationError):
            block.evolve(type=BlockType.PAGE_LINK, props={"pageId": "page_1"})

    def test_heading_level_bounds(self):
        """Test that heading levels outside 1-3 are rejected."""
        with pytest.raises(StructuralViolationError):
            heading("Too deep", level=4)
        with pytest.raises(StructuralViolationError):
            Block(id="h1", type=BlockType.HEADING, props={"level": True})

    def test_with_props_merges(self):
        """Test that with_props keeps existing props."""
        block = todo_item("Task", block_id="t1").with_props(checked=True)
        assert block.props["checked"] is True
        assert block.props["textAlignment"] == "left"

    def test_link_page_id(self):
        """Test link_page_id for links and text blocks."""
        assert page_link("page_9", "Nine").link_page_id == "page_9"
        assert paragraph("x").link_page_id is None


class TestFactories:
    """Test block factory helpers."""

    def test_text_block_defaults(self):
        """Test default props of text blocks."""
        block = text_block(BlockType.BULLET_LIST_ITEM, "item")
        assert block.props == {"textColor": "default", "backgroundColor": "default", "textAlignment": "left"}
        assert block.text == "item"

    def test_empty_text_has_no_runs(self):
        """Test that empty text produces no runs."""
        assert paragraph("").content == ()

    def test_heading_and_todo_props(self):
        """Test type-specific props from the factories."""
        assert heading("Title", level=2).props["level"] == 2
        assert todo_item("Task").props["checked"] is False

    def test_text_block_rejects_page_link(self):
        """Test that text_block cannot create link blocks."""
        with pytest.raises(StructuralViolationError):
            text_block(BlockType.PAGE_LINK, "x")

    def test_page_link_props(self):
        """Test that page_link carries id, title and icon and no content."""
        link = page_link("page_1", "Notes", "🗒")
        assert link.props == {"pageId": "page_1", "pageTitle": "Notes", "pageIcon": "🗒"}
        assert link.content == ()
        assert link.children == ()

    def test_generated_ids_are_unique(self):
        """Test that factories generate distinct ids."""
        assert paragraph("a").id != paragraph("a").id

    def test_default_document(self):
        """Test the skeleton of a new page."""
        document = default_document("Groceries")
        assert [block.type for block in document] == [BlockType.HEADING, BlockType.PARAGRAPH]
        assert document[0].text == "Groceries"
        assert document[0].props["level"] == 1
        assert document[1].text == ""

    def test_default_document_without_title(self):
        """Test that an empty title falls back to the default title."""
        assert default_document("")[0].text == "Untitled Page"
