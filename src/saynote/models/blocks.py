"""Block document model.

A page's content is a Document: an immutable, ordered tuple of top-level
Blocks. Every Block carries a stable id, a closed ``BlockType``, type-dependent
props, inline text runs and nested children. Blocks are frozen dataclasses;
edits build new trees (see ``saynote.document.operations``) and share every
untouched subtree with the previous version, which keeps undo snapshots cheap.

IMPORTANT: pageLink blocks are content-less by construction. The constructor
rejects a pageLink with inline runs or children, so no code path can produce
an invalid link block.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from saynote.services.exceptions import StructuralViolationError
from saynote.utils.ids import generate_block_id


class BlockType(str, Enum):
    """Closed set of block types understood by the editor."""

    PARAGRAPH = "paragraph"
    HEADING = "heading"
    BULLET_LIST_ITEM = "bulletListItem"
    NUMBERED_LIST_ITEM = "numberedListItem"
    TODO_LIST_ITEM = "todoListItem"
    QUOTE = "quote"
    CODE = "code"
    PAGE_LINK = "pageLink"

    @property
    def has_inline_content(self) -> bool:
        """Whether blocks of this type hold text runs."""
        return self is not BlockType.PAGE_LINK

    @property
    def is_list_item(self) -> bool:
        return self in (
            BlockType.BULLET_LIST_ITEM,
            BlockType.NUMBERED_LIST_ITEM,
            BlockType.TODO_LIST_ITEM,
        )

    @classmethod
    def parse(cls, name: str) -> "BlockType":
        """Parse a block type from a wire name, an alias or a spoken phrase.

        Accepts the canonical names (``"bulletListItem"``), the editor's
        ``"checkListItem"``, and what people say ("bullet list", "to-do list",
        "code block", "quotation").

        Args:
            name: Type name to parse

        Returns:
            Matching BlockType

        Raises:
            ValueError: If the name matches no block type
        """
        if isinstance(name, BlockType):
            return name
        if not isinstance(name, str):
            raise ValueError(f"Unknown block type: {name!r}")

        key = re.sub(r"[\s_\-]+", "", name.strip().lower())
        for member in cls:
            if member.value.lower() == key:
                return member

        if key in _BLOCK_TYPE_ALIASES:
            return _BLOCK_TYPE_ALIASES[key]

        # Plurals ("bullet items", "quotes")
        if key.endswith("s") and key[:-1] in _BLOCK_TYPE_ALIASES:
            return _BLOCK_TYPE_ALIASES[key[:-1]]

        raise ValueError(f"Unknown block type: {name!r}")


_BLOCK_TYPE_ALIASES: Dict[str, BlockType] = {
    "text": BlockType.PARAGRAPH,
    "plaintext": BlockType.PARAGRAPH,
    "normaltext": BlockType.PARAGRAPH,
    "header": BlockType.HEADING,
    "title": BlockType.HEADING,
    "bullet": BlockType.BULLET_LIST_ITEM,
    "bulletlist": BlockType.BULLET_LIST_ITEM,
    "bulletedlist": BlockType.BULLET_LIST_ITEM,
    "bulletpoint": BlockType.BULLET_LIST_ITEM,
    "bulletitem": BlockType.BULLET_LIST_ITEM,
    "unorderedlist": BlockType.BULLET_LIST_ITEM,
    "list": BlockType.BULLET_LIST_ITEM,
    "listitem": BlockType.BULLET_LIST_ITEM,
    "numbered": BlockType.NUMBERED_LIST_ITEM,
    "numberedlist": BlockType.NUMBERED_LIST_ITEM,
    "numbereditem": BlockType.NUMBERED_LIST_ITEM,
    "orderedlist": BlockType.NUMBERED_LIST_ITEM,
    "checklistitem": BlockType.TODO_LIST_ITEM,
    "checklist": BlockType.TODO_LIST_ITEM,
    "checkitem": BlockType.TODO_LIST_ITEM,
    "checkitemlist": BlockType.TODO_LIST_ITEM,
    "todo": BlockType.TODO_LIST_ITEM,
    "todolist": BlockType.TODO_LIST_ITEM,
    "todoitem": BlockType.TODO_LIST_ITEM,
    "task": BlockType.TODO_LIST_ITEM,
    "tasklist": BlockType.TODO_LIST_ITEM,
    "taskitem": BlockType.TODO_LIST_ITEM,
    "quotation": BlockType.QUOTE,
    "blockquote": BlockType.QUOTE,
    "quoteblock": BlockType.QUOTE,
    "codeblock": BlockType.CODE,
    "link": BlockType.PAGE_LINK,
    "pagelink": BlockType.PAGE_LINK,
}


class StyleName(str, Enum):
    """Inline text styles. Wire names match the editor's style keys."""

    BOLD = "bold"
    ITALIC = "italic"
    UNDERLINE = "underline"
    STRIKE = "strike"
    CODE = "code"
    TEXT_COLOR = "textColor"
    BACKGROUND_COLOR = "backgroundColor"

    @property
    def is_color(self) -> bool:
        return self in (StyleName.TEXT_COLOR, StyleName.BACKGROUND_COLOR)

    @classmethod
    def parse(cls, name: str) -> "StyleName":
        """Parse a style name leniently ("Bold", "strikethrough", "highlight").

        Raises:
            ValueError: If the name matches no style
        """
        if isinstance(name, StyleName):
            return name
        key = re.sub(r"[\s_\-]+", "", str(name).strip().lower())
        for member in cls:
            if member.value.lower() == key:
                return member
        aliases = {
            "strong": cls.BOLD,
            "italics": cls.ITALIC,
            "italicize": cls.ITALIC,
            "emphasis": cls.ITALIC,
            "underlined": cls.UNDERLINE,
            "strikethrough": cls.STRIKE,
            "strikeout": cls.STRIKE,
            "monospace": cls.CODE,
            "color": cls.TEXT_COLOR,
            "colour": cls.TEXT_COLOR,
            "textcolour": cls.TEXT_COLOR,
            "background": cls.BACKGROUND_COLOR,
            "highlight": cls.BACKGROUND_COLOR,
        }
        if key in aliases:
            return aliases[key]
        raise ValueError(f"Unknown style: {name!r}")


_STYLE_ATTRS: Dict[StyleName, str] = {
    StyleName.BOLD: "bold",
    StyleName.ITALIC: "italic",
    StyleName.UNDERLINE: "underline",
    StyleName.STRIKE: "strike",
    StyleName.CODE: "code",
    StyleName.TEXT_COLOR: "text_color",
    StyleName.BACKGROUND_COLOR: "background_color",
}

DEFAULT_COLOR = "default"


@dataclass(frozen=True)
class TextStyles:
    """Styles applied to one inline text run.

    Colors use ``None`` for the editor's ``"default"`` color so that a run
    with no styles always compares equal to ``TextStyles()``.
    """

    bold: bool = False
    italic: bool = False
    underline: bool = False
    strike: bool = False
    code: bool = False
    text_color: Optional[str] = None
    background_color: Optional[str] = None

    def __post_init__(self):
        # Colors are stored lowercase, with "default" and "" meaning no color
        for attr in ("text_color", "background_color"):
            value = getattr(self, attr)
            if value is not None:
                value = str(value).strip().lower()
                object.__setattr__(self, attr, None if value in ("", DEFAULT_COLOR) else value)

    def get(self, style: StyleName) -> Union[bool, Optional[str]]:
        return getattr(self, _STYLE_ATTRS[style])

    def with_style(self, style: StyleName, value: Union[bool, str, None]) -> "TextStyles":
        """Return a copy with one style set.

        Args:
            style: Style to set
            value: bool for toggles, color name for colors ("default"/None clears)

        Returns:
            New TextStyles
        """
        if style.is_color:
            if value is None or value is False or value == DEFAULT_COLOR:
                value = None
            elif value is True:
                raise ValueError(f"{style.value} needs a color name, not True")
            else:
                value = str(value).strip().lower()
        else:
            value = bool(value)
        return replace(self, **{_STYLE_ATTRS[style]: value})

    @property
    def is_plain(self) -> bool:
        return self == TextStyles()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the editor's style object (only set styles are emitted)."""
        data: Dict[str, Any] = {}
        for style, attr in _STYLE_ATTRS.items():
            value = getattr(self, attr)
            if value:
                data[style.value] = value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TextStyles":
        """Build from the editor's style object; unknown keys are ignored."""
        styles = cls()
        for key, value in (data or {}).items():
            try:
                style = StyleName(key)
                styles = styles.with_style(style, value)
            except ValueError:
                continue
        return styles


@dataclass(frozen=True)
class InlineText:
    """A run of text sharing one set of styles."""

    text: str
    styles: TextStyles = TextStyles()

    def __post_init__(self):
        if not isinstance(self.text, str):
            raise StructuralViolationError(f"Inline text must be a string, got {type(self.text).__name__}")


@dataclass(frozen=True)
class Block:
    """A node in a document tree.

    Attributes:
        id: Stable unique identifier (preserved across in-place edits)
        type: Block type
        props: Type-dependent attributes (heading ``level``, todo ``checked``,
               ``textColor``, ``textAlignment``; for pageLink ``pageId``,
               ``pageTitle``, ``pageIcon``). Treat as read-only.
        content: Inline text runs (always empty for pageLink)
        children: Nested blocks (always empty for pageLink)
    """

    id: str
    type: BlockType
    props: Dict[str, Any] = field(default_factory=dict)
    content: Tuple[InlineText, ...] = ()
    children: Tuple["Block", ...] = ()

    # props is a dict, so blocks compare by value but are not hashable
    __hash__ = None

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise StructuralViolationError("Block id must be a non-empty string")

        if not isinstance(self.type, BlockType):
            try:
                object.__setattr__(self, "type", BlockType(self.type))
            except ValueError:
                raise StructuralViolationError(f"Unknown block type: {self.type!r}") from None

        object.__setattr__(self, "props", dict(self.props or {}))
        object.__setattr__(self, "content", tuple(self.content))
        object.__setattr__(self, "children", tuple(self.children))

        if self.type is BlockType.PAGE_LINK:
            if self.content:
                raise StructuralViolationError(f"pageLink block {self.id} must not have inline content")
            if self.children:
                raise StructuralViolationError(f"pageLink block {self.id} must not have children")
            if not self.props.get("pageId"):
                raise StructuralViolationError(f"pageLink block {self.id} requires a pageId prop")

        if self.type is BlockType.HEADING:
            level = self.props.get("level", 1)
            if not isinstance(level, int) or isinstance(level, bool) or not 1 <= level <= 3:
                raise StructuralViolationError(f"Heading level must be 1-3, got {level!r}")

    @property
    def text(self) -> str:
        """Concatenated text of this block's own runs (children excluded)."""
        return "".join(run.text for run in self.content)

    @property
    def is_page_link(self) -> bool:
        return self.type is BlockType.PAGE_LINK

    @property
    def link_page_id(self) -> Optional[str]:
        """Linked page id for pageLink blocks, None otherwise."""
        if self.type is BlockType.PAGE_LINK:
            return self.props.get("pageId")
        return None

    def evolve(self, **changes: Any) -> "Block":
        """Return a copy with fields replaced (validation runs again)."""
        return replace(self, **changes)

    def with_props(self, **props: Any) -> "Block":
        merged = dict(self.props)
        merged.update(props)
        return replace(self, props=merged)


Document = Tuple[Block, ...]

TEXT_BLOCK_DEFAULT_PROPS: Dict[str, Any] = {
    "textColor": DEFAULT_COLOR,
    "backgroundColor": DEFAULT_COLOR,
    "textAlignment": "left",
}

DEFAULT_PAGE_TITLE = "Untitled Page"
DEFAULT_PAGE_ICON = "📄"


def text_block(
    block_type: BlockType,
    text: str = "",
    *,
    styles: Optional[TextStyles] = None,
    props: Optional[Dict[str, Any]] = None,
    block_id: Optional[str] = None,
    children: Tuple[Block, ...] = (),
) -> Block:
    """Create a text-bearing block with default props.

    Args:
        block_type: Any type except PAGE_LINK
        text: Block text (empty string means no runs)
        styles: Styles for the single run
        props: Extra props merged over the defaults
        block_id: Explicit id (generated when omitted)
        children: Nested blocks

    Returns:
        New Block

    Raises:
        StructuralViolationError: If block_type is PAGE_LINK
    """
    if block_type is BlockType.PAGE_LINK:
        raise StructuralViolationError("Use page_link() to create pageLink blocks")

    merged = dict(TEXT_BLOCK_DEFAULT_PROPS)
    if block_type is BlockType.HEADING:
        merged["level"] = 1
    if block_type is BlockType.TODO_LIST_ITEM:
        merged["checked"] = False
    merged.update(props or {})

    content = (InlineText(text, styles or TextStyles()),) if text else ()
    return Block(
        id=block_id or generate_block_id(),
        type=block_type,
        props=merged,
        content=content,
        children=children,
    )


def paragraph(text: str = "", **kwargs: Any) -> Block:
    return text_block(BlockType.PARAGRAPH, text, **kwargs)


def heading(text: str, level: int = 1, **kwargs: Any) -> Block:
    props = dict(kwargs.pop("props", None) or {})
    props["level"] = level
    return text_block(BlockType.HEADING, text, props=props, **kwargs)


def todo_item(text: str, checked: bool = False, **kwargs: Any) -> Block:
    props = dict(kwargs.pop("props", None) or {})
    props["checked"] = checked
    return text_block(BlockType.TODO_LIST_ITEM, text, props=props, **kwargs)


def page_link(
    page_id: str,
    title: str = DEFAULT_PAGE_TITLE,
    icon: str = DEFAULT_PAGE_ICON,
    block_id: Optional[str] = None,
) -> Block:
    """Create a content-less pageLink block pointing at ``page_id``."""
    return Block(
        id=block_id or generate_block_id(),
        type=BlockType.PAGE_LINK,
        props={"pageId": page_id, "pageTitle": title, "pageIcon": icon},
    )


def default_document(title: str = DEFAULT_PAGE_TITLE) -> Document:
    """Skeleton content for a freshly created page: a level-1 heading and an empty paragraph."""
    return (heading(title or DEFAULT_PAGE_TITLE, level=1), paragraph(""))
