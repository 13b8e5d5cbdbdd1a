"""Edit intents: the typed output of the command interpreter.

An intent describes WHAT the user asked for, never which concrete blocks it
touches. Targets are expressed as ``BlockSelector`` locators ("the last
paragraph", "every heading", "the block containing X") and are resolved by
the executor against the live document, which may have changed since the
transcript was interpreted.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from saynote.models.blocks import DEFAULT_PAGE_ICON, Block, BlockType, StyleName


class SelectorKind(str, Enum):
    """How a BlockSelector locates blocks."""

    INDEX = "index"
    ALL = "all"
    CONTAINING = "containing"
    CURRENT = "current"
    IDS = "ids"


@dataclass(frozen=True)
class BlockSelector:
    """Abstract locator for one or more blocks.

    Use the constructors rather than building instances directly::

        BlockSelector.last(BlockType.PARAGRAPH)      # "the last paragraph"
        BlockSelector.nth(2, BlockType.HEADING)      # "the second heading"
        BlockSelector.all(BlockType.HEADING)         # "all headings"
        BlockSelector.containing("groceries")        # "the block that says groceries"
        BlockSelector.current()                      # "this" / "this paragraph"

    Attributes:
        kind: Locator strategy
        block_type: Restrict matches to this type (None = any text block)
        index: Zero-based position among the matches (INDEX kind)
        from_end: Count ``index`` from the end of the matches
        nested: Search nested children too (top-level only otherwise)
        text: Substring to look for (CONTAINING kind)
        ids: Explicit block ids (IDS kind)
    """

    kind: SelectorKind
    block_type: Optional[BlockType] = None
    index: int = 0
    from_end: bool = False
    nested: bool = False
    text: Optional[str] = None
    ids: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.index < 0:
            raise ValueError(f"Selector index must be >= 0, got {self.index}")
        if self.kind is SelectorKind.CONTAINING and not self.text:
            raise ValueError("CONTAINING selector requires text")
        if self.kind is SelectorKind.IDS and not self.ids:
            raise ValueError("IDS selector requires at least one id")
        object.__setattr__(self, "ids", tuple(self.ids))

    @classmethod
    def last(cls, block_type: Optional[BlockType] = None, nested: bool = False) -> "BlockSelector":
        return cls(SelectorKind.INDEX, block_type=block_type, from_end=True, nested=nested)

    @classmethod
    def first(cls, block_type: Optional[BlockType] = None, nested: bool = False) -> "BlockSelector":
        return cls(SelectorKind.INDEX, block_type=block_type, nested=nested)

    @classmethod
    def nth(
        cls, position: int, block_type: Optional[BlockType] = None, from_end: bool = False
    ) -> "BlockSelector":
        """Select the ``position``-th match (1-based, as spoken: "the second heading")."""
        if position < 1:
            raise ValueError(f"Position must be >= 1, got {position}")
        return cls(SelectorKind.INDEX, block_type=block_type, index=position - 1, from_end=from_end)

    @classmethod
    def all(cls, block_type: Optional[BlockType] = None, nested: bool = False) -> "BlockSelector":
        return cls(SelectorKind.ALL, block_type=block_type, nested=nested)

    @classmethod
    def containing(cls, text: str, block_type: Optional[BlockType] = None) -> "BlockSelector":
        return cls(SelectorKind.CONTAINING, block_type=block_type, text=text, nested=True)

    @classmethod
    def current(cls, block_type: Optional[BlockType] = None) -> "BlockSelector":
        return cls(SelectorKind.CURRENT, block_type=block_type)

    @classmethod
    def with_ids(cls, *ids: str) -> "BlockSelector":
        return cls(SelectorKind.IDS, ids=ids, nested=True)

    @property
    def is_multi(self) -> bool:
        """Whether the selector can match more than one block."""
        return self.kind in (SelectorKind.ALL, SelectorKind.IDS)

    def describe(self) -> str:
        """Short human-readable description used in notices."""
        noun = self.block_type.value if self.block_type else "block"
        if self.kind is SelectorKind.ALL:
            return f"all {noun}s"
        if self.kind is SelectorKind.CONTAINING:
            return f"{noun} containing '{self.text}'"
        if self.kind is SelectorKind.CURRENT:
            return f"current {noun}"
        if self.kind is SelectorKind.IDS:
            return f"{len(self.ids)} block(s)"
        if self.index == 0:
            return f"{'last' if self.from_end else 'first'} {noun}"
        return f"{noun} #{self.index + 1}{' from the end' if self.from_end else ''}"


@dataclass(frozen=True)
class TextRange:
    """A character span inside one block.

    Either give offsets into the block text (``start``/``end``, end exclusive,
    ``end=None`` meaning the end of the block) or anchor on spoken text:
    ``start_text`` marks where the range begins and ``end_text`` where it
    ends. ``end_text`` is searched from the start anchor onwards, so
    ``start_text == end_text`` covers exactly that text. Anchors are part of
    the range unless ``inclusive`` is False ("between X and Y", "everything
    after X"). Anchors are matched case-insensitively.
    """

    block: BlockSelector
    start: int = 0
    end: Optional[int] = None
    start_text: Optional[str] = None
    end_text: Optional[str] = None
    inclusive: bool = True

    def __post_init__(self):
        if self.start < 0 or (self.end is not None and self.end < self.start):
            raise ValueError(f"Invalid text range {self.start}..{self.end}")


Target = Union[BlockSelector, TextRange]


@dataclass(frozen=True)
class InsertContent:
    """Insert new blocks.

    Appended after the last top-level block unless ``after`` locates an
    anchor, in which case the blocks go right after it.
    """

    blocks: Tuple[Block, ...]
    after: Optional[BlockSelector] = None

    def __post_init__(self):
        object.__setattr__(self, "blocks", tuple(self.blocks))


@dataclass(frozen=True)
class ApplyFormatting:
    """Set an inline style on the target blocks.

    When ``text`` is given only matching substrings are styled; otherwise
    every run of the targeted blocks is.
    """

    target: BlockSelector
    style: StyleName
    value: Union[bool, str] = True
    text: Optional[str] = None


@dataclass(frozen=True)
class ClearFormatting:
    target: BlockSelector


@dataclass(frozen=True)
class AppendText:
    target: BlockSelector
    text: str
    prepend: bool = False


@dataclass(frozen=True)
class SelectText:
    target: Target


@dataclass(frozen=True)
class ReplaceText:
    """Replace every occurrence of ``find`` (case-insensitive) within ``scope`` (whole document if None)."""

    find: str
    replace_with: str
    scope: Optional[BlockSelector] = None

    def __post_init__(self):
        if not self.find:
            raise ValueError("ReplaceText requires a non-empty find string")


@dataclass(frozen=True)
class DeleteRange:
    """Delete blocks, a text span, or every occurrence of some text.

    - ``scope`` is a BlockSelector and ``find`` is None: remove the blocks.
    - ``scope`` is a TextRange: remove that character span.
    - ``find`` is set: remove every occurrence of it within ``scope``
      (whole document if ``scope`` is None).

    Removing blocks that contain pageLinks also deletes the linked pages, so
    the executor asks for confirmation first; ``confirmed`` marks a resubmission.
    """

    scope: Optional[Target] = None
    find: Optional[str] = None
    confirmed: bool = False

    def __post_init__(self):
        if self.scope is None and not self.find:
            raise ValueError("DeleteRange requires a scope or a find string")

    def confirm(self) -> "DeleteRange":
        return replace(self, confirmed=True)


@dataclass(frozen=True)
class ChangeBlockType:
    target: BlockSelector
    new_type: BlockType
    props: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CreateLinkedPage:
    title: str
    icon: str = DEFAULT_PAGE_ICON


@dataclass(frozen=True)
class Undo:
    steps: int = 1

    def __post_init__(self):
        if self.steps < 1:
            raise ValueError(f"Undo steps must be >= 1, got {self.steps}")


@dataclass(frozen=True)
class Redo:
    steps: int = 1

    def __post_init__(self):
        if self.steps < 1:
            raise ValueError(f"Redo steps must be >= 1, got {self.steps}")


@dataclass(frozen=True)
class Unrecognized:
    """The interpreter could not derive structure; callers insert ``raw_text`` as a paragraph."""

    raw_text: str
    reason: str = ""


EditIntent = Union[
    InsertContent,
    ApplyFormatting,
    ClearFormatting,
    AppendText,
    SelectText,
    ReplaceText,
    DeleteRange,
    ChangeBlockType,
    CreateLinkedPage,
    Undo,
    Redo,
    Unrecognized,
]

INTENT_TYPES = (
    InsertContent,
    ApplyFormatting,
    ClearFormatting,
    AppendText,
    SelectText,
    ReplaceText,
    DeleteRange,
    ChangeBlockType,
    CreateLinkedPage,
    Undo,
    Redo,
    Unrecognized,
)
