"""Resolve BlockSelectors and TextRanges against a live document.

Resolution rules:
- INDEX ("first/last/second X"): position among blocks of type X in
  document order, top level only unless the selector is nested.
- ALL ("all X"): every block of type X, top level only unless nested.
- CONTAINING ("block containing S"): the first block, depth-first, whose
  text contains S case-insensitively (a pageLink matches on its title).
- CURRENT ("this"): the blocks of the current selection that still exist;
  with no usable selection, the last matching top-level block.
- IDS: the listed blocks that still exist, in document order.

Zero matches is a normal outcome (the executor reports a no-op).
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import structlog

from saynote.document.operations import iter_blocks
from saynote.document.text import find_all
from saynote.models.blocks import Block, Document
from saynote.models.intents import BlockSelector, SelectorKind, TextRange

logger = structlog.get_logger()


@dataclass(frozen=True)
class Selection:
    """The editor's current selection.

    Attributes:
        block_ids: Selected blocks in document order
        start: Start offset of a text selection inside the single selected block
        end: End offset (exclusive) of a text selection
    """

    block_ids: Tuple[str, ...]
    start: Optional[int] = None
    end: Optional[int] = None

    @property
    def is_text(self) -> bool:
        return self.start is not None and len(self.block_ids) == 1


def _searchable_text(block: Block) -> str:
    if block.is_page_link:
        return block.props.get("pageTitle", "")
    return block.text


def _candidates(document: Document, selector: BlockSelector) -> List[Block]:
    blocks: Sequence[Block] = list(iter_blocks(document)) if selector.nested else document
    if selector.block_type is None:
        return list(blocks)
    return [block for block in blocks if block.type is selector.block_type]


def resolve_selector(
    document: Document, selector: BlockSelector, selection: Optional[Selection] = None
) -> List[Block]:
    """Find the blocks a selector refers to.

    Args:
        document: Live document
        selector: Selector to resolve
        selection: Current editor selection (used by CURRENT selectors)

    Returns:
        Matching blocks in document order (possibly empty)
    """
    kind = selector.kind

    if kind is SelectorKind.IDS:
        wanted = set(selector.ids)
        return [block for block in iter_blocks(document) if block.id in wanted]

    if kind is SelectorKind.CONTAINING:
        for block in iter_blocks(document):
            if selector.block_type is not None and block.type is not selector.block_type:
                continue
            if find_all(_searchable_text(block), selector.text or ""):
                return [block]
        return []

    if kind is SelectorKind.CURRENT:
        if selection is not None and selection.block_ids:
            wanted = set(selection.block_ids)
            selected = [
                block for block in iter_blocks(document)
                if block.id in wanted
                and (selector.block_type is None or block.type is selector.block_type)
            ]
            if selected:
                return selected
        # No usable selection: the last matching block wins
        fallback = _candidates(document, selector)
        logger.debug("selector_current_fallback", block_type=selector.block_type, found=bool(fallback))
        return fallback[-1:]

    candidates = _candidates(document, selector)

    if kind is SelectorKind.ALL:
        return candidates

    # INDEX
    if selector.index >= len(candidates):
        return []
    position = len(candidates) - 1 - selector.index if selector.from_end else selector.index
    return [candidates[position]]


def resolve_single(
    document: Document, selector: BlockSelector, selection: Optional[Selection] = None
) -> Optional[Block]:
    """Resolve a selector used where exactly one block is needed.

    When several blocks match, the last one wins.
    """
    blocks = resolve_selector(document, selector, selection)
    return blocks[-1] if blocks else None


def resolve_range(
    document: Document, text_range: TextRange, selection: Optional[Selection] = None
) -> Optional[Tuple[Block, int, int]]:
    """Resolve a TextRange to a concrete block and character span.

    Returns:
        Tuple of (block, start, end), or None if the block or an anchor text
        cannot be found (or the anchors are out of order)
    """
    block = resolve_single(document, text_range.block, selection)
    if block is None or block.is_page_link:
        return None

    text = block.text
    lowered = text.lower()

    if text_range.start_text:
        positions = find_all(text, text_range.start_text)
        if not positions:
            return None
        anchor = positions[0]
        start = anchor if text_range.inclusive else anchor + len(text_range.start_text)
    else:
        anchor = start = min(text_range.start, len(text))

    if text_range.end_text:
        found = lowered.find(text_range.end_text.lower(), anchor)
        if found == -1:
            return None
        end = found + len(text_range.end_text) if text_range.inclusive else found
    elif text_range.end is not None:
        end = min(text_range.end, len(text))
    else:
        end = len(text)

    if end < start:
        return None
    return block, start, end
