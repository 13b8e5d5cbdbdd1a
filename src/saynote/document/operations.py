"""Pure tree operations over block documents.

Every function takes a sequence of blocks and returns a new Document tuple.
Nothing is mutated in place: untouched blocks (and whole untouched subtrees)
are shared between the input and the output, so comparing by identity is a
cheap way to tell which branches an edit touched.

IMPORTANT: Operations never raise for a missing anchor. Voice commands often
reference blocks that moved or disappeared between interpretation and
execution, so an unknown anchor falls back to appending at the end of the
top-level sequence.
"""

from typing import Callable, Collection, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import structlog

from saynote.models.blocks import Block, Document
from saynote.services.exceptions import StructuralViolationError
from saynote.utils.ids import generate_block_id

logger = structlog.get_logger()


def iter_blocks(blocks: Sequence[Block]) -> Iterator[Block]:
    """Yield every block depth-first, parents before their children."""
    for block in blocks:
        yield block
        if block.children:
            yield from iter_blocks(block.children)


def walk(
    blocks: Sequence[Block], parents: Tuple[Block, ...] = ()
) -> Iterator[Tuple[Block, Tuple[Block, ...]]]:
    """Yield ``(block, ancestors)`` pairs depth-first.

    Args:
        blocks: Blocks to walk
        parents: Ancestors of ``blocks`` (root first)

    Yields:
        Each block with the tuple of its ancestors from the root down
    """
    for block in blocks:
        yield block, parents
        if block.children:
            yield from walk(block.children, parents + (block,))


def find_by_id(blocks: Sequence[Block], block_id: str) -> Optional[Block]:
    """Find a block anywhere in the tree.

    Args:
        blocks: Document (or subtree) to search
        block_id: Id to look for

    Returns:
        The block, or None if no block has that id
    """
    for block in iter_blocks(blocks):
        if block.id == block_id:
            return block
    return None


def collect_ids(blocks: Sequence[Block]) -> List[str]:
    """All block ids in depth-first order."""
    return [block.id for block in iter_blocks(blocks)]


def ensure_unique_ids(blocks: Sequence[Block]) -> None:
    """Check that no two blocks in the tree share an id.

    Raises:
        StructuralViolationError: If a duplicate id is found
    """
    seen: Set[str] = set()
    for block in iter_blocks(blocks):
        if block.id in seen:
            raise StructuralViolationError(f"Duplicate block id in document: {block.id}")
        seen.add(block.id)


def insert_after(
    blocks: Sequence[Block], anchor_id: Optional[str], new_blocks: Iterable[Block]
) -> Document:
    """Insert blocks right after the anchor block, at the anchor's nesting level.

    Args:
        blocks: Current document
        anchor_id: Id of the block to insert after (searched recursively).
                   None, or an id that does not exist, appends at the end of
                   the top-level sequence.
        new_blocks: Blocks to insert, in order

    Returns:
        New document
    """
    new = tuple(new_blocks)
    if not new:
        return tuple(blocks)

    if anchor_id is not None:
        result, inserted = _insert_after(tuple(blocks), anchor_id, new)
        if inserted:
            return result
        logger.debug("insert_anchor_missing", anchor_id=anchor_id, fallback="append")

    return tuple(blocks) + new


def _insert_after(
    blocks: Tuple[Block, ...], anchor_id: str, new: Tuple[Block, ...]
) -> Tuple[Document, bool]:
    out: List[Block] = []
    inserted = False
    for block in blocks:
        if inserted:
            out.append(block)
            continue
        if block.id == anchor_id:
            out.append(block)
            out.extend(new)
            inserted = True
            continue
        if block.children:
            children, done = _insert_after(block.children, anchor_id, new)
            if done:
                out.append(block.evolve(children=children))
                inserted = True
                continue
        out.append(block)
    return tuple(out), inserted


def append_blocks(blocks: Sequence[Block], new_blocks: Iterable[Block]) -> Document:
    """Append blocks after the last top-level block (or as the first blocks of an empty document)."""
    return tuple(blocks) + tuple(new_blocks)


def remove_by_id(blocks: Sequence[Block], ids: Collection[str]) -> Document:
    """Remove blocks (with their subtrees) anywhere in the tree.

    Args:
        blocks: Current document
        ids: Ids to remove; unknown ids are ignored

    Returns:
        New document
    """
    targets = set(ids)
    if not targets:
        return tuple(blocks)
    return _remove(tuple(blocks), targets)


def _remove(blocks: Tuple[Block, ...], targets: Set[str]) -> Document:
    out: List[Block] = []
    for block in blocks:
        if block.id in targets:
            continue
        if block.children:
            children = _remove(block.children, targets)
            if children != block.children:
                block = block.evolve(children=children)
        out.append(block)
    return tuple(out)


def map_blocks(blocks: Sequence[Block], fn: Callable[[Block], Block]) -> Document:
    """Apply ``fn`` to every block, children first.

    ``fn`` receives each block after its children were mapped and returns the
    replacement (return the argument unchanged to keep it). Subtrees that
    come back unchanged keep their identity.
    """
    out: List[Block] = []
    for block in blocks:
        if block.children:
            children = map_blocks(block.children, fn)
            if any(a is not b for a, b in zip(children, block.children)):
                block = block.evolve(children=children)
        out.append(fn(block))
    return tuple(out)


def update_by_id(
    blocks: Sequence[Block], ids: Collection[str], fn: Callable[[Block], Block]
) -> Document:
    """Replace each block whose id is in ``ids`` with ``fn(block)``.

    The replacement keeps its place in the tree. ``fn`` must preserve the
    block id; a changed id raises so that undo/diffing never loses track of
    a block.

    Raises:
        StructuralViolationError: If ``fn`` changed a block's id
    """
    targets = set(ids)

    def apply(block: Block) -> Block:
        if block.id not in targets:
            return block
        updated = fn(block)
        if updated.id != block.id:
            raise StructuralViolationError(
                f"In-place update changed block id {block.id} -> {updated.id}"
            )
        return updated

    return map_blocks(blocks, apply)


def replace_all(blocks: Sequence[Block], new_blocks: Iterable[Block]) -> Document:
    """Replace the whole document.

    Args:
        blocks: Current document (unused, kept for a uniform signature)
        new_blocks: Replacement top-level blocks

    Returns:
        New document

    Raises:
        StructuralViolationError: If the replacement has duplicate ids
    """
    result = tuple(new_blocks)
    ensure_unique_ids(result)
    return result


def with_fresh_ids(blocks: Iterable[Block], taken: Collection[str] = ()) -> Document:
    """Give new ids to blocks whose id collides with ``taken`` or with each other.

    Used before inserting blocks that came from outside the document
    (NLU suggestions, pasted content) so the unique-id invariant holds.
    """
    used: Set[str] = set(taken)

    def fresh(block: Block) -> Block:
        children = tuple(fresh(child) for child in block.children)
        block_id = block.id
        if block_id in used:
            block_id = generate_block_id()
        used.add(block_id)
        if block_id == block.id and all(a is b for a, b in zip(children, block.children)):
            return block
        return block.evolve(id=block_id, children=children)

    return tuple(fresh(block) for block in blocks)


def subtree_blocks(blocks: Sequence[Block], ids: Collection[str]) -> List[Block]:
    """Blocks with the given ids plus all of their descendants."""
    targets = set(ids)
    found: List[Block] = []
    for block in blocks:
        if block.id in targets:
            found.extend(iter_blocks((block,)))
        elif block.children:
            found.extend(subtree_blocks(block.children, targets))
    return found


def page_link_ids(blocks: Sequence[Block]) -> List[str]:
    """Page ids referenced by pageLink blocks, in document order."""
    return [block.link_page_id for block in iter_blocks(blocks) if block.is_page_link]
