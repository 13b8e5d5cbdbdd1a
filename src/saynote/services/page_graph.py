"""Pure helpers over the page tree, plus cascading deletion.

Every deletion and reconciliation path collects descendants through
``descendants_of``; nothing else walks ``parent_id`` chains by hand.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

import structlog

from saynote.models.page import Page
from saynote.services.exceptions import CascadeDeletionError, PersistenceError, PageNotFoundError

logger = structlog.get_logger()


def descendants_of(all_pages: Iterable[Page], root_id: str) -> List[Page]:
    """Collect every transitive child of ``root_id``.

    Args:
        all_pages: Every page in the store
        root_id: Page whose descendants to collect (not included)

    Returns:
        Descendants breadth-first (children before grandchildren); each page
        appears once even if stored parent links form a cycle
    """
    by_parent: Dict[Optional[str], List[Page]] = {}
    for page in all_pages:
        by_parent.setdefault(page.parent_id, []).append(page)

    found: List[Page] = []
    seen: Set[str] = {root_id}
    frontier = [root_id]
    while frontier:
        next_frontier = []
        for parent_id in frontier:
            for child in sorted(by_parent.get(parent_id, []), key=lambda p: (p.created_at, p.id)):
                if child.id in seen:
                    continue
                seen.add(child.id)
                found.append(child)
                next_frontier.append(child.id)
        frontier = next_frontier
    return found


def page_path(all_pages: Iterable[Page], page_id: str) -> List[Page]:
    """Breadcrumb from the root page down to ``page_id`` (inclusive).

    Returns:
        Pages root first; empty if ``page_id`` does not exist. A broken or
        cyclic parent chain stops at the last page reached.
    """
    by_id = {page.id: page for page in all_pages}
    path: List[Page] = []
    seen: Set[str] = set()
    current = by_id.get(page_id)
    while current is not None and current.id not in seen:
        seen.add(current.id)
        path.append(current)
        current = by_id.get(current.parent_id) if current.parent_id else None
    path.reverse()
    return path


def would_create_cycle(all_pages: Iterable[Page], page_id: str, new_parent_id: Optional[str]) -> bool:
    """Whether giving ``page_id`` the parent ``new_parent_id`` makes it its own ancestor."""
    if new_parent_id is None:
        return False
    if new_parent_id == page_id:
        return True
    return any(page.id == new_parent_id for page in descendants_of(all_pages, page_id))


@dataclass
class PageTreeNode:
    """A page with its child nodes, for navigation listings."""

    page: Page
    children: List["PageTreeNode"] = field(default_factory=list)

    def walk(self, depth: int = 0):
        """Yield ``(node, depth)`` depth-first."""
        yield self, depth
        for child in self.children:
            yield from child.walk(depth + 1)


def build_page_tree(all_pages: Iterable[Page]) -> List[PageTreeNode]:
    """Arrange pages into trees.

    Pages whose parent is missing are treated as roots so that nothing
    becomes unreachable.

    Returns:
        Root nodes ordered by creation time
    """
    pages = sorted(all_pages, key=lambda p: (p.created_at, p.id))
    nodes = {page.id: PageTreeNode(page) for page in pages}
    roots: List[PageTreeNode] = []
    for page in pages:
        parent = nodes.get(page.parent_id) if page.parent_id else None
        if parent is None or page.parent_id == page.id:
            roots.append(nodes[page.id])
        else:
            parent.children.append(nodes[page.id])
    return roots


@dataclass
class CascadeDeletionResult:
    """Outcome of a cascading page deletion.

    Attributes:
        root_id: Page the deletion started from
        deleted: Ids actually removed, in deletion order
        failed: Page id -> error message for pages that could not be removed
    """

    root_id: str
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        """
        Raises:
            CascadeDeletionError: If any page could not be deleted
        """
        if self.failed:
            raise CascadeDeletionError(self.deleted, self.failed)


def _block_ancestors(parent_of: Dict[str, Optional[str]], page_id: str, root_id: str, blocked: Set[str]) -> None:
    parent_id = parent_of.get(page_id)
    while parent_id is not None and parent_id not in blocked:
        blocked.add(parent_id)
        if parent_id == root_id:
            break
        parent_id = parent_of.get(parent_id)


async def cascade_delete(store, root_id: str) -> CascadeDeletionResult:
    """Delete a page and every descendant, deepest pages first.

    A failure on one page is logged and recorded and the remaining pages are
    still attempted, except the failed page's ancestors: they are kept (and
    reported as failed) so that no surviving page references a deleted
    parent. Deleting a page that no longer exists is a no-op, which makes
    repeated calls safe.

    Args:
        store: A PageGraphStore (uses ``load_all_pages`` and ``remove_page``)
        root_id: Page to delete

    Returns:
        CascadeDeletionResult
    """
    result = CascadeDeletionResult(root_id)
    all_pages = await store.load_all_pages()
    if not any(page.id == root_id for page in all_pages):
        logger.debug("cascade_delete_missing_root", page_id=root_id)
        return result

    # Deepest first so no remaining page ever points at a deleted parent
    descendants = descendants_of(all_pages, root_id)
    parent_of = {page.id: page.parent_id for page in descendants}
    order = [page.id for page in reversed(descendants)] + [root_id]
    blocked: Set[str] = set()

    for page_id in order:
        if page_id in blocked:
            # A descendant survived; keep this page so it is not left dangling
            result.failed[page_id] = "a descendant page could not be deleted"
            _block_ancestors(parent_of, page_id, root_id, blocked)
            continue
        try:
            if await store.remove_page(page_id):
                result.deleted.append(page_id)
        except (PersistenceError, PageNotFoundError) as e:
            result.failed[page_id] = str(e)
            _block_ancestors(parent_of, page_id, root_id, blocked)
            logger.error("cascade_delete_page_failed", page_id=page_id, root_id=root_id, error=str(e))

    if result.failed:
        logger.error(
            "cascade_delete_partial",
            root_id=root_id,
            deleted=len(result.deleted),
            failed=len(result.failed),
        )
    else:
        logger.info("cascade_delete_completed", root_id=root_id, deleted=len(result.deleted))
    return result
