"""Keep pageLink blocks and child pages consistent.

For a page P, every pageLink block in P's document must point at a page
whose parent is P, and each such child should be linked exactly once.

``LinkConsistencyValidator.reconcile`` enforces this after every edit:

- A link to a page that is not a child of P (deleted, moved, never
  existed) is stale. It becomes a paragraph carrying the link's title and
  keeping the block id, so nothing the user wrote silently disappears.
  A second link to the same child is stale too.
- A child page with no link is added as a link at the end of the
  document, but only on initial load. During live editing a missing link
  means the user deleted it on purpose.
- A link present in the previous document but gone from the new one was
  deleted by ordinary editing. That is taken as a request to delete the
  linked page and its descendants.

Reconciling twice in a row gives the same result as reconciling once.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import structlog

from saynote.document.operations import append_blocks, map_blocks, page_link_ids
from saynote.models.blocks import DEFAULT_PAGE_ICON, DEFAULT_PAGE_TITLE, Block, Document, page_link, paragraph
from saynote.services.exceptions import PersistenceError
from saynote.services.page_graph import cascade_delete

logger = structlog.get_logger()


@dataclass
class ReconciliationReport:
    """What reconciliation did to one page.

    Attributes:
        page_id: Page that was reconciled
        document: Reconciled document
        changed: Whether ``document`` differs from the input
        stale_page_ids: Page ids whose links were turned into paragraphs
        orphan_page_ids: Child pages that got a link appended (initial load only)
        refreshed_page_ids: Links whose title or icon was synced from the page
        deleted_page_ids: Pages removed because their link was deleted
        failed: Page id -> error for pages that could not be deleted
    """

    page_id: str
    document: Document
    changed: bool = False
    stale_page_ids: List[str] = field(default_factory=list)
    orphan_page_ids: List[str] = field(default_factory=list)
    refreshed_page_ids: List[str] = field(default_factory=list)
    deleted_page_ids: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def is_consistent(self) -> bool:
        """True when nothing had to be fixed and nothing failed."""
        return not (self.stale_page_ids or self.orphan_page_ids or self.deleted_page_ids or self.failed)


class LinkConsistencyValidator:
    """Reconciles a page's document against its child pages in a PageGraphStore."""

    def __init__(self, page_store):
        self.page_store = page_store

    async def reconcile(
        self,
        page_id: str,
        document: Document,
        *,
        initial_load: bool = False,
        previous_document: Optional[Document] = None,
    ) -> ReconciliationReport:
        """
        Reconcile one page's document with the page graph.

        Args:
            page_id: Page owning the document
            document: Document to check
            initial_load: Also link child pages that have no link
            previous_document: Document before the edit; links that vanished
                               since then delete their pages

        Returns:
            ReconciliationReport (the caller persists ``report.document``)

        Raises:
            PersistenceError: If the page store cannot be read
        """
        document = tuple(document)
        report = ReconciliationReport(page_id, document)

        if previous_document is not None:
            await self._delete_unlinked(page_id, previous_document, document, report)

        children = {child.id: child for child in await self.page_store.get_child_pages(page_id)}
        linked: Set[str] = set()

        def check(block: Block) -> Block:
            if not block.is_page_link:
                return block
            target = block.link_page_id
            child = children.get(target)
            if child is None or target in linked:
                report.stale_page_ids.append(target)
                return paragraph(block.props.get("pageTitle") or DEFAULT_PAGE_TITLE, block_id=block.id)
            linked.add(target)
            if block.props.get("pageTitle") != child.title or block.props.get("pageIcon") != child.icon:
                report.refreshed_page_ids.append(target)
                return block.with_props(pageTitle=child.title, pageIcon=child.icon or DEFAULT_PAGE_ICON)
            return block

        result = map_blocks(document, check)

        if initial_load:
            missing = [child for child_id, child in children.items() if child_id not in linked]
            if missing:
                result = append_blocks(result, [page_link(c.id, c.title, c.icon or DEFAULT_PAGE_ICON) for c in missing])
                report.orphan_page_ids.extend(c.id for c in missing)

        for stale_id in report.stale_page_ids:
            logger.warning("stale_page_link_removed", page_id=page_id, linked_page_id=stale_id)
        for orphan_id in report.orphan_page_ids:
            logger.info("orphan_page_linked", page_id=page_id, child_page_id=orphan_id)

        report.document = result
        report.changed = result != document
        if report.changed or report.deleted_page_ids:
            logger.info(
                "links_reconciled",
                page_id=page_id,
                stale=len(report.stale_page_ids),
                orphans=len(report.orphan_page_ids),
                refreshed=len(report.refreshed_page_ids),
                deleted=len(report.deleted_page_ids),
            )
        return report

    async def _delete_unlinked(
        self, page_id: str, previous: Document, current: Document, report: ReconciliationReport
    ) -> None:
        removed = [pid for pid in dict.fromkeys(page_link_ids(previous)) if pid not in set(page_link_ids(current))]
        for child_id in removed:
            child = await self.page_store.get_page_by_id(child_id)
            # Only this page's own children; already-deleted pages are a no-op
            if child is None or child.parent_id != page_id:
                continue
            logger.info("page_link_deleted_cascading", page_id=page_id, child_page_id=child_id)
            try:
                result = await cascade_delete(self.page_store, child_id)
            except PersistenceError as e:
                report.failed[child_id] = str(e)
                logger.error("implicit_page_delete_failed", page_id=page_id, child_page_id=child_id, error=str(e))
                continue
            report.deleted_page_ids.extend(result.deleted)
            report.failed.update(result.failed)
