"""Page Graph Store: CRUD and parent/child indexing over pages.

``PageGraphStore`` is the interface the core consumes; persistence behind
it is a collaborator. Two implementations ship with saynote:

- ``InMemoryPageStore`` for tests and embedding.
- ``JsonFilePageStore``, which keeps every page in one JSON file written
  atomically after each change.

All implementations enforce the hierarchy rules: a page's parent must
exist and a page may not become its own ancestor.
"""

import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional

import structlog

from saynote.document.serialization import page_from_dict, page_to_dict
from saynote.models.blocks import DEFAULT_PAGE_ICON, DEFAULT_PAGE_TITLE, default_document
from saynote.models.page import Page
from saynote.services.exceptions import (
    DocumentFormatError,
    FileModifiedError,
    InvalidPageHierarchyError,
    PageNotFoundError,
    PersistenceError,
)
from saynote.services.file_operations import atomic_write, file_mtime
from saynote.services.page_graph import cascade_delete, would_create_cycle
from saynote.utils.ids import generate_page_id

logger = structlog.get_logger()


class PageGraphStore(ABC):
    """Abstract page store.

    Subclasses implement the primitive operations; ``delete_page`` is built
    on ``remove_page`` via ``cascade_delete``.
    """

    @abstractmethod
    async def create_page(
        self, parent_id: Optional[str], title: str = DEFAULT_PAGE_TITLE, icon: str = DEFAULT_PAGE_ICON
    ) -> Page:
        """
        Create a page with the default heading + paragraph content.

        Raises:
            PageNotFoundError: If ``parent_id`` does not exist
            PersistenceError: If the page could not be stored
        """
        pass

    @abstractmethod
    async def get_page_by_id(self, page_id: str) -> Optional[Page]:
        pass

    @abstractmethod
    async def save_page(self, page: Page) -> Page:
        """
        Store a page, stamping a new ``updated_at``.

        Returns:
            The stored page

        Raises:
            PageNotFoundError: If the page's parent does not exist
            InvalidPageHierarchyError: If the save would create a cycle
            PersistenceError: If the page could not be stored
        """
        pass

    @abstractmethod
    async def remove_page(self, page_id: str) -> bool:
        """
        Remove one page (no cascade).

        Returns:
            True if the page existed

        Raises:
            PersistenceError: If the removal could not be stored
        """
        pass

    @abstractmethod
    async def get_child_pages(self, parent_id: Optional[str]) -> List[Page]:
        """Direct children of ``parent_id`` (root pages for None), oldest first."""
        pass

    @abstractmethod
    async def load_all_pages(self) -> List[Page]:
        pass

    async def delete_page(self, page_id: str) -> bool:
        """
        Delete a page and every transitive descendant.

        Returns:
            True if the page itself was deleted
        """
        result = await cascade_delete(self, page_id)
        return page_id in result.deleted


class InMemoryPageStore(PageGraphStore):
    """Page store holding pages in a dict."""

    def __init__(self, pages: Optional[List[Page]] = None, clock: Callable[[], float] = time.time):
        """
        Initialize the store.

        Args:
            pages: Initial pages (stored as given, without hierarchy checks)
            clock: Time source for timestamps
        """
        self._pages: Dict[str, Page] = {page.id: page for page in pages or []}
        self._clock = clock

    def _now(self, previous: Optional[Page] = None) -> float:
        now = self._clock()
        # updated_at never goes backwards, even if the clock does
        if previous is not None and now < previous.updated_at:
            return previous.updated_at
        return now

    def _check_hierarchy(self, page: Page) -> None:
        if page.parent_id is not None and page.parent_id not in self._pages:
            raise PageNotFoundError(page.parent_id)
        if would_create_cycle(self._pages.values(), page.id, page.parent_id):
            raise InvalidPageHierarchyError(
                f"Page {page.id} cannot have parent {page.parent_id}: it would become its own ancestor"
            )

    def _commit(self) -> None:
        """Persist the current page set (no-op in memory)."""

    async def create_page(
        self, parent_id: Optional[str], title: str = DEFAULT_PAGE_TITLE, icon: str = DEFAULT_PAGE_ICON
    ) -> Page:
        if parent_id is not None and parent_id not in self._pages:
            raise PageNotFoundError(parent_id)

        title = title or DEFAULT_PAGE_TITLE
        now = self._now()
        page = Page(
            id=generate_page_id(),
            title=title,
            icon=icon or DEFAULT_PAGE_ICON,
            parent_id=parent_id,
            content=default_document(title),
            created_at=now,
            updated_at=now,
        )
        self._pages[page.id] = page
        try:
            self._commit()
        except PersistenceError:
            del self._pages[page.id]
            raise

        logger.info("page_created", page_id=page.id, parent_id=parent_id, title=title)
        return page

    async def get_page_by_id(self, page_id: str) -> Optional[Page]:
        return self._pages.get(page_id)

    async def save_page(self, page: Page) -> Page:
        self._check_hierarchy(page)
        previous = self._pages.get(page.id)
        stored = page.evolve(updated_at=self._now(previous))
        self._pages[page.id] = stored
        try:
            self._commit()
        except PersistenceError:
            if previous is None:
                del self._pages[page.id]
            else:
                self._pages[page.id] = previous
            raise

        logger.debug("page_saved", page_id=page.id, block_count=len(page.content))
        return stored

    async def remove_page(self, page_id: str) -> bool:
        previous = self._pages.pop(page_id, None)
        if previous is None:
            return False
        try:
            self._commit()
        except PersistenceError:
            self._pages[page_id] = previous
            raise
        logger.info("page_removed", page_id=page_id)
        return True

    async def get_child_pages(self, parent_id: Optional[str]) -> List[Page]:
        children = [page for page in self._pages.values() if page.parent_id == parent_id]
        return sorted(children, key=lambda p: (p.created_at, p.id))

    async def load_all_pages(self) -> List[Page]:
        return sorted(self._pages.values(), key=lambda p: (p.created_at, p.id))


class JsonFilePageStore(InMemoryPageStore):
    """Page store persisted as one JSON file (``{"pages": [...]}``).

    The file is rewritten atomically after every change. If another process
    rewrites it in between, the write fails with PersistenceError rather
    than silently overwriting the other writer's changes.
    """

    def __init__(self, path: Path, clock: Callable[[], float] = time.time):
        """
        Load pages from ``path`` (a missing file means an empty store).

        Raises:
            PersistenceError: If the file exists but cannot be read or parsed
        """
        super().__init__(clock=clock)
        self.path = Path(path)
        self._mtime: Optional[float] = None
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            records = data.get("pages", []) if isinstance(data, dict) else data
            pages = [page_from_dict(record) for record in records]
        except (OSError, ValueError, DocumentFormatError, AttributeError, TypeError) as e:
            raise PersistenceError(f"Cannot load page store {self.path}: {e}") from e

        self._pages = {page.id: page for page in pages}
        self._mtime = file_mtime(self.path)
        logger.info("page_store_loaded", path=str(self.path), page_count=len(pages))

    def _commit(self) -> None:
        pages = sorted(self._pages.values(), key=lambda p: (p.created_at, p.id))
        content = json.dumps({"pages": [page_to_dict(page) for page in pages]}, ensure_ascii=False, indent=2)
        try:
            self._mtime = atomic_write(self.path, content, expected_mtime=self._mtime)
        except (OSError, FileModifiedError) as e:
            logger.error("page_store_write_failed", path=str(self.path), error=str(e))
            raise PersistenceError(f"Cannot write page store {self.path}: {e}") from e
