"""Page entity: a node in the navigable page tree."""

from dataclasses import dataclass, replace
from typing import Any, Optional

from saynote.models.blocks import Document


@dataclass(frozen=True)
class Page:
    """A page with its document content.

    The page tree is independent of block nesting: a page's children are
    the pages whose ``parent_id`` equals its id, and each of them should be
    referenced by exactly one pageLink block in its document.

    Attributes:
        id: Unique page id
        title: Page title
        icon: Short string or emoji shown next to the title
        parent_id: Parent page id (None for root pages)
        content: The page's document
        created_at: Creation time (epoch seconds)
        updated_at: Last save time (epoch seconds, never decreases)
    """

    id: str
    title: str
    icon: str
    parent_id: Optional[str]
    content: Document
    created_at: float
    updated_at: float

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def evolve(self, **changes: Any) -> "Page":
        """Return a copy with fields replaced."""
        return replace(self, **changes)
