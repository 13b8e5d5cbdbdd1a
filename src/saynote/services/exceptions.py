"""Custom exceptions for saynote services."""

from typing import Any, Dict, Optional


class SaynoteError(Exception):
    """Base class for all saynote errors."""


class StructuralViolationError(SaynoteError, ValueError):
    """Raised when a block or document would violate a structural invariant.

    Examples are a pageLink block carrying inline content or children,
    duplicate block ids within one document, or a heading level outside 1-3.
    """


class DocumentFormatError(SaynoteError, ValueError):
    """Raised when persisted document JSON does not have the expected shape."""


class InterpretationError(SaynoteError):
    """Raised by intent providers when a transcript cannot be interpreted.

    The command interpreter converts this into an ``Unrecognized`` intent,
    so it never reaches the session's caller.
    """


class PersistenceError(SaynoteError):
    """Raised when the page store or history store rejects a write.

    Attributes:
        page_id: Page whose state could not be persisted (if known)
        message: Human-readable error message
    """

    def __init__(self, message: str, page_id: Optional[str] = None):
        """Initialize PersistenceError.

        Args:
            message: Human-readable error message
            page_id: Page whose state could not be persisted
        """
        self.page_id = page_id
        self.message = message
        if page_id:
            super().__init__(f"{message}: {page_id}")
        else:
            super().__init__(message)


class PageNotFoundError(SaynoteError, KeyError):
    """Raised when a page id does not exist in the page store."""

    def __init__(self, page_id: str):
        self.page_id = page_id
        super().__init__(page_id)

    def __str__(self) -> str:
        return f"Page not found: {self.page_id}"


class InvalidPageHierarchyError(SaynoteError, ValueError):
    """Raised when a save would make a page its own ancestor."""


class OrphanedPageError(SaynoteError):
    """Raised when a linked page was created but its link block could not be inserted.

    The page exists in the store without a pageLink pointing at it and
    needs manual cleanup (or a retry of the link insertion).

    Attributes:
        page: The page that was created
    """

    def __init__(self, page: Any, reason: str):
        self.page = page
        self.reason = reason
        super().__init__(f"Page {page.id} was created but its link could not be inserted: {reason}")


class CascadeDeletionError(SaynoteError):
    """Raised when a cascading page deletion only partially succeeded.

    Attributes:
        deleted: Ids of pages that were deleted
        failed: Mapping of page id to error message for pages that were not
    """

    def __init__(self, deleted: list, failed: Dict[str, str]):
        self.deleted = deleted
        self.failed = failed
        super().__init__(
            f"Deleted {len(deleted)} page(s), failed to delete {len(failed)}: "
            + ", ".join(sorted(failed))
        )


class FileModifiedError(SaynoteError):
    """Raised when a file is modified during an atomic write operation.

    This exception indicates that the file changed between the initial
    read and the final write, which could lead to data loss if the write
    were to proceed.

    Attributes:
        path: Path to the file that was modified
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str = "File was modified during write operation"):
        """Initialize FileModifiedError.

        Args:
            path: Path to the file that was modified
            message: Human-readable error message
        """
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}")
