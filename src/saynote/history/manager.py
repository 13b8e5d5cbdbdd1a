"""Per-page undo/redo history.

Transition rules:
- A committed edit pushes the pre-edit document onto the undo stack and
  clears the redo stack.
- Undo pops the undo stack into the current document and pushes the
  previous current document onto the redo stack; redo is symmetric.
- Multi-step undo/redo repeats the single step until the requested count
  or an empty stack, whichever comes first.

Stack operations are synchronous and in-memory. ``load``/``persist`` move
the stacks to and from a KeyValueStore under ``undo_<pageId>`` and
``redo_<pageId>``; an empty stack is stored as an absent key.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

import structlog

from saynote.document.serialization import history_from_json, history_to_json
from saynote.models.blocks import Document
from saynote.services.exceptions import PersistenceError

logger = structlog.get_logger()

DEFAULT_MAX_ENTRIES = 50


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable snapshot of a document."""

    document: Document
    timestamp: float


@dataclass(frozen=True)
class HistoryOutcome:
    """Result of an undo or redo request.

    Attributes:
        document: Current document after the operation
        requested: Steps asked for
        applied: Steps actually taken (fewer when the stack ran out)
        message: Short summary for notices
    """

    document: Document
    requested: int
    applied: int
    message: str

    @property
    def changed(self) -> bool:
        return self.applied > 0

    @property
    def partial(self) -> bool:
        return 0 < self.applied < self.requested


def undo_key(page_id: str) -> str:
    return f"undo_{page_id}"


def redo_key(page_id: str) -> str:
    return f"redo_{page_id}"


class HistoryManager:
    """Bounded undo/redo stacks for one page."""

    def __init__(
        self,
        page_id: str,
        store=None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the history.

        Args:
            page_id: Page the history belongs to
            store: KeyValueStore for persistence (None keeps history in memory only)
            max_entries: Maximum depth of each stack; the oldest entries are dropped
            clock: Time source for entry timestamps
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.page_id = page_id
        self.store = store
        self.max_entries = max_entries
        self._clock = clock
        self._undo: List[HistoryEntry] = []
        self._redo: List[HistoryEntry] = []
        self._applying = False

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    @property
    def is_applying(self) -> bool:
        return self._applying

    @contextmanager
    def applying(self) -> Iterator[None]:
        """Suppress ``record`` while an undo/redo result is being applied."""
        previous = self._applying
        self._applying = True
        try:
            yield
        finally:
            self._applying = previous

    def _push(self, stack: List[HistoryEntry], document: Document) -> None:
        stack.append(HistoryEntry(tuple(document), self._clock()))
        if len(stack) > self.max_entries:
            del stack[: len(stack) - self.max_entries]

    def record(self, previous_document: Document) -> bool:
        """
        Record a committed edit.

        Args:
            previous_document: The document as it was before the edit

        Returns:
            False if recording is suppressed (an undo/redo is being applied)
        """
        if self._applying:
            logger.debug("history_record_suppressed", page_id=self.page_id)
            return False
        self._push(self._undo, previous_document)
        self._redo.clear()
        logger.debug("history_recorded", page_id=self.page_id, undo_depth=len(self._undo))
        return True

    def _step(
        self, current: Document, steps: int, source: List[HistoryEntry], target: List[HistoryEntry], verb: str
    ) -> HistoryOutcome:
        if steps < 1:
            raise ValueError(f"steps must be >= 1, got {steps}")

        applied = 0
        while applied < steps and source:
            entry = source.pop()
            self._push(target, current)
            current = entry.document
            applied += 1

        if applied == 0:
            message = f"Nothing to {verb}"
        elif applied < steps:
            message = f"{verb.capitalize()} {applied} of {steps} change(s); no more history"
        else:
            message = f"{verb.capitalize()} {applied} change(s)"

        logger.info(
            f"history_{verb}",
            page_id=self.page_id,
            requested=steps,
            applied=applied,
            undo_depth=len(self._undo),
            redo_depth=len(self._redo),
        )
        return HistoryOutcome(tuple(current), steps, applied, message)

    def undo(self, current: Document, steps: int = 1) -> HistoryOutcome:
        """
        Step back through the undo stack.

        Args:
            current: Current document (pushed onto the redo stack)
            steps: Maximum number of steps

        Returns:
            HistoryOutcome; ``applied == 0`` means there was nothing to undo
        """
        return self._step(current, steps, self._undo, self._redo, "undo")

    def redo(self, current: Document, steps: int = 1) -> HistoryOutcome:
        """Step forward through the redo stack (see ``undo``)."""
        return self._step(current, steps, self._redo, self._undo, "redo")

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    async def load(self) -> None:
        """Replace the in-memory stacks with the persisted ones (missing keys mean empty stacks)."""
        if self.store is None:
            return
        now = self._clock()
        undo_docs = history_from_json(await self.store.get(undo_key(self.page_id)))
        redo_docs = history_from_json(await self.store.get(redo_key(self.page_id)))
        self._undo = [HistoryEntry(doc, now) for doc in undo_docs[-self.max_entries:]]
        self._redo = [HistoryEntry(doc, now) for doc in redo_docs[-self.max_entries:]]
        logger.debug("history_loaded", page_id=self.page_id, undo_depth=len(self._undo), redo_depth=len(self._redo))

    async def persist(self) -> None:
        """
        Write both stacks to the store; empty stacks delete their key.

        Raises:
            PersistenceError: If the store rejects a write
        """
        if self.store is None:
            return
        for key, stack in ((undo_key(self.page_id), self._undo), (redo_key(self.page_id), self._redo)):
            try:
                if stack:
                    await self.store.set(key, history_to_json([entry.document for entry in stack]))
                else:
                    await self.store.delete(key)
            except PersistenceError as e:
                logger.error("history_persist_failed", page_id=self.page_id, key=key, error=str(e))
                raise PersistenceError(f"Cannot persist history ({e})", page_id=self.page_id) from e
        logger.debug("history_persisted", page_id=self.page_id)

    async def discard(self) -> None:
        """Forget all history for the page, in memory and in the store."""
        self.clear()
        await self.persist()
