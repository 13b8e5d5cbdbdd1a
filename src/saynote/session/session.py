"""Edit session: the data flow for one open page.

transcript -> CommandInterpreter -> IntentExecutor -> LinkConsistencyValidator
-> HistoryManager -> debounced save through the PageGraphStore.

A session exclusively owns the working copy of its page's document. All
mutating entry points (``handle_transcript``, ``apply_document``, ``undo``,
``redo``, ``confirm``) run under one asyncio.Lock, so they are applied
strictly in submission order and an undo never interleaves with an edit.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import structlog

from saynote.document.operations import ensure_unique_ids
from saynote.document.serialization import document_to_list, sanitize_document
from saynote.executor.executor import (
    ConfirmationRequired,
    ExecutionResult,
    ExecutionStatus,
    IntentExecutor,
    PageCreated,
    SelectionChanged,
)
from saynote.executor.selectors import Selection
from saynote.history.manager import DEFAULT_MAX_ENTRIES, HistoryManager, HistoryOutcome
from saynote.interpreter.interpreter import CommandInterpreter
from saynote.links.validator import LinkConsistencyValidator, ReconciliationReport
from saynote.models.blocks import Document
from saynote.models.intents import EditIntent, Redo, Undo, Unrecognized
from saynote.models.page import Page
from saynote.services.exceptions import (
    InvalidPageHierarchyError,
    OrphanedPageError,
    PageNotFoundError,
    PersistenceError,
    StructuralViolationError,
)
from saynote.session.debounce import Debouncer

logger = structlog.get_logger()

MAX_NOTICES = 100


@dataclass(frozen=True)
class Notice:
    """Transient user feedback (the library's stand-in for a toast).

    Attributes:
        level: "info", "success" or "error"
        title: Short headline
        message: Details
    """

    level: str
    title: str
    message: str


@dataclass
class CommandOutcome:
    """What one transcript did.

    Attributes:
        transcript: The transcript as received
        intent: Interpreted intent
        status: Executor status (DELEGATED for undo/redo)
        document: Session document afterwards
        changed: Whether the document changed
        message: Short summary
        created_page: Page created by CreateLinkedPage, if any
        confirmation: Pending confirmation request, if the intent needs one
        history: Undo/redo outcome for Undo and Redo intents
        reconciliation: Link reconciliation report, if the document changed
        error: Recoverable error that was reported as a notice
    """

    transcript: str
    intent: EditIntent
    status: ExecutionStatus
    document: Document
    changed: bool
    message: str = ""
    created_page: Optional[Page] = None
    confirmation: Optional[ConfirmationRequired] = None
    history: Optional[HistoryOutcome] = None
    reconciliation: Optional[ReconciliationReport] = None
    error: Optional[Exception] = None
    side_effects: List[object] = field(default_factory=list)


class EditSession:
    """One active editor for one page.

    Create sessions with ``EditSession.open``.
    """

    def __init__(
        self,
        page: Page,
        page_store,
        interpreter: CommandInterpreter,
        executor: IntentExecutor,
        validator: LinkConsistencyValidator,
        history: HistoryManager,
        autosave_delay: float = 1.0,
        on_notice: Optional[Callable[[Notice], None]] = None,
    ):
        self.page = page
        self.page_store = page_store
        self.interpreter = interpreter
        self.executor = executor
        self.validator = validator
        self.history = history
        self.on_notice = on_notice
        self.document: Document = tuple(page.content)
        self.selection: Optional[Selection] = None
        self.pending_confirmation: Optional[ConfirmationRequired] = None
        self.notices: List[Notice] = []
        self._lock = asyncio.Lock()
        self._save_failed = False
        self._saver: Debouncer[Document] = Debouncer(self._save_document, autosave_delay, on_error=self._on_save_error)

    @classmethod
    async def open(
        cls,
        page_id: str,
        page_store,
        *,
        interpreter: Optional[CommandInterpreter] = None,
        executor: Optional[IntentExecutor] = None,
        history_store=None,
        max_history: int = DEFAULT_MAX_ENTRIES,
        autosave_delay: float = 1.0,
        on_notice: Optional[Callable[[Notice], None]] = None,
    ) -> "EditSession":
        """
        Open a page for editing.

        Loads the page, sanitizes its content, loads persisted history and
        reconciles links in initial-load mode (linking orphaned child
        pages). If that changed the document it is saved right away.

        Args:
            page_id: Page to open
            page_store: PageGraphStore
            interpreter: Command interpreter (default: local grammar only)
            executor: Intent executor (default: one bound to ``page_store``)
            history_store: KeyValueStore for undo/redo persistence (None: memory only)
            max_history: Maximum depth of each history stack
            autosave_delay: Debounce delay for saves, in seconds
            on_notice: Callback receiving every Notice

        Returns:
            EditSession

        Raises:
            PageNotFoundError: If the page does not exist
            PersistenceError: If the page store fails
        """
        page = await page_store.get_page_by_id(page_id)
        if page is None:
            raise PageNotFoundError(page_id)

        document = sanitize_document(document_to_list(page.content), page.title)
        history = HistoryManager(page_id, history_store, max_history)
        await history.load()

        session = cls(
            page.evolve(content=document),
            page_store,
            interpreter or CommandInterpreter(),
            executor or IntentExecutor(page_store),
            LinkConsistencyValidator(page_store),
            history,
            autosave_delay=autosave_delay,
            on_notice=on_notice,
        )

        report = await session.validator.reconcile(page_id, document, initial_load=True)
        session.document = report.document
        if session.document != tuple(page.content):
            session._saver.submit(session.document)
            await session.flush()

        logger.info("session_opened", page_id=page_id, block_count=len(session.document))
        return session

    @property
    def page_id(self) -> str:
        return self.page.id

    @property
    def is_saving(self) -> bool:
        """True while a save is pending or the last save failed."""
        return self._saver.pending or self._save_failed

    def notify(self, level: str, title: str, message: str) -> None:
        notice = Notice(level, title, message)
        self.notices.append(notice)
        del self.notices[:-MAX_NOTICES]
        if self.on_notice is not None:
            self.on_notice(notice)

    async def handle_transcript(self, transcript: str) -> CommandOutcome:
        """
        Interpret and apply one transcript.

        Never loses the user's speech: when interpretation or execution
        fails the transcript is inserted as a plain paragraph.

        Args:
            transcript: Transcribed text

        Returns:
            CommandOutcome
        """
        async with self._lock:
            intent = await self.interpreter.interpret(transcript, self.document)
            if isinstance(intent, Unrecognized) and intent.reason:
                self.notify("info", "Command not recognized", intent.reason)
            if isinstance(intent, (Undo, Redo)):
                return self._history_outcome(transcript, intent, await self._step_history(intent))
            return await self._run_intent(intent, transcript)

    async def execute(self, intent: EditIntent) -> CommandOutcome:
        """Apply an already-built intent (no transcript, so no plain-text fallback)."""
        async with self._lock:
            if isinstance(intent, (Undo, Redo)):
                return self._history_outcome("", intent, await self._step_history(intent))
            return await self._run_intent(intent, "")

    async def confirm(self) -> Optional[CommandOutcome]:
        """
        Go ahead with the pending confirmation request.

        Returns:
            CommandOutcome, or None when nothing was waiting for confirmation
        """
        async with self._lock:
            pending = self.pending_confirmation
            if pending is None:
                return None
            self.pending_confirmation = None
            return await self._run_intent(pending.intent, "")

    def cancel_confirmation(self) -> None:
        self.pending_confirmation = None

    async def _run_intent(self, intent: EditIntent, transcript: str) -> CommandOutcome:
        previous = self.document
        result = await self.executor.execute(intent, previous, self.page_id, self.selection, transcript)

        if isinstance(result.error, StructuralViolationError) and transcript:
            # Executor refused the edit; keep the speech as text instead
            result = await self.executor.execute(
                Unrecognized(transcript, reason=str(result.error)), previous, self.page_id, self.selection, transcript
            )

        outcome = CommandOutcome(
            transcript=transcript,
            intent=intent,
            status=result.status,
            document=previous,
            changed=False,
            message=result.message,
            error=result.error,
            side_effects=list(result.side_effects),
        )
        self._apply_side_effects(result, outcome)

        if result.changed:
            try:
                outcome.reconciliation = await self._commit(previous, result.document)
            except PersistenceError as e:
                outcome.error = e
                self.notify("error", "Page links not checked", str(e))
            outcome.changed = self.document != previous

        outcome.document = self.document
        self._report(result, outcome)
        return outcome

    def _apply_side_effects(self, result: ExecutionResult, outcome: CommandOutcome) -> None:
        for effect in result.side_effects:
            if isinstance(effect, SelectionChanged):
                self.selection = effect.selection
            elif isinstance(effect, PageCreated):
                outcome.created_page = effect.page
            elif isinstance(effect, ConfirmationRequired):
                self.pending_confirmation = effect
                outcome.confirmation = effect

    def _report(self, result: ExecutionResult, outcome: CommandOutcome) -> None:
        if isinstance(result.error, OrphanedPageError):
            self.notify("error", "Page not linked", str(result.error))
        elif result.status is ExecutionStatus.FALLBACK and result.error is not None:
            self.notify("error", result.message, str(result.error))
        elif result.status is ExecutionStatus.NEEDS_CONFIRMATION:
            self.notify("info", "Confirm deletion", result.message)
        elif result.status is ExecutionStatus.NO_OP:
            self.notify("info", "Nothing to do", result.message)
        elif outcome.created_page is not None:
            self.notify("success", "Page created", result.message)

    async def _commit(self, previous: Document, document: Document) -> ReconciliationReport:
        """Reconcile, record and schedule a save for an ordinary edit.

        If reconciliation fails the edit is still kept (and saved later).
        """
        try:
            report = await self.validator.reconcile(self.page_id, document, previous_document=previous)
        except PersistenceError:
            self._install(previous, document)
            raise

        self._install(previous, report.document)
        await self._after_reconcile(report)
        return report

    def _install(self, previous: Document, document: Document) -> None:
        self.document = document
        if document != previous:
            self.history.record(previous)
        self._saver.submit(document)

    async def _after_reconcile(self, report: ReconciliationReport) -> None:
        if report.deleted_page_ids:
            self.notify("info", "Pages deleted", f"Deleted {len(report.deleted_page_ids)} linked page(s)")
            for deleted_id in report.deleted_page_ids:
                try:
                    await HistoryManager(deleted_id, self.history.store).discard()
                except PersistenceError as e:
                    logger.warning("history_discard_failed", page_id=deleted_id, error=str(e))
        if report.failed:
            self.notify(
                "error",
                "Some pages were not deleted",
                ", ".join(f"{pid}: {error}" for pid, error in report.failed.items()),
            )
        if report.stale_page_ids:
            self.notify("info", "Broken links replaced", f"{len(report.stale_page_ids)} link(s) no longer had a page")

    async def apply_document(self, document: Document) -> ReconciliationReport:
        """
        Commit an ordinary edit made outside of voice commands (typing, block deletion).

        Removing a pageLink this way deletes the linked page and its descendants.

        Raises:
            StructuralViolationError: If the document has duplicate block ids
            PersistenceError: If the page store could not be read
        """
        document = tuple(document)
        ensure_unique_ids(document)
        async with self._lock:
            previous = self.document
            if document == previous:
                return ReconciliationReport(self.page_id, previous)
            return await self._commit(previous, document)

    async def undo(self, steps: int = 1) -> HistoryOutcome:
        async with self._lock:
            return await self._step_history(Undo(steps))

    async def redo(self, steps: int = 1) -> HistoryOutcome:
        async with self._lock:
            return await self._step_history(Redo(steps))

    async def _step_history(self, intent) -> HistoryOutcome:
        previous = self.document
        if isinstance(intent, Undo):
            outcome = self.history.undo(previous, intent.steps)
        else:
            outcome = self.history.redo(previous, intent.steps)

        if not outcome.changed:
            self.notify("info", outcome.message, "")
            return outcome

        # Applying history is not itself an undoable edit; links that went
        # away are not treated as page deletions either
        with self.history.applying():
            try:
                report = await self.validator.reconcile(self.page_id, outcome.document)
                document = report.document
            except PersistenceError as e:
                self.notify("error", "Page links not checked", str(e))
                document = outcome.document
            self._install(previous, document)

        if outcome.partial:
            self.notify("info", outcome.message, "")
        return HistoryOutcome(self.document, outcome.requested, outcome.applied, outcome.message)

    def _history_outcome(self, transcript: str, intent: EditIntent, outcome: HistoryOutcome) -> CommandOutcome:
        return CommandOutcome(
            transcript=transcript,
            intent=intent,
            status=ExecutionStatus.DELEGATED,
            document=self.document,
            changed=outcome.changed,
            message=outcome.message,
            history=outcome,
        )

    async def _save_document(self, document: Document) -> None:
        page = self.page.evolve(content=document)
        try:
            stored = await self.page_store.save_page(page)
        except (PageNotFoundError, InvalidPageHierarchyError) as e:
            raise PersistenceError(f"Cannot save page ({e})", page_id=self.page_id) from e
        self.page = stored
        await self.history.persist()
        if self._save_failed:
            self._save_failed = False
            self.notify("success", "Saved", "Changes saved")
        logger.info("session_saved", page_id=self.page_id, block_count=len(document))

    def _on_save_error(self, error: Exception) -> None:
        self._save_failed = True
        self.notify("error", "Could not save", str(error))

    async def flush(self) -> None:
        """
        Save the latest document now.

        Raises:
            PersistenceError: If the save failed (the document stays in memory
                              and is retried by the next save)
        """
        try:
            await self._saver.flush()
        except PersistenceError:
            self._save_failed = True
            raise

    async def close(self) -> None:
        """Flush pending changes and persist history."""
        await self.flush()
        await self.history.persist()
        logger.info("session_closed", page_id=self.page_id)
