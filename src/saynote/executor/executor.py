"""Intent executor: apply one EditIntent to a document.

``IntentExecutor.execute`` never mutates its input. It returns an
``ExecutionResult`` holding the new document, a status and the side effects
the caller has to act on (a page was created, a confirmation is needed,
the selection moved).

Selectors are resolved here, against the live document. A selector that
matches nothing is a no-op, not an error. Undo and redo are not applied
here; they are reported as DELEGATED for the history manager.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import structlog

from saynote.document.operations import (
    append_blocks,
    collect_ids,
    insert_after,
    remove_by_id,
    subtree_blocks,
    update_by_id,
    with_fresh_ids,
)
from saynote.document.text import (
    append_text,
    clear_styles,
    delete_matches,
    delete_span,
    replace_in_runs,
    style_all,
    style_matches,
    style_span,
)
from saynote.executor.selectors import Selection, resolve_range, resolve_selector, resolve_single
from saynote.models.blocks import (
    DEFAULT_PAGE_ICON,
    DEFAULT_PAGE_TITLE,
    TEXT_BLOCK_DEFAULT_PROPS,
    Block,
    BlockType,
    Document,
    page_link,
    paragraph,
)
from saynote.models.intents import (
    AppendText,
    ApplyFormatting,
    BlockSelector,
    ChangeBlockType,
    ClearFormatting,
    CreateLinkedPage,
    DeleteRange,
    EditIntent,
    InsertContent,
    Redo,
    ReplaceText,
    SelectorKind,
    SelectText,
    TextRange,
    Undo,
    Unrecognized,
)
from saynote.models.page import Page
from saynote.services.exceptions import (
    OrphanedPageError,
    PageNotFoundError,
    PersistenceError,
    StructuralViolationError,
)

logger = structlog.get_logger()


class ExecutionStatus(str, Enum):
    """What happened to the document."""

    APPLIED = "applied"
    NO_OP = "no_op"
    NEEDS_CONFIRMATION = "needs_confirmation"
    FALLBACK = "fallback"
    DELEGATED = "delegated"


@dataclass(frozen=True)
class PageCreated:
    """A child page was created; the caller may offer navigation to it."""

    page: Page


@dataclass(frozen=True)
class ConfirmationRequired:
    """The intent would delete linked pages.

    Resubmit ``intent`` (already marked as confirmed) to go ahead.
    """

    intent: EditIntent
    page_ids: tuple
    message: str


@dataclass(frozen=True)
class SelectionChanged:
    selection: Selection


SideEffect = Union[PageCreated, ConfirmationRequired, SelectionChanged]


@dataclass
class ExecutionResult:
    """Outcome of executing one intent.

    Attributes:
        document: Resulting document (the input document when nothing changed)
        status: What happened
        changed: Whether ``document`` differs from the input
        side_effects: Requests for the caller, in order
        message: Short human-readable summary for notices
        error: Recoverable error to surface (the document is still valid)
    """

    document: Document
    status: ExecutionStatus
    changed: bool = False
    side_effects: List[SideEffect] = field(default_factory=list)
    message: str = ""
    error: Optional[Exception] = None


@dataclass
class _Context:
    document: Document
    page_id: Optional[str]
    selection: Optional[Selection]
    transcript: str


def _no_op(ctx: _Context, message: str) -> ExecutionResult:
    return ExecutionResult(ctx.document, ExecutionStatus.NO_OP, message=message)


def _applied(ctx: _Context, document: Document, message: str, **kwargs: Any) -> ExecutionResult:
    if document == ctx.document:
        return ExecutionResult(ctx.document, ExecutionStatus.NO_OP, message=f"{message} (nothing changed)", **kwargs)
    return ExecutionResult(document, ExecutionStatus.APPLIED, changed=True, message=message, **kwargs)


def _text_targets(ctx: _Context, selector: BlockSelector) -> List[Block]:
    """Resolve a selector, dropping pageLinks (they carry no text)."""
    return [block for block in resolve_selector(ctx.document, selector, ctx.selection) if not block.is_page_link]


def _selected_span(ctx: _Context, selector: BlockSelector):
    """The current text selection, when ``selector`` refers to it."""
    selection = ctx.selection
    if selector.kind is SelectorKind.CURRENT and selection is not None and selection.is_text:
        return selection.block_ids[0], selection.start, selection.end
    return None


class IntentExecutor:
    """Applies edit intents to documents.

    Only ``CreateLinkedPage`` touches the page store; every other intent is
    a pure document transformation.
    """

    def __init__(
        self,
        page_store=None,
        default_page_title: str = DEFAULT_PAGE_TITLE,
        default_page_icon: str = DEFAULT_PAGE_ICON,
    ):
        """
        Initialize the executor.

        Args:
            page_store: PageGraphStore used to create linked pages (None
                        makes CreateLinkedPage fall back to plain text)
            default_page_title: Title for pages created without one
            default_page_icon: Icon for pages created without one
        """
        self.page_store = page_store
        self.default_page_title = default_page_title
        self.default_page_icon = default_page_icon
        self._handlers: Dict[type, Callable[[Any, _Context], Awaitable[ExecutionResult]]] = {
            InsertContent: self._insert_content,
            ApplyFormatting: self._apply_formatting,
            ClearFormatting: self._clear_formatting,
            AppendText: self._append_text,
            SelectText: self._select_text,
            ReplaceText: self._replace_text,
            DeleteRange: self._delete_range,
            ChangeBlockType: self._change_block_type,
            CreateLinkedPage: self._create_linked_page,
            Undo: self._delegate,
            Redo: self._delegate,
            Unrecognized: self._unrecognized,
        }

    async def execute(
        self,
        intent: EditIntent,
        document: Document,
        page_id: Optional[str] = None,
        selection: Optional[Selection] = None,
        transcript: str = "",
    ) -> ExecutionResult:
        """
        Apply one intent.

        Args:
            intent: Intent to apply
            document: Current document
            page_id: Page owning the document (needed to create child pages)
            selection: Current editor selection
            transcript: Original transcript, used for plain-text fallbacks

        Returns:
            ExecutionResult

        Raises:
            TypeError: If ``intent`` is not an EditIntent
        """
        handler = self._handlers.get(type(intent))
        if handler is None:
            raise TypeError(f"Not an edit intent: {type(intent).__name__}")

        ctx = _Context(tuple(document), page_id, selection, transcript)
        try:
            result = await handler(intent, ctx)
        except StructuralViolationError as e:
            # The edit would have produced an invalid block; keep the document as it was
            logger.warning(
                "intent_structural_violation",
                intent=type(intent).__name__,
                page_id=page_id,
                error=str(e),
            )
            return ExecutionResult(ctx.document, ExecutionStatus.NO_OP, message=str(e), error=e)

        logger.info(
            "intent_executed",
            intent=type(intent).__name__,
            page_id=page_id,
            status=result.status.value,
            changed=result.changed,
        )
        return result

    async def _insert_content(self, intent: InsertContent, ctx: _Context) -> ExecutionResult:
        if not intent.blocks:
            return _no_op(ctx, "Nothing to insert")

        blocks = with_fresh_ids(intent.blocks, collect_ids(ctx.document))
        anchor_id = None
        if intent.after is not None:
            anchor = resolve_single(ctx.document, intent.after, ctx.selection)
            anchor_id = anchor.id if anchor is not None else None

        document = insert_after(ctx.document, anchor_id, blocks)
        return _applied(
            ctx,
            document,
            f"Inserted {len(blocks)} block(s)",
            side_effects=[SelectionChanged(Selection((blocks[-1].id,)))],
        )

    async def _apply_formatting(self, intent: ApplyFormatting, ctx: _Context) -> ExecutionResult:
        span = None if intent.text else _selected_span(ctx, intent.target)
        if span is not None:
            block_id, start, end = span
            document = update_by_id(
                ctx.document, [block_id], lambda b: b.evolve(content=style_span(b.content, intent.style, intent.value, start, end))
            )
            return _applied(ctx, document, f"Applied {intent.style.value} to the selection")

        blocks = _text_targets(ctx, intent.target)
        if not blocks:
            return _no_op(ctx, f"No {intent.target.describe()} to format")

        def restyle(block: Block) -> Block:
            if intent.text:
                runs, _ = style_matches(block.content, intent.text, intent.style, intent.value)
            else:
                runs = style_all(block.content, intent.style, intent.value)
            return block.evolve(content=runs)

        document = update_by_id(ctx.document, [b.id for b in blocks], restyle)
        return _applied(ctx, document, f"Applied {intent.style.value} to {intent.target.describe()}")

    async def _clear_formatting(self, intent: ClearFormatting, ctx: _Context) -> ExecutionResult:
        blocks = _text_targets(ctx, intent.target)
        if not blocks:
            return _no_op(ctx, f"No {intent.target.describe()} to clear")
        document = update_by_id(
            ctx.document, [b.id for b in blocks], lambda b: b.evolve(content=clear_styles(b.content))
        )
        return _applied(ctx, document, f"Removed formatting from {intent.target.describe()}")

    async def _append_text(self, intent: AppendText, ctx: _Context) -> ExecutionResult:
        block = resolve_single(ctx.document, intent.target, ctx.selection)
        if block is None or block.is_page_link:
            return _no_op(ctx, f"No {intent.target.describe()} to add text to")
        document = update_by_id(
            ctx.document,
            [block.id],
            lambda b: b.evolve(content=append_text(b.content, intent.text, prepend=intent.prepend)),
        )
        return _applied(ctx, document, "Added text", side_effects=[SelectionChanged(Selection((block.id,)))])

    async def _select_text(self, intent: SelectText, ctx: _Context) -> ExecutionResult:
        if isinstance(intent.target, TextRange):
            resolved = resolve_range(ctx.document, intent.target, ctx.selection)
            if resolved is None:
                return _no_op(ctx, "Could not find that text")
            block, start, end = resolved
            selection = Selection((block.id,), start, end)
        else:
            blocks = resolve_selector(ctx.document, intent.target, ctx.selection)
            if not blocks:
                return _no_op(ctx, f"No {intent.target.describe()} to select")
            selection = Selection(tuple(b.id for b in blocks))

        return ExecutionResult(
            ctx.document,
            ExecutionStatus.APPLIED,
            side_effects=[SelectionChanged(selection)],
            message=f"Selected {len(selection.block_ids)} block(s)",
        )

    def _scope_ids(self, ctx: _Context, scope: Optional[Union[BlockSelector, TextRange]]) -> List[str]:
        if scope is None:
            return collect_ids(ctx.document)
        selector = scope.block if isinstance(scope, TextRange) else scope
        roots = resolve_selector(ctx.document, selector, ctx.selection)
        return [b.id for b in subtree_blocks(ctx.document, [r.id for r in roots])]

    async def _replace_text(self, intent: ReplaceText, ctx: _Context) -> ExecutionResult:
        count = 0

        def replace(block: Block) -> Block:
            nonlocal count
            runs, n = replace_in_runs(block.content, intent.find, intent.replace_with)
            if not n:
                return block
            count += n
            return block.evolve(content=runs)

        document = update_by_id(ctx.document, self._scope_ids(ctx, intent.scope), replace)
        if not count:
            return _no_op(ctx, f"'{intent.find}' not found")
        return _applied(ctx, document, f"Replaced {count} occurrence(s) of '{intent.find}'")

    async def _delete_range(self, intent: DeleteRange, ctx: _Context) -> ExecutionResult:
        if intent.find:
            return self._delete_matches(intent, ctx)
        if isinstance(intent.scope, TextRange):
            return self._delete_span(intent.scope, ctx)
        return self._delete_blocks(intent, ctx)

    def _delete_matches(self, intent: DeleteRange, ctx: _Context) -> ExecutionResult:
        count = 0

        def delete(block: Block) -> Block:
            nonlocal count
            runs, n = delete_matches(block.content, intent.find)
            if not n:
                return block
            count += n
            return block.evolve(content=runs)

        document = update_by_id(ctx.document, self._scope_ids(ctx, intent.scope), delete)
        if not count:
            return _no_op(ctx, f"'{intent.find}' not found")
        return _applied(ctx, document, f"Deleted {count} occurrence(s) of '{intent.find}'")

    def _delete_span(self, text_range: TextRange, ctx: _Context) -> ExecutionResult:
        resolved = resolve_range(ctx.document, text_range, ctx.selection)
        if resolved is None:
            return _no_op(ctx, "Could not find that text")
        block, start, end = resolved
        document = update_by_id(ctx.document, [block.id], lambda b: b.evolve(content=delete_span(b.content, start, end)))
        return _applied(ctx, document, f"Deleted {end - start} character(s)")

    def _delete_blocks(self, intent: DeleteRange, ctx: _Context) -> ExecutionResult:
        selector = intent.scope
        span = _selected_span(ctx, selector)
        if span is not None:
            block_id, start, end = span
            document = update_by_id(ctx.document, [block_id], lambda b: b.evolve(content=delete_span(b.content, start, end)))
            return _applied(ctx, document, "Deleted the selection")

        blocks = resolve_selector(ctx.document, selector, ctx.selection)
        if not blocks:
            return _no_op(ctx, f"No {selector.describe()} to delete")

        ids = [b.id for b in blocks]
        linked = tuple(b.link_page_id for b in subtree_blocks(ctx.document, ids) if b.is_page_link)
        if linked and not intent.confirmed:
            message = f"Deleting this will also delete {len(linked)} linked page(s) and their subpages"
            logger.info("delete_needs_confirmation", page_id=ctx.page_id, linked_pages=len(linked))
            return ExecutionResult(
                ctx.document,
                ExecutionStatus.NEEDS_CONFIRMATION,
                side_effects=[ConfirmationRequired(intent.confirm(), linked, message)],
                message=message,
            )

        document = remove_by_id(ctx.document, ids)
        return _applied(ctx, document, f"Deleted {len(ids)} block(s)")

    async def _change_block_type(self, intent: ChangeBlockType, ctx: _Context) -> ExecutionResult:
        if intent.new_type is BlockType.PAGE_LINK:
            return _no_op(ctx, "Blocks cannot be turned into page links; create a page instead")

        blocks = _text_targets(ctx, intent.target)
        if not blocks:
            return _no_op(ctx, f"No {intent.target.describe()} to change")

        def convert(block: Block) -> Block:
            props = {k: v for k, v in block.props.items() if k not in ("level", "checked")}
            for key, value in TEXT_BLOCK_DEFAULT_PROPS.items():
                props.setdefault(key, value)
            if intent.new_type is BlockType.HEADING:
                props["level"] = block.props.get("level", 1) if block.type is BlockType.HEADING else 1
            if intent.new_type is BlockType.TODO_LIST_ITEM:
                props["checked"] = block.props.get("checked", False)
            props.update(intent.props)
            return block.evolve(type=intent.new_type, props=props)

        document = update_by_id(ctx.document, [b.id for b in blocks], convert)
        return _applied(ctx, document, f"Changed {intent.target.describe()} to {intent.new_type.value}")

    async def _create_linked_page(self, intent: CreateLinkedPage, ctx: _Context) -> ExecutionResult:
        title = intent.title.strip() or self.default_page_title
        icon = intent.icon or self.default_page_icon

        if self.page_store is None or ctx.page_id is None:
            return self._fallback_paragraph(ctx, ctx.transcript or title, f"Could not create page '{title}'")

        try:
            page = await self.page_store.create_page(ctx.page_id, title, icon)
        except (PersistenceError, PageNotFoundError) as e:
            logger.error("linked_page_create_failed", page_id=ctx.page_id, title=title, error=str(e))
            result = self._fallback_paragraph(ctx, ctx.transcript or title, f"Could not create page '{title}'")
            result.error = e
            return result

        created = PageCreated(page)
        try:
            link = page_link(page.id, page.title, page.icon)
            document = append_blocks(ctx.document, [link])
        except StructuralViolationError as e:
            # The page exists but nothing links to it
            logger.error("linked_page_orphaned", page_id=ctx.page_id, child_page_id=page.id, error=str(e))
            return ExecutionResult(
                ctx.document,
                ExecutionStatus.NO_OP,
                side_effects=[created],
                message=f"Page '{page.title}' was created but could not be linked",
                error=OrphanedPageError(page, str(e)),
            )

        return ExecutionResult(
            document,
            ExecutionStatus.APPLIED,
            changed=True,
            side_effects=[created, SelectionChanged(Selection((link.id,)))],
            message=f"Created page '{page.title}'",
        )

    async def _delegate(self, intent: Union[Undo, Redo], ctx: _Context) -> ExecutionResult:
        return ExecutionResult(ctx.document, ExecutionStatus.DELEGATED, message=type(intent).__name__.lower())

    async def _unrecognized(self, intent: Unrecognized, ctx: _Context) -> ExecutionResult:
        text = (intent.raw_text or ctx.transcript).strip()
        if not text:
            return _no_op(ctx, "Nothing to insert")
        return self._fallback_paragraph(ctx, text, "Command not recognized; inserted as text")

    def _fallback_paragraph(self, ctx: _Context, text: str, message: str) -> ExecutionResult:
        block = paragraph(text)
        return ExecutionResult(
            append_blocks(ctx.document, [block]),
            ExecutionStatus.FALLBACK,
            changed=True,
            side_effects=[SelectionChanged(Selection((block.id,)))],
            message=message,
        )
