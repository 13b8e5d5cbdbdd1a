"""Convert validated NLU payloads into typed edit intents.

Providers answer with the loose ``RawIntentPayload`` grammar; this module
maps each action onto exactly one EditIntent. Anything that cannot be mapped
(no usable target, unknown style, empty find text) becomes ``Unrecognized``
so the caller can fall back to inserting the transcript as text.
"""

from typing import Any, Dict, List, Optional, Tuple

import structlog

from saynote.interpreter.patterns import parse_ordinal
from saynote.models.blocks import (
    DEFAULT_PAGE_ICON,
    Block,
    BlockType,
    InlineText,
    StyleName,
    TextStyles,
    paragraph,
    text_block,
)
from saynote.models.intent_payload import IntentAction, RawBlockPayload, RawIntentPayload
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
    SelectText,
    TextRange,
    Undo,
    Unrecognized,
)

logger = structlog.get_logger()

_FORMATTING_STYLES: Dict[str, Tuple[StyleName, Any]] = {
    "BOLD": (StyleName.BOLD, True),
    "ITALIC": (StyleName.ITALIC, True),
    "UNDERLINE": (StyleName.UNDERLINE, True),
    "STRIKE": (StyleName.STRIKE, True),
    "STRIKETHROUGH": (StyleName.STRIKE, True),
    "CODE": (StyleName.CODE, True),
    "UNBOLD": (StyleName.BOLD, False),
}

_LIST_TYPES = {
    "bullet": BlockType.BULLET_LIST_ITEM,
    "bulleted": BlockType.BULLET_LIST_ITEM,
    "numbered": BlockType.NUMBERED_LIST_ITEM,
    "ordered": BlockType.NUMBERED_LIST_ITEM,
    "todo": BlockType.TODO_LIST_ITEM,
    "to-do": BlockType.TODO_LIST_ITEM,
    "check": BlockType.TODO_LIST_ITEM,
    "checklist": BlockType.TODO_LIST_ITEM,
    "task": BlockType.TODO_LIST_ITEM,
}


def _block_type(name: Optional[str]) -> Optional[BlockType]:
    if not name:
        return None
    try:
        block_type = BlockType.parse(name)
    except ValueError:
        return None
    return None if block_type is BlockType.PAGE_LINK else block_type


def selector_from_payload(payload: RawIntentPayload) -> Optional[BlockSelector]:
    """Build a BlockSelector from the payload's target fields.

    Precedence: explicit ids, current selection, position, target text,
    then type only ("all headings").

    Returns:
        BlockSelector, or None if the payload names no target
    """
    block_type = _block_type(payload.target_block_type)

    if payload.target_block_ids:
        return BlockSelector.with_ids(*payload.target_block_ids)

    if payload.use_current_selection:
        return BlockSelector.current(block_type)

    position = (payload.target_position or "").strip().lower()
    if position:
        if position in ("all", "every", "each"):
            return BlockSelector.all(block_type)
        if position in ("last", "latest", "final", "end"):
            return BlockSelector.last(block_type)
        if position in ("first", "start", "beginning"):
            return BlockSelector.first(block_type)
        if position in ("current", "this", "selected"):
            return BlockSelector.current(block_type)
        ordinal = parse_ordinal(position)
        if ordinal is not None:
            return BlockSelector.nth(ordinal, block_type)

    if payload.target_text:
        return BlockSelector.containing(payload.target_text, block_type)

    if block_type is not None:
        return BlockSelector.all(block_type)

    return None


def range_from_payload(payload: RawIntentPayload) -> Optional[TextRange]:
    """Build a TextRange from ``selectionRange`` (None if absent or unusable)."""
    selection = payload.selection_range
    if selection is None:
        return None

    if selection.block_id:
        block = BlockSelector.with_ids(selection.block_id)
    else:
        anchor = selection.start_text or selection.end_text
        block = BlockSelector.containing(anchor) if anchor else selector_from_payload(payload)
    if block is None:
        return None

    if selection.start_text or selection.end_text:
        return TextRange(block, start_text=selection.start_text, end_text=selection.end_text)

    start = selection.start_offset or 0
    end = selection.end_offset
    if end is not None and end < start:
        return None
    return TextRange(block, start=start, end=end)


def blocks_from_payload(raw_blocks: List[RawBlockPayload]) -> Tuple[Block, ...]:
    """Build fresh blocks from provider suggestions.

    Unknown types and pageLink suggestions become paragraphs: links are only
    ever created through CreateLinkedPage, together with their page.
    """
    return tuple(_block_from_payload(raw) for raw in raw_blocks)


def _block_from_payload(raw: RawBlockPayload) -> Block:
    block_type = _block_type(raw.type) or BlockType.PARAGRAPH

    if isinstance(raw.content, str):
        runs: Tuple[InlineText, ...] = (InlineText(raw.content),) if raw.content else ()
    else:
        runs = tuple(
            InlineText(str(item.get("text", "")), TextStyles.from_dict(item.get("styles")))
            for item in raw.content
            if isinstance(item, dict) and item.get("text")
        )

    props = {key: value for key, value in raw.props.items() if not key.startswith("page")}
    if block_type is BlockType.HEADING:
        try:
            props["level"] = min(max(int(props.get("level", 1)), 1), 3)
        except (TypeError, ValueError):
            props["level"] = 1

    block = text_block(block_type, props=props, children=blocks_from_payload(raw.children))
    return block.evolve(content=runs)


def payload_to_intent(payload: RawIntentPayload, transcript: str) -> EditIntent:
    """Map a validated payload onto one EditIntent.

    Args:
        payload: Validated provider answer
        transcript: The original transcript (used for fallbacks)

    Returns:
        EditIntent (``Unrecognized`` when the payload is unusable)
    """
    handler = _HANDLERS.get(payload.action)
    if handler is None:
        return Unrecognized(transcript, reason=f"unsupported action {payload.action.value}")
    try:
        intent = handler(payload, transcript)
    except ValueError as e:
        logger.warning("nlu_payload_rejected", action=payload.action.value, error=str(e))
        return Unrecognized(transcript, reason=str(e))
    return intent


def _insert(payload: RawIntentPayload, transcript: str) -> EditIntent:
    if payload.blocks:
        return InsertContent(blocks_from_payload(payload.blocks))
    text = (payload.content or transcript).strip()
    return InsertContent((paragraph(text),))


def _delete(payload: RawIntentPayload, transcript: str) -> EditIntent:
    text_range = range_from_payload(payload)
    if text_range is not None:
        return DeleteRange(text_range)

    # Bare target text (no ids, type or position) means "delete these words"
    if payload.target_text and not (
        payload.target_block_ids or payload.target_block_type or payload.target_position
        or payload.use_current_selection
    ):
        return DeleteRange(find=payload.target_text)

    selector = selector_from_payload(payload)
    if selector is None:
        return Unrecognized(transcript, reason="delete without a target")
    return DeleteRange(selector)


def _create_page(payload: RawIntentPayload, transcript: str) -> EditIntent:
    return CreateLinkedPage(
        title=(payload.page_title or "").strip(),
        icon=payload.page_icon or DEFAULT_PAGE_ICON,
    )


def _style_and_value(payload: RawIntentPayload) -> Optional[Tuple[StyleName, Any]]:
    kind = (payload.formatting_type or "").strip().upper().replace(" ", "_")
    color = payload.text_color or payload.new_color
    if kind in _FORMATTING_STYLES:
        return _FORMATTING_STYLES[kind]
    if kind in ("TEXT_COLOR", "COLOR", "CHANGE_COLOR", "CHANGE_TEXT_COLOR") and color:
        return StyleName.TEXT_COLOR, color
    if kind in ("BACKGROUND_COLOR", "HIGHLIGHT"):
        return StyleName.BACKGROUND_COLOR, payload.background_color or color or "yellow"
    if not kind and color:
        return StyleName.TEXT_COLOR, color
    if not kind and payload.background_color:
        return StyleName.BACKGROUND_COLOR, payload.background_color
    return None


def _formatting(payload: RawIntentPayload, transcript: str) -> EditIntent:
    kind = (payload.formatting_type or "").strip().upper()
    if payload.action is IntentAction.REMOVE_FORMATTING or kind in ("REMOVE_FORMATTING", "CLEAR", "PLAIN"):
        return ClearFormatting(selector_from_payload(payload) or BlockSelector.current())

    style_value = _style_and_value(payload)
    if style_value is None:
        return Unrecognized(transcript, reason=f"unknown formatting {payload.formatting_type!r}")
    style, value = style_value

    text = payload.selection_range.start_text if payload.selection_range else None
    # targetText alone names the words to style, anywhere in the document
    if payload.target_text and not (
        payload.target_block_ids or payload.target_block_type or payload.target_position
        or payload.use_current_selection
    ):
        return ApplyFormatting(BlockSelector.all(nested=True), style, value, text=payload.target_text)

    selector = selector_from_payload(payload) or BlockSelector.current()
    return ApplyFormatting(selector, style, value, text=text)


def _select(payload: RawIntentPayload, transcript: str) -> EditIntent:
    selection_type = (payload.selection_type or "").upper()
    if selection_type == "ALL":
        return SelectText(BlockSelector.all(_block_type(payload.target_block_type), nested=True))

    text_range = range_from_payload(payload)
    if text_range is not None:
        return SelectText(text_range)

    if payload.target_text and selection_type in ("TEXT", "RANGE", ""):
        text = payload.target_text
        return SelectText(TextRange(BlockSelector.containing(text), start_text=text, end_text=text))

    selector = selector_from_payload(payload)
    if selector is None:
        return Unrecognized(transcript, reason="select without a target")
    return SelectText(selector)


def _replace(payload: RawIntentPayload, transcript: str) -> EditIntent:
    find = payload.find_text or ""
    if not find:
        return Unrecognized(transcript, reason="replace without find text")
    scope = None
    if payload.target_block_ids or payload.target_position or payload.use_current_selection or payload.target_block_type:
        scope = selector_from_payload(payload)
    return ReplaceText(find, payload.replace_with or "", scope)


def _modify(payload: RawIntentPayload, transcript: str) -> EditIntent:
    modification = (payload.modification_type or "").strip().upper()
    color = payload.text_color or payload.new_color
    selector = selector_from_payload(payload) or BlockSelector.current()

    if modification in ("CHANGE_COLOR", "CHANGE_TEXT_COLOR") or (color and not payload.new_type and not payload.list_type):
        if not color:
            return Unrecognized(transcript, reason="color change without a color")
        return ApplyFormatting(selector, StyleName.TEXT_COLOR, color)

    new_type = _block_type(payload.new_type)
    if payload.list_type and (new_type is None or modification == "CONVERT_TO_LIST"):
        new_type = _LIST_TYPES.get(payload.list_type.strip().lower(), new_type)

    props: Dict[str, Any] = {}
    if payload.heading_level is not None:
        new_type = new_type or BlockType.HEADING
        if new_type is BlockType.HEADING:
            props["level"] = payload.heading_level

    if new_type is None:
        return Unrecognized(transcript, reason="modify without a new type")
    return ChangeBlockType(selector, new_type, props)


def _append(payload: RawIntentPayload, transcript: str) -> EditIntent:
    text = (payload.content or "").strip()
    if not text:
        return Unrecognized(transcript, reason="append without text")
    selector = selector_from_payload(payload) or BlockSelector.current()
    return AppendText(selector, text, prepend=payload.action is IntentAction.PREPEND_TEXT)


def _undo(payload: RawIntentPayload, transcript: str) -> EditIntent:
    return Undo(payload.steps)


def _redo(payload: RawIntentPayload, transcript: str) -> EditIntent:
    return Redo(payload.steps)


def _clarification(payload: RawIntentPayload, transcript: str) -> EditIntent:
    return Unrecognized(transcript, reason=payload.message or "clarification requested")


_HANDLERS = {
    IntentAction.INSERT_CONTENT: _insert,
    IntentAction.DELETE_BLOCK: _delete,
    IntentAction.CREATE_PAGE: _create_page,
    IntentAction.APPLY_FORMATTING: _formatting,
    IntentAction.REMOVE_FORMATTING: _formatting,
    IntentAction.SELECT_TEXT: _select,
    IntentAction.REPLACE_TEXT: _replace,
    IntentAction.MODIFY_BLOCK: _modify,
    IntentAction.APPEND_TEXT: _append,
    IntentAction.PREPEND_TEXT: _append,
    IntentAction.UNDO: _undo,
    IntentAction.REDO: _redo,
    IntentAction.CLARIFICATION: _clarification,
}
