"""JSON serialization for documents and pages.

A Document serializes to a JSON array of block objects::

    [
      {
        "id": "f47ac10b-...",
        "type": "heading",
        "props": {"textColor": "default", "backgroundColor": "default",
                  "textAlignment": "left", "level": 1},
        "content": [{"type": "text", "text": "Groceries", "styles": {"bold": true}}],
        "children": []
      }
    ]

This is the sync format shared with the backend, so round-trips must be
exact: ``deserialize_document(serialize_document(doc)) == doc`` including ids
and ordering.

Two loaders exist:
- ``deserialize_document`` is strict and raises ``DocumentFormatError``.
- ``sanitize_document`` repairs whatever the store hands back (missing ids,
  missing props, pageLinks with stray content) and never raises.
"""

import json
from typing import Any, Dict, List, Optional, Union

import structlog

from saynote.document.operations import ensure_unique_ids
from saynote.models.blocks import (
    DEFAULT_PAGE_ICON,
    DEFAULT_PAGE_TITLE,
    TEXT_BLOCK_DEFAULT_PROPS,
    Block,
    BlockType,
    Document,
    InlineText,
    TextStyles,
    default_document,
)
from saynote.models.page import Page
from saynote.services.exceptions import DocumentFormatError, StructuralViolationError
from saynote.utils.ids import generate_deterministic_id

logger = structlog.get_logger()


def block_to_dict(block: Block) -> Dict[str, Any]:
    """Serialize one block (recursively) to a JSON-compatible dict."""
    return {
        "id": block.id,
        "type": block.type.value,
        "props": dict(block.props),
        "content": [
            {"type": "text", "text": run.text, "styles": run.styles.to_dict()}
            for run in block.content
        ],
        "children": [block_to_dict(child) for child in block.children],
    }


def block_from_dict(data: Dict[str, Any]) -> Block:
    """Strictly deserialize one block.

    Raises:
        DocumentFormatError: If required fields are missing or malformed
    """
    if not isinstance(data, dict):
        raise DocumentFormatError(f"Block must be an object, got {type(data).__name__}")

    for key in ("id", "type"):
        if key not in data:
            raise DocumentFormatError(f"Block is missing required field '{key}'")

    content = data.get("content") or []
    children = data.get("children") or []
    props = data.get("props") or {}
    if not isinstance(content, list) or not isinstance(children, list) or not isinstance(props, dict):
        raise DocumentFormatError(f"Block {data['id']} has malformed content, children or props")

    try:
        block_type = BlockType.parse(data["type"])
        runs = tuple(_run_from_dict(item) for item in content)
        return Block(
            id=data["id"],
            type=block_type,
            props=props,
            content=runs,
            children=tuple(block_from_dict(child) for child in children),
        )
    except (ValueError, StructuralViolationError) as e:
        if isinstance(e, DocumentFormatError):
            raise
        raise DocumentFormatError(f"Invalid block {data.get('id')!r}: {e}") from e


def _run_from_dict(item: Any) -> InlineText:
    if not isinstance(item, dict) or not isinstance(item.get("text"), str):
        raise DocumentFormatError(f"Inline content item must have a string 'text': {item!r}")
    return InlineText(item["text"], TextStyles.from_dict(item.get("styles")))


def document_to_list(document: Document) -> List[Dict[str, Any]]:
    return [block_to_dict(block) for block in document]


def document_from_list(data: List[Any]) -> Document:
    """Strictly deserialize a list of block dicts.

    Raises:
        DocumentFormatError: If the data is malformed or ids repeat
    """
    if not isinstance(data, list):
        raise DocumentFormatError(f"Document must be a JSON array, got {type(data).__name__}")
    document = tuple(block_from_dict(item) for item in data)
    try:
        ensure_unique_ids(document)
    except StructuralViolationError as e:
        raise DocumentFormatError(str(e)) from e
    return document


def serialize_document(document: Document) -> str:
    """Serialize a document to its JSON wire form."""
    return json.dumps(document_to_list(document), ensure_ascii=False)


def deserialize_document(payload: Union[str, bytes, List[Any]]) -> Document:
    """Parse a document from JSON text (or an already-decoded list).

    Raises:
        DocumentFormatError: If the payload is not valid document JSON
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise DocumentFormatError(f"Document is not valid JSON: {e}") from e
    return document_from_list(payload)


def sanitize_document(raw: Any, title: str = DEFAULT_PAGE_TITLE) -> Document:
    """Leniently load persisted content, repairing what can be repaired.

    - Empty, missing or non-list content becomes the default skeleton
      (heading with ``title`` plus an empty paragraph).
    - Non-object entries become empty paragraphs; unknown types become paragraphs.
    - Missing ids are filled with ids derived from the block's position, so
      sanitizing the same payload twice yields the same ids. Duplicate ids
      are replaced the same way.
    - Text blocks get default ``textColor``/``backgroundColor``/``textAlignment``
      props; heading levels are clamped to 1-3.
    - pageLink blocks lose any content and children and get default
      ``pageTitle``/``pageIcon``; a pageLink without a ``pageId`` cannot point
      anywhere and becomes a paragraph carrying its title.

    Args:
        raw: Decoded JSON (list), JSON text, or None
        title: Title for the default heading

    Returns:
        A valid Document
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw) if raw else None
        except json.JSONDecodeError:
            logger.warning("document_sanitize_invalid_json", title=title)
            raw = None

    if not isinstance(raw, list) or not raw:
        return default_document(title)

    seen: set = set()
    return tuple(_sanitize_block(item, f"{index}", seen) for index, item in enumerate(raw))


def _sanitize_block(data: Any, path: str, seen: set) -> Block:
    if not isinstance(data, dict):
        data = {}

    block_id = data.get("id")
    if not isinstance(block_id, str) or not block_id or block_id in seen:
        block_id = generate_deterministic_id(f"{path}:{json.dumps(data, sort_keys=True, default=str)}")
        while block_id in seen:
            block_id = generate_deterministic_id(block_id)
    seen.add(block_id)

    try:
        block_type = BlockType.parse(data.get("type") or "paragraph")
    except ValueError:
        block_type = BlockType.PARAGRAPH

    props = data.get("props") if isinstance(data.get("props"), dict) else {}
    props = dict(props)

    if block_type is BlockType.PAGE_LINK:
        if props.get("pageId"):
            props.setdefault("pageTitle", DEFAULT_PAGE_TITLE)
            props["pageTitle"] = props["pageTitle"] or DEFAULT_PAGE_TITLE
            props["pageIcon"] = props.get("pageIcon") or DEFAULT_PAGE_ICON
            return Block(id=block_id, type=block_type, props=props)
        # A link to nowhere keeps its title as text
        block_type = BlockType.PARAGRAPH
        title = props.get("pageTitle") or ""
        props = {}
        data = {"content": [{"type": "text", "text": title, "styles": {}}] if title else []}

    for key, value in TEXT_BLOCK_DEFAULT_PROPS.items():
        if not props.get(key):
            props[key] = value
    if block_type is BlockType.HEADING:
        level = props.get("level", 1)
        try:
            level = int(level)
        except (TypeError, ValueError):
            level = 1
        props["level"] = min(max(level, 1), 3)

    runs = []
    content = data.get("content")
    if isinstance(content, str):
        content = [{"type": "text", "text": content, "styles": {}}]
    for item in content if isinstance(content, list) else []:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        if not isinstance(text, str):
            text = "" if text is None else str(text)
        styles = item.get("styles") if isinstance(item.get("styles"), dict) else {}
        runs.append(InlineText(text, TextStyles.from_dict(styles)))

    children_data = data.get("children") if isinstance(data.get("children"), list) else []
    children = tuple(
        _sanitize_block(child, f"{path}.{index}", seen) for index, child in enumerate(children_data)
    )

    return Block(id=block_id, type=block_type, props=props, content=tuple(runs), children=children)


def page_to_dict(page: Page) -> Dict[str, Any]:
    """Serialize a page for the file-backed page store."""
    return {
        "id": page.id,
        "title": page.title,
        "icon": page.icon,
        "parentId": page.parent_id,
        "content": document_to_list(page.content),
        "createdAt": page.created_at,
        "updatedAt": page.updated_at,
    }


def page_from_dict(data: Dict[str, Any]) -> Page:
    """Deserialize a page; content goes through the lenient sanitizer.

    Raises:
        DocumentFormatError: If the page record lacks an id
    """
    if not isinstance(data, dict) or not data.get("id"):
        raise DocumentFormatError(f"Page record must have an id: {data!r}")
    title = data.get("title") or DEFAULT_PAGE_TITLE
    created = float(data.get("createdAt") or 0.0)
    return Page(
        id=data["id"],
        title=title,
        icon=data.get("icon") or DEFAULT_PAGE_ICON,
        parent_id=data.get("parentId"),
        content=sanitize_document(data.get("content"), title),
        created_at=created,
        updated_at=float(data.get("updatedAt") or created),
    )


def history_to_json(documents: List[Document]) -> str:
    """Serialize a history stack (bottom first) as a JSON array of documents."""
    return json.dumps([document_to_list(document) for document in documents], ensure_ascii=False)


def history_from_json(payload: Optional[str]) -> List[Document]:
    """Parse a persisted history stack; malformed entries are dropped.

    Returns:
        Documents bottom first (empty list for None/invalid payloads)
    """
    if not payload:
        return []
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("history_payload_invalid_json")
        return []
    if not isinstance(data, list):
        return []

    documents = []
    for entry in data:
        try:
            documents.append(document_from_list(entry))
        except DocumentFormatError as e:
            logger.warning("history_entry_dropped", error=str(e))
    return documents
