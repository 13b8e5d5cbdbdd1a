"""Prompt templates for NLU intent providers.

The interpreter itself is prompt-independent: it validates whatever the
provider returns against ``RawIntentPayload``. These templates are what the
bundled LLM provider sends.
"""

import json
from textwrap import dedent
from typing import Any, Dict, List

from saynote.document.operations import walk
from saynote.models.blocks import Document


SYSTEM_PROMPT = dedent("""
    You parse voice commands for a block-based note editor.

    You will receive a voice command (in <command> tags) and the current
    document (in <document> tags) as a JSON list of blocks. Each block has an
    "id", "type", "depth" (0 = top level) and "text"; pageLink blocks carry
    "pageTitle" instead of text.

    Return ONE JSON object with an "action" field and the fields that action needs:

    - INSERT_CONTENT: "content" (plain text) or "blocks" (list of
      {"type", "content", "props"}) for new content.
    - DELETE_BLOCK: a target (see TARGETS) for whole blocks, or "targetText"
      alone to delete just those words.
    - CREATE_PAGE: "pageTitle" and optionally "pageIcon" (one emoji).
    - APPLY_FORMATTING: "formattingType" (BOLD, ITALIC, UNDERLINE, STRIKE,
      CODE, TEXT_COLOR, BACKGROUND_COLOR or REMOVE_FORMATTING), a target, and
      "textColor"/"backgroundColor" for colors. "targetText" alone styles
      only those words.
    - SELECT_TEXT: "selectionType" (BLOCK, TEXT, RANGE, ALL) with a target,
      "targetText", or "selectionRange" {"startText", "endText"}.
    - REPLACE_TEXT: "findText", "replaceWith", optionally a target to limit scope.
    - MODIFY_BLOCK: a target plus "newType" (paragraph, heading,
      bulletListItem, numberedListItem, checkListItem, quote, code),
      "headingLevel" (1-3) for headings, or "textColor" for color changes.
    - APPEND_TEXT / PREPEND_TEXT: "content" and a target.
    - UNDO / REDO: "steps" (default 1).
    - CLARIFICATION: "message" when the command is unclear.

    TARGETS (use the most specific that applies):
    - "targetBlockIds": ids copied from the document
    - "useCurrentSelection": true for "this", "this paragraph", "the selected block"
    - "targetPosition": "first", "last", "all" or a number, with
      "targetBlockType" for "the last heading", "all paragraphs"
    - "targetText": text the target block contains

    Block types: "to-do list", "task list" and "checklist" mean checkListItem;
    "bullet list" means bulletListItem; "numbered list" means numberedListItem.

    Return only the JSON object with no preamble or explanation.
""").strip()


def render_document(document: Document, max_text: int = 200) -> List[Dict[str, Any]]:
    """Flatten a document into the compact form shown to the provider.

    Args:
        document: Document to render
        max_text: Truncate block text beyond this many characters

    Returns:
        List of block summaries in document order
    """
    rendered = []
    for index, (block, parents) in enumerate(walk(document)):
        entry: Dict[str, Any] = {
            "index": index,
            "id": block.id,
            "type": block.type.value,
            "depth": len(parents),
        }
        if block.is_page_link:
            entry["pageTitle"] = block.props.get("pageTitle", "")
        else:
            text = block.text
            entry["text"] = text if len(text) <= max_text else text[:max_text] + "..."
        if block.type.value == "heading":
            entry["level"] = block.props.get("level", 1)
        rendered.append(entry)
    return rendered


def build_intent_messages(transcript: str, document: Document) -> List[dict]:
    """Build chat messages for one interpretation request.

    Args:
        transcript: The voice command
        document: Current document snapshot

    Returns:
        List of message dicts for chat completion API
    """
    user_prompt = (
        f"<command>\n{transcript}\n</command>\n\n"
        f"<document>\n{json.dumps(render_document(document), ensure_ascii=False)}\n</document>"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]
