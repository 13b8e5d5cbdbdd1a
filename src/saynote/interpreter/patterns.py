"""Local grammar for common voice commands.

Most everyday commands ("undo", "make the last paragraph bold", "replace X
with Y") follow a handful of phrasings. Recognizing them with regular
expressions keeps them instant and deterministic; only phrasings this
grammar does not know are sent to the NLU provider.

Each rule returns an EditIntent or None. None means "this rule does not
apply" (the transcript may still match a later rule or the NLU provider);
rules never raise for odd input.
"""

import re
from typing import Callable, List, Match, Optional, Pattern, Tuple

import structlog

from saynote.models.blocks import BlockType, StyleName, todo_item, text_block
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
)

logger = structlog.get_logger()

NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "a": 1, "an": 1, "once": 1, "twice": 2,
}

ORDINAL_WORDS = {
    "first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5,
    "sixth": 6, "seventh": 7, "eighth": 8, "ninth": 9, "tenth": 10,
}

COLOR_NAMES = (
    "blue", "red", "green", "yellow", "purple", "black", "white", "gray", "grey",
    "orange", "pink", "brown", "cyan", "magenta", "teal", "lime", "violet",
    "indigo", "maroon", "navy", "olive", "silver", "gold", "default",
)

# Words that make a transcript worth treating as a command at all
COMMAND_WORDS = (
    "delete", "remove", "create", "make", "new page", "erase",
    "bold", "italic", "italicize", "underline", "formatting", "highlight",
    "select", "convert", "change", "turn", "undo", "redo", "go back",
    "replace", "substitute", "append", "prepend",
    "color", "colour",
    "heading", "paragraph", "list", "bullet", "numbered", "todo", "to-do",
    "checklist", "task", "quote", "code",
    "all", "every", "each",
) + COLOR_NAMES[:3]

_COMMAND_WORDS_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(word) for word in COMMAND_WORDS) + r")\b", re.IGNORECASE
)

# Nouns that mean "any block" rather than a specific type
_GENERIC_NOUNS = {"block", "blocks", "line", "lines", "item", "items", "one", "ones", "entry", "entries", "text", "thing"}

_CURRENT_WORDS = {"this", "it", "that", "here", "selection", "the selection", "current selection", "selected text"}

_QUOTES = "'\"‘’“”"


def looks_like_command(transcript: str) -> bool:
    """Whether the transcript contains any word that commands use.

    Transcripts without one ("buy milk tomorrow") are dictation and are
    inserted as text without consulting the NLU provider.
    """
    return bool(_COMMAND_WORDS_RE.search(transcript))


def parse_count(word: Optional[str]) -> Optional[int]:
    """Parse "3", "three", "twice" into an int; None if not a count."""
    if not word:
        return None
    word = word.strip().lower()
    if word.isdigit():
        return int(word)
    return NUMBER_WORDS.get(word)


def parse_ordinal(word: str) -> Optional[int]:
    """Parse "second", "2nd", "2" into a 1-based position; None otherwise."""
    word = word.strip().lower()
    if word in ORDINAL_WORDS:
        return ORDINAL_WORDS[word]
    match = re.fullmatch(r"(\d+)(?:st|nd|rd|th)?", word)
    if match and int(match.group(1)) > 0:
        return int(match.group(1))
    return None


def strip_quotes(text: str) -> str:
    return text.strip().strip(_QUOTES).strip()


def _clean(transcript: str) -> str:
    text = transcript.strip()
    text = re.sub(r"\s+", " ", text)
    text = text.rstrip(".!?")
    # Politeness and filler don't change the command
    text = re.sub(r"^(?:please|can you|could you|would you|now|okay|ok|hey)[, ]+", "", text, flags=re.IGNORECASE)
    text = re.sub(r"[, ]+please$", "", text, flags=re.IGNORECASE)
    return text.strip()


def parse_block_type(phrase: str) -> Optional[BlockType]:
    """Parse a spoken block noun ("paragraph", "bullet items", "headings").

    Returns:
        The BlockType, or None for generic nouns ("block", "line") and unknown phrases
    """
    phrase = phrase.strip().lower()
    if not phrase or phrase in _GENERIC_NOUNS:
        return None
    try:
        block_type = BlockType.parse(phrase)
    except ValueError:
        return None
    return None if block_type is BlockType.PAGE_LINK else block_type


def parse_target(phrase: str) -> Optional[BlockSelector]:
    """Parse a spoken block reference into a BlockSelector.

    Understands "the last paragraph", "the second heading", "all headings",
    "every bullet item", "this paragraph", "the heading that says X",
    "the paragraph about X", "'X'" and "everything".

    Returns:
        BlockSelector, or None if the phrase is not a block reference
    """
    phrase = phrase.strip().strip(",").strip()
    lowered = phrase.lower()
    if not lowered:
        return None

    if lowered in _CURRENT_WORDS:
        return BlockSelector.current()

    if lowered in ("everything", "all", "all text", "all of it", "the whole page", "the whole document", "all blocks"):
        return BlockSelector.all(nested=True)

    if lowered in ("the title", "title"):
        return BlockSelector.first(BlockType.HEADING)

    if phrase[0] in _QUOTES:
        text = strip_quotes(phrase)
        return BlockSelector.containing(text) if text else None

    # "the heading that says X", "the paragraph about X"
    match = re.fullmatch(
        r"(?:the |a )?(?:(?P<ordinal>\w+) )?(?P<noun>[\w\- ]+?) "
        r"(?:that says|which says|saying|containing|that contains|with the text|with|about|mentioning|that mentions) "
        r"(?P<text>.+)",
        phrase,
        re.IGNORECASE,
    )
    if match:
        noun = match.group("noun").lower()
        block_type = parse_block_type(noun)
        if block_type is not None or noun in _GENERIC_NOUNS:
            text = strip_quotes(match.group("text"))
            if text:
                return BlockSelector.containing(text, block_type)

    # "all headings", "every bullet item", "all the paragraphs"
    match = re.fullmatch(r"(?:all|every|each)(?: of)?(?: the)? (?P<noun>[\w\- ]+)", lowered)
    if match:
        noun = match.group("noun")
        nested = noun.startswith("nested ")
        noun = noun[len("nested "):] if nested else noun
        block_type = parse_block_type(noun)
        if block_type is not None or noun in _GENERIC_NOUNS:
            return BlockSelector.all(block_type, nested=nested)
        return None

    # "this paragraph", "the current heading", "the selected block"
    match = re.fullmatch(r"(?:this|these|the current|current|the selected|selected) (?P<noun>[\w\- ]+)", lowered)
    if match:
        noun = match.group("noun")
        block_type = parse_block_type(noun)
        if block_type is not None or noun in _GENERIC_NOUNS:
            return BlockSelector.current(block_type)
        return None

    # "the last paragraph", "the second heading", "the second to last block"
    match = re.fullmatch(
        r"(?:the )?(?P<ordinal>last|latest|final|first|\w+?)(?P<to_last>(?: to| from the)? last)? (?P<noun>[\w\- ]+)",
        lowered,
    )
    if match:
        noun = match.group("noun")
        block_type = parse_block_type(noun)
        ordinal = match.group("ordinal")
        if block_type is not None or noun in _GENERIC_NOUNS:
            if ordinal in ("last", "latest", "final"):
                return BlockSelector.last(block_type)
            position = parse_ordinal(ordinal)
            if position is not None:
                if match.group("to_last"):
                    return BlockSelector.nth(position, block_type, from_end=True)
                return BlockSelector.nth(position, block_type)

    # "the heading", "the paragraph": the one in focus, else the last one
    match = re.fullmatch(r"the (?P<noun>[\w\- ]+)", lowered)
    if match:
        block_type = parse_block_type(match.group("noun"))
        if block_type is not None or match.group("noun") in _GENERIC_NOUNS:
            return BlockSelector.current(block_type)

    return None


def parse_new_type(phrase: str) -> Optional[Tuple[BlockType, dict]]:
    """Parse a conversion target ("a quote", "heading 2", "h3", "a to-do list").

    Returns:
        Tuple of (block type, props), or None if the phrase names no block type
    """
    lowered = strip_quotes(phrase).lower()
    lowered = re.sub(r"^(?:an?|the) ", "", lowered)

    match = re.fullmatch(r"(?:heading|header|h)\s*(?:level\s*)?(?P<level>\w+)", lowered)
    if match:
        level = parse_count(match.group("level")) or parse_ordinal(match.group("level"))
        if level is not None:
            return BlockType.HEADING, {"level": min(max(level, 1), 3)}
    if lowered in ("subheading", "sub heading", "subtitle"):
        return BlockType.HEADING, {"level": 2}

    lowered = re.sub(r" (?:block|type|format)$", "", lowered)
    block_type = parse_block_type(lowered)
    if block_type is None:
        return None
    return block_type, {}


def _style_from_word(word: str) -> Optional[StyleName]:
    word = word.lower().replace("-", " ")
    mapping = {
        "bold": StyleName.BOLD,
        "italic": StyleName.ITALIC,
        "italics": StyleName.ITALIC,
        "italicize": StyleName.ITALIC,
        "italicise": StyleName.ITALIC,
        "underline": StyleName.UNDERLINE,
        "underlined": StyleName.UNDERLINE,
        "strikethrough": StyleName.STRIKE,
        "strike through": StyleName.STRIKE,
        "struck through": StyleName.STRIKE,
        "cross out": StyleName.STRIKE,
        "crossed out": StyleName.STRIKE,
    }
    return mapping.get(word)


def _text_reference(phrase: str) -> Optional[str]:
    """Extract X from "the text X", "the word X", "the words X" or a quoted 'X'."""
    match = re.fullmatch(
        r"(?:the )?(?:text|words?|phrase)(?: that says| saying)? (?P<text>.+)", phrase.strip(), re.IGNORECASE
    )
    if match:
        return strip_quotes(match.group("text")) or None
    if phrase.strip() and phrase.strip()[0] in _QUOTES:
        return strip_quotes(phrase) or None
    return None


def _format_intent(target_phrase: str, style: StyleName, value) -> Optional[EditIntent]:
    text = _text_reference(target_phrase)
    if text:
        return ApplyFormatting(BlockSelector.all(nested=True), style, value, text=text)
    selector = parse_target(target_phrase)
    if selector is None:
        return None
    return ApplyFormatting(selector, style, value)


# --- rule handlers ---------------------------------------------------------


def _undo_redo(m: Match) -> Optional[EditIntent]:
    rest = m.group("rest").strip().lower()
    steps = 1
    if rest:
        words = rest.split()
        filler = {"the", "last", "that", "it", "my", "previous", "change", "changes", "step", "steps",
                  "edit", "edits", "action", "actions", "time", "times"}
        counts = [parse_count(word) for word in words if word not in filler]
        if any(count is None for count in counts) or len(counts) > 1:
            return None
        if counts and counts[0] is not None:
            steps = counts[0]
    steps = max(steps, 1)
    return Undo(steps) if m.group("op").lower() == "undo" else Redo(steps)


def _go_back(m: Match) -> Optional[EditIntent]:
    steps = parse_count(m.group("count")) if m.group("count") else 1
    if steps is None:
        return None
    return Undo(steps) if m.group("dir").lower() == "back" else Redo(steps)


def _list_dictation(m: Match) -> Optional[EditIntent]:
    kind = m.group("kind").lower().replace("-", "").replace(" ", "")
    if kind in ("todo", "task", "check"):
        block_type = BlockType.TODO_LIST_ITEM
    elif kind in ("numbered", "ordered"):
        block_type = BlockType.NUMBERED_LIST_ITEM
    else:
        block_type = BlockType.BULLET_LIST_ITEM

    items_match = re.search(
        r"\b(?:with|of|containing|including)\s+(?:the\s+)?(?:(?:tasks?|items?|entries|things|steps)\s*:?\s+)?(?P<items>.+)$",
        m.group("rest"),
        re.IGNORECASE,
    )
    if not items_match:
        return None
    items = [strip_quotes(item) for item in re.split(r"\s*,\s*(?:and\s+)?|\s+and\s+", items_match.group("items"))]
    items = [item for item in items if item]
    if not items:
        return None

    if block_type is BlockType.TODO_LIST_ITEM:
        blocks = tuple(todo_item(item) for item in items)
    else:
        blocks = tuple(text_block(block_type, item) for item in items)
    return InsertContent(blocks)


def _create_page(m: Match) -> Optional[EditIntent]:
    # An empty title is filled in with the configured default by the executor
    return CreateLinkedPage(title=strip_quotes(m.group("title") or ""))


def _remove_formatting(m: Match) -> Optional[EditIntent]:
    selector = parse_target(m.group("target"))
    return ClearFormatting(selector) if selector else None


def _color(m: Match) -> Optional[EditIntent]:
    color = m.group("color").lower()
    if color not in COLOR_NAMES:
        return None
    return _format_intent(m.group("target"), StyleName.TEXT_COLOR, color)


def _highlight(m: Match) -> Optional[EditIntent]:
    color = (m.group("color") or "yellow").lower()
    if color not in COLOR_NAMES:
        return None
    return _format_intent(m.group("target"), StyleName.BACKGROUND_COLOR, color)


def _make_styled(m: Match) -> Optional[EditIntent]:
    style = _style_from_word(m.group("style"))
    return _format_intent(m.group("target"), style, True) if style else None


def _verb_styled(m: Match) -> Optional[EditIntent]:
    style = _style_from_word(m.group("verb"))
    return _format_intent(m.group("target"), style, True) if style else None


def _unstyle(m: Match) -> Optional[EditIntent]:
    style = _style_from_word(m.group("style"))
    return _format_intent(m.group("target"), style, False) if style else None


def _split_scope(phrase: str) -> Tuple[str, Optional[BlockSelector]]:
    """Split "Y in the last paragraph" into ("Y", selector)."""
    match = re.fullmatch(r"(?P<text>.+?) (?:in|within|inside) (?P<scope>(?:the|this|all|every|each) .+)", phrase, re.IGNORECASE)
    if match:
        selector = parse_target(match.group("scope"))
        if selector is not None:
            return match.group("text"), selector
    return phrase, None


def _replace(m: Match) -> Optional[EditIntent]:
    replacement, scope = _split_scope(m.group("repl"))
    find = strip_quotes(m.group("find"))
    if not find:
        return None
    return ReplaceText(find, strip_quotes(replacement), scope)


def _convert(m: Match) -> Optional[EditIntent]:
    target_phrase = m.group("target")
    new_type = parse_new_type(m.group("type"))
    selector = parse_target(target_phrase)
    if selector is not None and new_type is None:
        color = strip_quotes(m.group("type")).lower()
        if color in COLOR_NAMES:
            return ApplyFormatting(selector, StyleName.TEXT_COLOR, color)
        return None
    if new_type is None or selector is None:
        # "change X to Y" with no block type in sight is a text replacement
        if m.group("verb").lower() == "change" and new_type is None:
            find = strip_quotes(target_phrase)
            if find:
                return ReplaceText(find, strip_quotes(m.group("type")))
        return None
    block_type, props = new_type
    return ChangeBlockType(selector, block_type, props)


def _select_all(m: Match) -> Optional[EditIntent]:
    return SelectText(BlockSelector.all(nested=True))


def _range_endpoints(start_phrase: str, end_phrase: str, inclusive: bool) -> Optional[TextRange]:
    start_text = strip_quotes(start_phrase)
    end_text = strip_quotes(end_phrase)
    if start_text.lower() in ("the beginning", "the start", "beginning", "start"):
        start_text = ""
    if end_text.lower() in ("the end", "end"):
        end_text = ""
    anchor = start_text or end_text
    if not anchor:
        return None
    return TextRange(
        BlockSelector.containing(anchor),
        start_text=start_text or None,
        end_text=end_text or None,
        inclusive=inclusive,
    )


def _select_range(m: Match) -> Optional[EditIntent]:
    text_range = _range_endpoints(m.group("a"), m.group("b"), inclusive=m.group("how").lower() != "between")
    return SelectText(text_range) if text_range else None


def _select_text(m: Match) -> Optional[EditIntent]:
    text = strip_quotes(m.group("text"))
    if not text:
        return None
    return SelectText(TextRange(BlockSelector.containing(text), start_text=text, end_text=text))


def _select_target(m: Match) -> Optional[EditIntent]:
    selector = parse_target(m.group("target"))
    return SelectText(selector) if selector else None


def _delete_after(m: Match) -> Optional[EditIntent]:
    anchor = strip_quotes(m.group("a"))
    if not anchor:
        return None
    return DeleteRange(TextRange(BlockSelector.containing(anchor), start_text=anchor, inclusive=False))


def _delete_range(m: Match) -> Optional[EditIntent]:
    text_range = _range_endpoints(m.group("a"), m.group("b"), inclusive=m.group("how").lower() != "between")
    return DeleteRange(text_range) if text_range else None


def _delete_text(m: Match) -> Optional[EditIntent]:
    text = strip_quotes(m.group("text"))
    return DeleteRange(find=text) if text else None


def _delete_target(m: Match) -> Optional[EditIntent]:
    phrase = m.group("target")
    if phrase.strip()[:1] in _QUOTES:
        text = strip_quotes(phrase)
        return DeleteRange(find=text) if text else None
    selector = parse_target(phrase)
    return DeleteRange(selector) if selector else None


def _append(m: Match) -> Optional[EditIntent]:
    selector = parse_target(m.group("target"))
    text = strip_quotes(m.group("text"))
    if selector is None or not text:
        return None
    prepend = m.group("where").lower() in ("beginning", "start", "front")
    return AppendText(selector, text, prepend=prepend)


def _append_verb(m: Match) -> Optional[EditIntent]:
    selector = parse_target(m.group("target"))
    text = strip_quotes(m.group("text"))
    if selector is None or not text:
        return None
    return AppendText(selector, text, prepend=m.group("verb").lower() == "prepend")


_STYLE_ADJECTIVES = r"bold|italic|italics|underlined|strikethrough|struck through|crossed out"
_STYLE_VERBS = r"bold|italicize|italicise|underline|strike through|strikethrough|cross out"
_STYLE_NOUNS = r"bold|italics?|underline|underlining|strikethrough"

Rule = Tuple[Pattern, Callable[[Match], Optional[EditIntent]]]


def _rule(pattern: str, handler: Callable[[Match], Optional[EditIntent]]) -> Rule:
    return re.compile(pattern, re.IGNORECASE), handler


# Order matters: more specific phrasings first.
RULES: List[Rule] = [
    _rule(r"^(?P<op>undo|redo)\b(?P<rest>.*)$", _undo_redo),
    _rule(r"^go (?P<dir>back|forward)(?: (?P<count>\w+))?(?: steps?| changes?| times?)?$", _go_back),
    _rule(
        r"^(?:make|create|start|add|write)(?: me)?(?: an?| the| my)? "
        r"(?P<kind>to-?do|to do|task|check|bullet(?:ed)?|numbered|ordered|shopping)[ -]?list\b(?P<rest>.*)$",
        _list_dictation,
    ),
    _rule(
        r"^(?:create|make|add|start|open)(?: an?)?(?: new)? (?:sub-?)?page"
        r"(?:(?: called| named| titled| for| about)? (?P<title>.+))?$",
        _create_page,
    ),
    _rule(r"^new (?:sub-?)?page(?:(?: called| named| titled)? (?P<title>.+))?$", _create_page),
    _rule(
        r"^(?:remove|clear|strip)(?: all)?(?: the)? (?:formatting|styles?|styling) (?:from|of|on) (?P<target>.+)$",
        _remove_formatting,
    ),
    _rule(r"^make (?P<target>.+?) plain(?: text)?$", _remove_formatting),
    _rule(r"^(?:change|set|make|turn)(?: the)? colou?r of (?P<target>.+?) (?:to|into) (?P<color>\w+)$", _color),
    _rule(r"^(?:change|set) (?P<target>.+?) colou?r (?:to|into) (?P<color>\w+)$", _color),
    _rule(r"^(?:make|turn|colou?r) (?P<target>.+?)(?: colou?r)? (?P<color>\w+)$", _color),
    _rule(r"^highlight (?P<target>.+?)(?: in (?P<color>\w+))?$", _highlight),
    _rule(r"^(?:make|set|turn) (?P<target>.+?) (?P<style>" + _STYLE_ADJECTIVES + r")$", _make_styled),
    _rule(r"^apply (?P<verb>" + _STYLE_NOUNS + r") (?:formatting )?to (?P<target>.+)$", _verb_styled),
    _rule(r"^(?:remove|take off|take away)(?: the)? (?P<style>" + _STYLE_NOUNS + r") (?:from|on) (?P<target>.+)$", _unstyle),
    _rule(r"^(?P<verb>" + _STYLE_VERBS + r") (?P<target>.+)$", _verb_styled),
    _rule(r"^(?:replace|substitute) (?P<find>.+?) (?:with|by) (?P<repl>.+)$", _replace),
    _rule(r"^swap (?P<find>.+?) for (?P<repl>.+)$", _replace),
    _rule(r"^change(?: the)? (?:text|word|words|phrase) (?P<find>.+?) to (?P<repl>.+)$", _replace),
    _rule(
        r"^(?P<verb>add|append|prepend) (?P<text>.+?) to the (?P<where>end|ending|beginning|start|front) of (?P<target>.+)$",
        _append,
    ),
    _rule(r"^(?P<verb>append|prepend) (?P<text>.+?) to (?P<target>.+)$", _append_verb),
    _rule(r"^(?P<verb>convert|change|turn|transform) (?P<target>.+?) (?:to|into) (?P<type>.+)$", _convert),
    _rule(r"^(?P<verb>make) (?P<target>.+?) (?:into )?(?P<type>(?:an? |the )?(?:heading|header|h) ?\w+|an? .+)$", _convert),
    _rule(r"^select (?:all|everything)(?: text)?$", _select_all),
    _rule(r"^select(?: the)?(?: text)? (?P<how>from|between) (?P<a>.+?) (?:to|and|until|through) (?P<b>.+)$", _select_range),
    _rule(r"^select(?: the)? (?:text|words?|phrase)(?: that says| saying)? (?P<text>.+)$", _select_text),
    _rule(r"^(?:select|focus(?: on)?|go to) (?P<target>.+)$", _select_target),
    _rule(r"^(?:delete|remove|erase|clear) everything after (?P<a>.+)$", _delete_after),
    _rule(
        r"^(?:delete|remove|erase)(?: the)?(?: text)? (?P<how>from|between) (?P<a>.+?) (?:to|and|until|through) (?P<b>.+)$",
        _delete_range,
    ),
    _rule(r"^(?:delete|remove|erase)(?: the)? (?:text|words?|phrase)(?: that says| saying)? (?P<text>.+)$", _delete_text),
    _rule(r"^(?:delete|remove|erase) (?P<target>.+)$", _delete_target),
]


def match_command(transcript: str) -> Optional[EditIntent]:
    """Try the local grammar on a transcript.

    Args:
        transcript: Raw transcript text

    Returns:
        The recognized EditIntent, or None if no rule applies
    """
    text = _clean(transcript)
    if not text:
        return None

    for pattern, handler in RULES:
        match = pattern.match(text)
        if not match:
            continue
        intent = handler(match)
        if intent is not None:
            logger.debug("local_grammar_matched", pattern=pattern.pattern, intent=type(intent).__name__)
            return intent
    return None
