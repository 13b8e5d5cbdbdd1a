"""Editing helpers for a block's inline text runs.

Offsets are character positions in the block's concatenated text
(``Block.text``). Matching is case-insensitive throughout because transcripts
rarely carry the document's capitalization.
"""

from typing import List, Optional, Sequence, Tuple, Union

from saynote.models.blocks import InlineText, StyleName, TextStyles

Runs = Tuple[InlineText, ...]


def find_all(haystack: str, needle: str) -> List[int]:
    """Start offsets of every non-overlapping, case-insensitive match.

    Args:
        haystack: Text to search
        needle: Text to find (empty needle matches nothing)

    Returns:
        Match offsets in ascending order
    """
    if not needle:
        return []
    lowered = haystack.lower()
    target = needle.lower()
    positions = []
    start = lowered.find(target)
    while start != -1:
        positions.append(start)
        start = lowered.find(target, start + len(target))
    return positions


def merge_runs(content: Sequence[InlineText]) -> Runs:
    """Drop empty runs and merge neighbours that share identical styles."""
    merged: List[InlineText] = []
    for run in content:
        if not run.text:
            continue
        if merged and merged[-1].styles == run.styles:
            merged[-1] = InlineText(merged[-1].text + run.text, run.styles)
        else:
            merged.append(run)
    return tuple(merged)


def split_runs(content: Sequence[InlineText], start: int, end: int) -> Tuple[Runs, Runs, Runs]:
    """Split runs into the parts before, inside and after ``[start, end)``.

    Runs straddling a boundary are cut in two; each piece keeps its styles.
    """
    before: List[InlineText] = []
    middle: List[InlineText] = []
    after: List[InlineText] = []
    position = 0
    for run in content:
        run_start, run_end = position, position + len(run.text)
        position = run_end

        head = run.text[: max(0, min(start, run_end) - run_start)]
        body = run.text[max(0, start - run_start): max(0, min(end, run_end) - run_start)]
        tail = run.text[max(0, end - run_start):] if end < run_end else ""

        if head:
            before.append(InlineText(head, run.styles))
        if body:
            middle.append(InlineText(body, run.styles))
        if tail:
            after.append(InlineText(tail, run.styles))
    return tuple(before), tuple(middle), tuple(after)


def delete_span(content: Sequence[InlineText], start: int, end: Optional[int] = None) -> Runs:
    """Remove the characters in ``[start, end)`` (``end=None`` means to the end)."""
    total = sum(len(run.text) for run in content)
    end = total if end is None else min(end, total)
    start = max(0, min(start, total))
    if start >= end:
        return tuple(content)
    before, _, after = split_runs(content, start, end)
    return merge_runs(before + after)


def style_span(
    content: Sequence[InlineText],
    style: StyleName,
    value: Union[bool, str, None],
    start: int = 0,
    end: Optional[int] = None,
) -> Runs:
    """Set one style on the characters in ``[start, end)``."""
    total = sum(len(run.text) for run in content)
    end = total if end is None else min(end, total)
    if start >= end:
        return tuple(content)
    before, middle, after = split_runs(content, start, end)
    styled = tuple(InlineText(run.text, run.styles.with_style(style, value)) for run in middle)
    return merge_runs(before + styled + after)


def style_all(content: Sequence[InlineText], style: StyleName, value: Union[bool, str, None]) -> Runs:
    """Set one style on every run, keeping run boundaries."""
    return tuple(InlineText(run.text, run.styles.with_style(style, value)) for run in content)


def style_matches(
    content: Sequence[InlineText], needle: str, style: StyleName, value: Union[bool, str, None]
) -> Tuple[Runs, int]:
    """Set one style on every occurrence of ``needle`` in the block text.

    Returns:
        Tuple of (new runs, number of occurrences styled)
    """
    text = "".join(run.text for run in content)
    positions = find_all(text, needle)
    runs: Runs = tuple(content)
    # Last match first keeps earlier offsets valid
    for position in reversed(positions):
        runs = style_span(runs, style, value, position, position + len(needle))
    return runs, len(positions)


def clear_styles(content: Sequence[InlineText]) -> Runs:
    """Remove every style from every run."""
    return merge_runs(InlineText(run.text, TextStyles()) for run in content)


def replace_in_runs(content: Sequence[InlineText], find: str, replacement: str) -> Tuple[Runs, int]:
    """Replace every case-insensitive occurrence of ``find`` in the block text.

    Matches are found in the joined text, so a phrase spanning differently
    styled runs is replaced too. Replacements go last-match-first so earlier
    offsets stay valid. The replacement takes the styles of the first run it
    replaces.

    Returns:
        Tuple of (new runs, number of replacements)
    """
    text = "".join(run.text for run in content)
    positions = find_all(text, find)
    if not positions:
        return tuple(content), 0

    runs: Runs = tuple(content)
    for position in reversed(positions):
        before, middle, after = split_runs(runs, position, position + len(find))
        styles = middle[0].styles if middle else TextStyles()
        runs = before + (InlineText(replacement, styles),) + after
    return merge_runs(runs), len(positions)


def delete_matches(content: Sequence[InlineText], find: str) -> Tuple[Runs, int]:
    """Delete every case-insensitive occurrence of ``find`` in the block text.

    Like ``replace_in_runs`` this matches across run boundaries. One space
    next to each deleted occurrence goes with it, so "buy the milk" minus
    "the" reads "buy milk" rather than "buy  milk".

    Returns:
        Tuple of (new runs, number of deletions)
    """
    positions = find_all("".join(run.text for run in content), find)
    if not positions:
        return tuple(content), 0

    runs: Runs = tuple(content)
    for position in reversed(positions):
        text = "".join(run.text for run in runs)
        start, end = position, position + len(find)
        if end < len(text) and text[end] == " " and (start == 0 or text[start - 1] == " "):
            end += 1
        elif start > 0 and text[start - 1] == " " and end == len(text):
            start -= 1
        runs = delete_span(runs, start, end)
    return merge_runs(runs), len(positions)


def append_text(content: Sequence[InlineText], text: str, prepend: bool = False) -> Runs:
    """Add text at the end (or start) of a block, separated by a space when needed.

    The new text inherits the styles of the run it touches.
    """
    if not text:
        return tuple(content)
    if not content:
        return (InlineText(text),)

    runs = list(content)
    if prepend:
        first = runs[0]
        joiner = "" if text.endswith(" ") or first.text.startswith(" ") else " "
        runs[0] = InlineText(text + joiner + first.text, first.styles)
    else:
        last = runs[-1]
        joiner = "" if text.startswith(" ") or last.text.endswith(" ") else " "
        runs[-1] = InlineText(last.text + joiner + text, last.styles)
    return tuple(runs)
