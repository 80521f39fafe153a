"""
Tight-list rewriter — single forward pass over classified lines.

Separator rules:
  - Blank lines are held until the next non-blank line decides their fate.
  - Inside a list block held blanks are dropped, so sibling items become tight.
  - Adjacent top-level items of different marker classes (-, *, +, ordered)
    keep exactly one blank line between them.
  - Nested items get one separator when the ordered/unordered category flips
    within a sub-list; the first item of a sub-list never does.
  - Prose next to a list block is separated from it by exactly one blank line.
  - Metadata (front matter) is passed through untouched.

The pass never fails and is idempotent: rewrite(rewrite(x)) == rewrite(x).
"""

from __future__ import annotations

from typing import Iterable

from tightlists.engine.lines import (
    Content, LineClassification, LineKind, RewriteState, classify,
)


def _needs_separator(item: LineClassification, state: RewriteState) -> bool:
    """Whether a blank line must precede an item that continues a list block."""
    if item.indent == 0:
        return state.top_marker is not None and item.marker is not state.top_marker
    ordered = item.marker.is_ordered
    return state.nested_ordered is not None and ordered != state.nested_ordered


_SEPARATOR = None


def _boundary(held: list[int]) -> list[int | None]:
    """Exactly one blank line, reusing the first held one when there is one."""
    return held[:1] or [_SEPARATOR]


def _plan(lines: list[str]) -> list[int | None]:
    """Output layout as input line indexes; None marks an inserted separator."""
    state = RewriteState()
    out: list[int | None] = []
    held: list[int] = []

    for index, line in enumerate(lines):
        cls = classify(line, state)
        kind = cls.kind

        if kind is LineKind.METADATA_DELIMITER:
            if state.in_metadata:
                state.in_metadata = False
                state.metadata_closed = True
            else:
                state.in_metadata = True
            state.last_content = Content.METADATA
            out.append(index)

        elif kind is LineKind.METADATA_CONTENT:
            out.append(index)

        elif kind is LineKind.BLANK:
            held.append(index)

        elif kind is LineKind.LIST_ITEM:
            if state.in_list:
                if _needs_separator(cls, state):
                    out.append(_SEPARATOR)
            else:
                # New block: one boundary line after prose, verbatim otherwise
                if state.last_content is Content.PROSE:
                    out.extend(_boundary(held))
                else:
                    out.extend(held)
                state.top_marker = None
                state.nested_ordered = None
            held = []

            if cls.indent == 0:
                state.top_marker = cls.marker
                state.nested_ordered = None
            else:
                state.nested_ordered = cls.marker.is_ordered
            state.in_list = True
            state.last_content = Content.LIST
            out.append(index)

        else:
            if state.in_list:
                out.extend(_boundary(held))
                state.in_list = False
            else:
                out.extend(held)
            held = []
            state.last_content = Content.PROSE
            out.append(index)

        state.line_no += 1

    out.extend(held)
    return out


def rewrite(lines: Iterable[str]) -> list[str]:
    """Rewrite a sequence of lines (without terminators) into tight-list form."""
    lines = list(lines)
    return ["" if i is _SEPARATOR else lines[i] for i in _plan(lines)]


def split_lines(text: str) -> tuple[list[str], list[str]]:
    """Split text into lines and their own terminators ("\\n", "\\r\\n" or "")."""
    pieces = text.split("\n")
    terminated = text.endswith("\n")
    if terminated:
        pieces.pop()

    lines: list[str] = []
    endings: list[str] = []
    last = len(pieces) - 1
    for i, piece in enumerate(pieces):
        if i == last and not terminated:
            lines.append(piece)
            endings.append("")
        elif piece.endswith("\r"):
            lines.append(piece[:-1])
            endings.append("\r\n")
        else:
            lines.append(piece)
            endings.append("\n")
    return lines, endings


def dominant_ending(endings: list[str]) -> str:
    crlf = endings.count("\r\n")
    return "\r\n" if crlf > endings.count("\n") else "\n"


def rewrite_text(text: str) -> str:
    """Rewrite a whole document, keeping each line's terminator and the final newline.

    Inserted separators take the document's dominant terminator.
    """
    if not text:
        return text

    lines, endings = split_lines(text)
    separator = dominant_ending(endings)
    return "".join(
        separator if i is _SEPARATOR else lines[i] + endings[i]
        for i in _plan(lines)
    )
