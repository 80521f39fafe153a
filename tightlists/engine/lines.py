"""
Line classification for the tight-list rewriter.

Recognised shapes:
    ---                          <- metadata fence (first line opens, next one closes)
    key: value                   <- metadata content (anything inside the fences)
    <ws>- item / <ws>* item      <- list item, unordered (-, *, + are distinct classes)
    <ws>12. item                 <- list item, ordered (number value is irrelevant)
    <ws>                         <- blank (empty or whitespace only)
    anything else                <- other (prose, headings, fences, tables...)

Classification reads the rewrite state but never mutates it; the rewriter
owns every state transition.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from tightlists import METADATA_FENCE

# Marker followed by at least one whitespace character
_LIST_ITEM_RE = re.compile(r"^(\s*)([-*+]|\d+\.)\s")


class LineKind(enum.Enum):
    METADATA_DELIMITER = "metadata_delimiter"
    METADATA_CONTENT = "metadata_content"
    LIST_ITEM = "list_item"
    BLANK = "blank"
    OTHER = "other"


class MarkerClass(enum.Enum):
    """Equivalence group of a list marker. The four groups are pairwise distinct."""

    DASH = "-"
    STAR = "*"
    PLUS = "+"
    ORDERED = "1."

    @property
    def is_ordered(self) -> bool:
        return self is MarkerClass.ORDERED

    @classmethod
    def from_marker(cls, marker: str) -> MarkerClass:
        if marker[0].isdigit():
            return cls.ORDERED
        return cls(marker)


class Content(enum.Enum):
    """What the last non-blank emitted line was."""

    NOTHING = "nothing"
    METADATA = "metadata"
    LIST = "list"
    PROSE = "prose"


@dataclass(frozen=True)
class LineClassification:
    kind: LineKind
    indent: int = 0
    marker: MarkerClass | None = None


@dataclass
class RewriteState:
    """Transient state carried across lines during one rewrite pass."""

    line_no: int = 0
    in_metadata: bool = False
    metadata_closed: bool = False
    in_list: bool = False
    top_marker: MarkerClass | None = None
    nested_ordered: bool | None = None
    last_content: Content = Content.NOTHING


_METADATA_DELIMITER = LineClassification(LineKind.METADATA_DELIMITER)
_METADATA_CONTENT = LineClassification(LineKind.METADATA_CONTENT)
_BLANK = LineClassification(LineKind.BLANK)
_OTHER = LineClassification(LineKind.OTHER)


def is_fence(line: str) -> bool:
    return line == METADATA_FENCE


def classify(line: str, state: RewriteState) -> LineClassification:
    """Classify a single line given the current rewrite state."""
    if state.in_metadata and not state.metadata_closed:
        if is_fence(line):
            return _METADATA_DELIMITER
        return _METADATA_CONTENT

    if state.line_no == 0 and not state.metadata_closed and is_fence(line):
        return _METADATA_DELIMITER

    if not line.strip():
        return _BLANK

    match = _LIST_ITEM_RE.match(line)
    if match:
        return LineClassification(
            LineKind.LIST_ITEM,
            indent=len(match.group(1)),
            marker=MarkerClass.from_marker(match.group(2)),
        )

    return _OTHER
