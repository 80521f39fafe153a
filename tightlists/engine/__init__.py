"""
Tight-list rewrite engine.

A pure, line-oriented transducer: every input line is classified once
(metadata fence, metadata content, list item, blank, other) and the rewriter
decides, with one line of lookback, where blank separator lines belong.
Line content itself is never changed.

Usage:
    from tightlists.engine import rewrite_text
    tight = rewrite_text(markdown)
"""

from tightlists.engine.lines import (
    LineClassification, LineKind, MarkerClass, RewriteState, classify,
)
from tightlists.engine.rewriter import rewrite, rewrite_text, split_lines
