"""
Rewrite pipeline — the one path every format request goes through.

    read text -> rewrite (internal, or external when the policy asks)
              -> compare -> write back only if different
              -> restore the cursor, clamped to the new bounds

Failures propagate to the caller as FormatterError / DocumentStoreError.
The reentrancy guard is owned by the scheduler, not by this module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tightlists.documents import DocumentStore, Selection, clamp_position
from tightlists.engine import rewrite_text
from tightlists.external import ExternalFormatter, FormatterError, FormatterNotFound
from tightlists.rules import FormatPolicy

log = logging.getLogger(__name__)

# Outcome states
CHANGED = "changed"
UNCHANGED = "unchanged"
FAILED = "failed"


@dataclass(frozen=True)
class FormatOutcome:
    """Result of a caller-invoked format, with a message fit for the user."""

    status: str
    message: str

    @classmethod
    def changed(cls, what: str = "File") -> FormatOutcome:
        return cls(CHANGED, f"{what} formatted successfully")

    @classmethod
    def unchanged(cls) -> FormatOutcome:
        return cls(UNCHANGED, "No formatting changes needed")

    @classmethod
    def failed(cls, reason: str | Exception) -> FormatOutcome:
        return cls(FAILED, f"Formatting failed: {reason}")

    @property
    def ok(self) -> bool:
        return self.status != FAILED


async def _format_external(text: str, formatter: ExternalFormatter) -> str:
    """Run the external formatter, keeping the input's final-newline state."""
    terminated = text.endswith("\n")
    formatted = await formatter.format(text if terminated else text + "\n")
    return formatted if terminated else formatted.rstrip("\r\n")


async def run_formatter(
    text: str,
    policy: FormatPolicy,
    formatter: ExternalFormatter | None = None,
) -> str:
    """Format text with the engine the policy selects."""
    if not policy.use_external_formatter:
        return rewrite_text(text)

    try:
        if formatter is None:
            raise FormatterNotFound("no external formatter is configured")
        return await _format_external(text, formatter)
    except FormatterError as e:
        if not policy.fallback_to_internal:
            raise
        log.warning("External formatter failed (%s), using internal rewriter", e)
        return rewrite_text(text)


def selected_line_range(selection: Selection) -> tuple[int, int]:
    """Selection expanded to whole lines, as an inclusive (first, last) pair."""
    first, last = sorted((selection.start, selection.end), key=lambda p: (p.line, p.ch))
    return first.line, last.line


async def format_line_range(
    text: str,
    first: int,
    last: int,
    policy: FormatPolicy,
    formatter: ExternalFormatter | None = None,
) -> str:
    """Format lines ``first..last`` (inclusive) of ``text``, leaving the rest alone."""
    lines = text.split("\n")
    first = max(first, 0)
    last = min(last, len(lines) - 1)
    if first > last:
        return text
    segment = "\n".join(lines[first:last + 1])
    formatted = await run_formatter(segment, policy, formatter)
    return "\n".join(lines[:first] + [formatted] + lines[last + 1:])


async def write_back(store: DocumentStore, doc_id: str, original: str, formatted: str) -> bool:
    """Write ``formatted`` if it differs and put the cursor back. Returns True if written."""
    if formatted == original:
        return False
    cursor = await store.get_cursor(doc_id)
    await store.write_text(doc_id, formatted)
    await store.set_cursor(doc_id, clamp_position(cursor, formatted))
    return True


async def format_document(
    store: DocumentStore,
    doc_id: str,
    policy: FormatPolicy,
    formatter: ExternalFormatter | None = None,
) -> bool:
    """Format a whole document in place. Returns True if its content changed."""
    original = await store.read_text(doc_id)
    formatted = await run_formatter(original, policy, formatter)
    return await write_back(store, doc_id, original, formatted)


async def format_document_lines(
    store: DocumentStore,
    doc_id: str,
    selection: Selection,
    policy: FormatPolicy,
    formatter: ExternalFormatter | None = None,
) -> bool:
    """Format only the lines touched by ``selection``. Returns True if changed."""
    original = await store.read_text(doc_id)
    first, last = selected_line_range(selection)
    formatted = await format_line_range(original, first, last, policy, formatter)
    return await write_back(store, doc_id, original, formatted)
