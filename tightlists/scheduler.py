"""
Auto-format scheduler — decides when a document gets rewritten.

Per-document states:
    Idle ──event──▶ Pending ──timer──▶ Running ──done──▶ Idle
                     │  ▲                 (guard held)
                     └──┘ new event re-arms the timer (debounce)

    - Events for a document in Running are ignored, so the write-back is
      never mistaken for a user edit.
    - When the timer fires while a non-empty selection is active the timer is
      re-armed instead of formatting (deferral, not cancellation).
    - The guard is released on every exit path, including failures.

Runs on a single asyncio event loop; the pending-timer table and the guard
set are owned by one scheduler instance and need no locking.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from dataclasses import dataclass
from typing import Iterator

from tightlists.config import Settings
from tightlists.documents import DocumentStore, DocumentStoreError
from tightlists.external import ExternalFormatter, FormatterError
from tightlists.pipeline import FAILED, FormatOutcome, format_document, format_document_lines
from tightlists.rules import FormatPolicy

log = logging.getLogger(__name__)


class EventKind(enum.Enum):
    EDIT = "edit"
    OPENED = "opened"
    FOCUS_GAINED = "focus_gained"
    FOCUS_LOST = "focus_lost"


_FOCUS_EVENTS = frozenset({EventKind.FOCUS_GAINED, EventKind.FOCUS_LOST})


@dataclass
class PendingFormat:
    """A live debounce timer for one document."""

    handle: asyncio.TimerHandle
    fire_at: float
    reason: EventKind


def qualifies(kind: EventKind, policy: FormatPolicy) -> bool:
    """Whether an event of this kind should arm a timer under ``policy``."""
    if not policy.enabled:
        return False
    if kind is EventKind.OPENED:
        return policy.format_on_open
    if kind in _FOCUS_EVENTS:
        return policy.format_on_focus_change
    return True


class AutoFormatScheduler:
    """Debounces document events into rewrite pipeline runs.

    Usage:
        scheduler = AutoFormatScheduler(store, settings)
        scheduler.notify(EventKind.EDIT, "Notes/today.md")
        ...
        scheduler.shutdown()
        await scheduler.wait_idle()
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings | None = None,
        formatter: ExternalFormatter | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.formatter = formatter

        self._pending: dict[str, PendingFormat] = {}
        self._formatting: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    # -- introspection -----------------------------------------------------

    def is_pending(self, doc_id: str) -> bool:
        return doc_id in self._pending

    def is_formatting(self, doc_id: str) -> bool:
        return doc_id in self._formatting

    def fire_time(self, doc_id: str) -> float | None:
        """Loop time at which the pending timer for ``doc_id`` fires."""
        pending = self._pending.get(doc_id)
        return pending.fire_at if pending else None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def policy_for(self, doc_id: str) -> FormatPolicy:
        return self.settings.policy_for(doc_id)

    def update_settings(self, settings: Settings) -> None:
        """Swap settings. Armed timers keep their delay; fires re-resolve."""
        self.settings = settings

    # -- event ingestion -----------------------------------------------------

    def notify(self, kind: EventKind, doc_id: str) -> bool:
        """Feed one document event in. Returns True if a timer was (re)armed."""
        if self._closed:
            return False
        if doc_id in self._formatting:
            log.debug("Ignoring %s for %s: formatting in progress", kind.value, doc_id)
            return False
        policy = self.policy_for(doc_id)
        if not qualifies(kind, policy):
            return False
        self._arm(doc_id, policy.debounce_delay, kind)
        return True

    def _arm(self, doc_id: str, delay: float, reason: EventKind) -> None:
        if self._closed:
            return
        self._cancel(doc_id)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(delay, self._on_timer, doc_id)
        self._pending[doc_id] = PendingFormat(handle, loop.time() + delay, reason)

    def _cancel(self, doc_id: str) -> bool:
        pending = self._pending.pop(doc_id, None)
        if pending is None:
            return False
        pending.handle.cancel()
        return True

    def _on_timer(self, doc_id: str) -> None:
        pending = self._pending.pop(doc_id, None)
        reason = pending.reason if pending else EventKind.EDIT
        self._spawn(self._fire(doc_id, reason))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -- running -------------------------------------------------------------

    @contextlib.contextmanager
    def _guard(self, doc_id: str) -> Iterator[None]:
        """Hold the reentrancy guard for ``doc_id``; always released."""
        self._formatting.add(doc_id)
        try:
            yield
        finally:
            self._formatting.discard(doc_id)

    async def _fire(self, doc_id: str, reason: EventKind) -> None:
        policy = self.policy_for(doc_id)
        if not policy.enabled:
            log.debug("Auto-format disabled for %s, dropping", doc_id)
            return

        try:
            selection = await self.store.get_selection(doc_id)
        except DocumentStoreError as e:
            log.warning("Auto-format of %s skipped: %s", doc_id, e)
            return

        if doc_id in self._formatting or not selection.is_empty:
            log.debug("Deferring auto-format of %s", doc_id)
            self._arm(doc_id, policy.debounce_delay, reason)
            return

        try:
            with self._guard(doc_id):
                changed = await format_document(self.store, doc_id, policy, self.formatter)
        except (FormatterError, DocumentStoreError) as e:
            log.warning("Auto-format of %s failed: %s", doc_id, e)
            return
        except Exception:
            log.exception("Auto-format of %s crashed", doc_id)
            return

        if changed:
            log.debug("Auto-formatted %s (%s)", doc_id, reason.value)

    # -- manual formatting ---------------------------------------------------

    async def format_now(self, doc_id: str) -> FormatOutcome:
        """Format a whole document immediately (caller-invoked, not silent)."""
        if doc_id in self._formatting:
            return FormatOutcome.failed("formatting already in progress")
        self._cancel(doc_id)
        policy = self.policy_for(doc_id)
        try:
            with self._guard(doc_id):
                changed = await format_document(self.store, doc_id, policy, self.formatter)
        except (FormatterError, DocumentStoreError) as e:
            log.error("Format error for %s: %s", doc_id, e)
            return FormatOutcome.failed(e)
        return FormatOutcome.changed() if changed else FormatOutcome.unchanged()

    async def format_selection(self, doc_id: str) -> FormatOutcome:
        """Format the lines covered by the active selection."""
        if doc_id in self._formatting:
            return FormatOutcome.failed("formatting already in progress")
        policy = self.policy_for(doc_id)
        try:
            selection = await self.store.get_selection(doc_id)
            if selection.is_empty:
                return FormatOutcome(FAILED, "No text selected")
            with self._guard(doc_id):
                changed = await format_document_lines(
                    self.store, doc_id, selection, policy, self.formatter,
                )
        except (FormatterError, DocumentStoreError) as e:
            log.error("Format error for %s: %s", doc_id, e)
            return FormatOutcome.failed(e)
        return FormatOutcome.changed("Selection") if changed else FormatOutcome.unchanged()

    # -- teardown ------------------------------------------------------------

    def shutdown(self) -> None:
        """Cancel every pending timer. In-flight runs are left to finish."""
        self._closed = True
        for doc_id in list(self._pending):
            self._cancel(doc_id)
        log.debug("Scheduler shut down, %d run(s) in flight", len(self._tasks))

    async def wait_idle(self) -> None:
        """Wait until no pipeline run is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
