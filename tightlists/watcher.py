"""
DirectoryWatcher — polls a folder of Markdown files and feeds the scheduler.

Poll loop:
    1. Stat every *.md file under the root (hidden folders skipped)
    2. New file           -> OPENED
       Changed mtime      -> EDIT   (unless the change is our own write-back)
       Vanished file      -> forgotten

Start with: ``tightlists watch <root>``
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from tightlists import MARKDOWN_SUFFIX, SETTINGS_FILENAME, WATCH_POLL_INTERVAL_SECS
from tightlists.config import Settings, load_settings
from tightlists.documents import FileDocumentStore
from tightlists.external import ExternalFormatter
from tightlists.scheduler import AutoFormatScheduler, EventKind

logger = logging.getLogger(__name__)


class DirectoryWatcher:
    """Turns file-system changes under a root into scheduler events.

    Usage:
        watcher = DirectoryWatcher(store, scheduler)
        await watcher.run(stop_event)
    """

    def __init__(
        self,
        store: FileDocumentStore,
        scheduler: AutoFormatScheduler,
        poll_interval: float = WATCH_POLL_INTERVAL_SECS,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.poll_interval = poll_interval
        self._seen: dict[str, int] = {}

    def scan(self) -> dict[str, int]:
        """Map doc_id -> mtime_ns for every visible Markdown file."""
        found: dict[str, int] = {}
        for path in self.store.root.rglob(f"*{MARKDOWN_SUFFIX}"):
            rel = path.relative_to(self.store.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            try:
                if path.is_file():
                    found[rel.as_posix()] = path.stat().st_mtime_ns
            except OSError:
                continue  # vanished between listing and stat
        return found

    def prime(self) -> None:
        """Record the current state without emitting events."""
        self._seen = self.scan()
        logger.info("Watching %d document(s) under %s", len(self._seen), self.store.root)

    def poll(self) -> list[tuple[EventKind, str]]:
        """One poll round. Returns the events delivered to the scheduler."""
        current = self.scan()
        events: list[tuple[EventKind, str]] = []

        for doc_id, mtime in current.items():
            previous = self._seen.get(doc_id)
            if previous is None:
                events.append((EventKind.OPENED, doc_id))
            elif mtime != previous and mtime != self.store.own_write_mtime(doc_id):
                events.append((EventKind.EDIT, doc_id))

        self._seen = current
        for kind, doc_id in events:
            armed = self.scheduler.notify(kind, doc_id)
            logger.debug("%s %s (armed=%s)", kind.value, doc_id, armed)
        return events

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set."""
        self.prime()
        while not stop_event.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("Watcher poll error")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass


async def watch(
    root: Path,
    config_path: Path | None = None,
    poll_interval: float = WATCH_POLL_INTERVAL_SECS,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Run watcher + scheduler over ``root`` until stopped."""
    settings = load_settings(config_path or root / SETTINGS_FILENAME)
    formatter = ExternalFormatter.discover() if _wants_external(settings) else None
    if _wants_external(settings) and formatter is None:
        logger.warning("External formatter requested but not found; those documents will fail")

    store = FileDocumentStore(root)
    scheduler = AutoFormatScheduler(store, settings, formatter)
    watcher = DirectoryWatcher(store, scheduler, poll_interval)
    stop_event = stop_event or asyncio.Event()

    loop = asyncio.get_running_loop()
    installed = []
    for sig_name in ("SIGINT", "SIGTERM"):
        sig = getattr(signal, sig_name, None)
        if sig:
            try:
                loop.add_signal_handler(sig, stop_event.set)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Windows, or not running in the main thread
                pass

    try:
        await watcher.run(stop_event)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        scheduler.shutdown()
        await scheduler.wait_idle()
        logger.info("Watcher stopped")


def _wants_external(settings: Settings) -> bool:
    return settings.default.use_external_formatter or any(
        rule.use_external_formatter for rule in settings.folder_rules.values()
    )


def run_watch(
    root: Path,
    config_path: Path | None = None,
    poll_interval: float = WATCH_POLL_INTERVAL_SECS,
    verbose: bool = False,
) -> None:
    """Entry point for ``tightlists watch``. Runs in the foreground."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    try:
        asyncio.run(watch(root, config_path, poll_interval))
    except KeyboardInterrupt:
        print("\nShutting down...")
