"""
Document store boundary — where document text, cursors and selections live.

The core only needs read-modify-write with last-writer-wins, cursor get/set
and a way to tell whether a non-empty selection is active. Host
integrations implement ``DocumentStore``; ``FileDocumentStore`` backs it
with plain files under a root directory:

    <root>/<doc_id>      — document text (UTF-8), doc_id is a relative POSIX path

All writes are atomic (temp file + os.replace). A directory has no
foreground view, so selections are always inactive and cursors are kept
in memory for whoever sets them.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol


class DocumentStoreError(Exception):
    """Error reading or writing a document."""


@dataclass(frozen=True)
class Position:
    """Zero-based line and character offset."""

    line: int = 0
    ch: int = 0


@dataclass(frozen=True)
class Selection:
    active: bool = False
    start: Position = Position()
    end: Position = Position()

    @property
    def is_empty(self) -> bool:
        return not self.active or self.start == self.end


NO_SELECTION = Selection()


class DocumentStore(Protocol):
    async def read_text(self, doc_id: str) -> str: ...

    async def write_text(self, doc_id: str, text: str) -> None: ...

    async def get_selection(self, doc_id: str) -> Selection: ...

    async def get_cursor(self, doc_id: str) -> Position: ...

    async def set_cursor(self, doc_id: str, position: Position) -> None: ...


def clamp_position(position: Position, text: str) -> Position:
    """Clamp a position to the bounds of ``text``."""
    lines = text.split("\n")
    line = min(max(position.line, 0), len(lines) - 1)
    ch = min(max(position.ch, 0), len(lines[line].rstrip("\r")))
    return Position(line, ch)


class FileDocumentStore:
    """File-backed document store rooted at a directory.

    Usage:
        store = FileDocumentStore(Path("~/notes").expanduser())
        text = await store.read_text("Daily/today.md")
        await store.write_text("Daily/today.md", text)
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._cursors: dict[str, Position] = {}
        self._own_writes: dict[str, int] = {}

    def path_for(self, doc_id: str) -> Path:
        """Map a document id to its file. Rejects ids escaping the root."""
        rel = PurePosixPath(doc_id)
        if not doc_id or rel.is_absolute() or ".." in rel.parts:
            raise DocumentStoreError(f"Invalid document id: {doc_id!r}")
        return self.root.joinpath(*rel.parts)

    def doc_id_for(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def own_write_mtime(self, doc_id: str) -> int | None:
        """mtime (ns) of the last write made through this store, if any."""
        return self._own_writes.get(doc_id)

    async def read_text(self, doc_id: str) -> str:
        path = self.path_for(doc_id)
        try:
            with open(path, encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentStoreError(f"Cannot read {doc_id}: {e}") from e

    async def write_text(self, doc_id: str, text: str) -> None:
        path = self.path_for(doc_id)
        if not path.parent.is_dir():
            raise DocumentStoreError(f"Cannot write {doc_id}: folder does not exist")
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp", prefix=".md_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            if path.exists():
                os.chmod(tmp_path, path.stat().st_mode & 0o777)
            os.replace(tmp_path, str(path))
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise DocumentStoreError(f"Cannot write {doc_id}: {e}") from e
        self._own_writes[doc_id] = path.stat().st_mtime_ns

    async def get_selection(self, doc_id: str) -> Selection:
        return NO_SELECTION

    async def get_cursor(self, doc_id: str) -> Position:
        return self._cursors.get(doc_id, Position())

    async def set_cursor(self, doc_id: str, position: Position) -> None:
        self._cursors[doc_id] = position
