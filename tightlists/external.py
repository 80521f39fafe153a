"""
External formatter adapter — whole-document stdin -> stdout via mdformat.

Discovery order (first executable regular file wins):
    ~/.local/bin/mdformat        (pipx)
    /opt/homebrew/bin/mdformat   (Homebrew)
    /usr/local/bin/mdformat
    /usr/bin/mdformat
    every directory on $PATH

Failures are typed so callers can report them without guessing:
    FormatterNotFound        — executable missing
    FormatterNotExecutable   — present but not runnable
    FormatterProcessError    — non-zero exit (exit code + stderr)
    FormatterTimeout         — killed after the configured timeout
    EmptyFormatterOutput     — exit 0 but nothing on stdout
    InvalidFormatterOutput   — exit 0 but stdout is not UTF-8

The adapter makes no promise about front matter or nested-list grouping;
those guarantees belong to the internal rewriter only.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from tightlists import (
    EXTERNAL_FORMATTER_NAME, EXTERNAL_FORMATTER_TIMEOUT_SECS, TIGHT_LISTS_PLUGIN_MARKER,
)

log = logging.getLogger(__name__)


class FormatterError(Exception):
    """External formatter failed; no change was applied."""


class FormatterNotFound(FormatterError):
    """Formatter executable does not exist."""


class FormatterNotExecutable(FormatterError):
    """Formatter exists but cannot be executed."""


class FormatterProcessError(FormatterError):
    """Formatter exited with a non-zero status."""

    def __init__(self, exit_code: int | None, stderr: str, message: str | None = None) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            message or f"{EXTERNAL_FORMATTER_NAME} exited with code {exit_code}: {stderr.strip()}"
        )


class FormatterTimeout(FormatterProcessError):
    """Formatter did not finish in time and was killed."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(None, "", f"{EXTERNAL_FORMATTER_NAME} timed out after {timeout:g}s")


class EmptyFormatterOutput(FormatterError):
    """Formatter succeeded but produced no output."""


class InvalidFormatterOutput(FormatterError):
    """Formatter succeeded but its output is not valid UTF-8."""


def candidate_paths(name: str = EXTERNAL_FORMATTER_NAME, path_env: str | None = None) -> list[Path]:
    """Well-known install locations followed by every $PATH entry."""
    home = os.environ.get("HOME", "")
    candidates = [
        Path(home) / ".local" / "bin" / name,
        Path("/opt/homebrew/bin") / name,
        Path("/usr/local/bin") / name,
        Path("/usr/bin") / name,
    ]
    if path_env is None:
        path_env = os.environ.get("PATH", "")
    for entry in path_env.split(os.pathsep):
        if entry:
            candidates.append(Path(entry) / name)
    return candidates


def _is_executable_file(path: Path) -> bool:
    try:
        return path.is_file() and os.access(path, os.X_OK)
    except OSError:
        return False


def discover_formatter(
    name: str = EXTERNAL_FORMATTER_NAME,
    candidates: list[Path] | None = None,
) -> Path | None:
    """Return the first executable formatter found, or None."""
    for path in candidates if candidates is not None else candidate_paths(name):
        if _is_executable_file(path):
            return path
    return None


class ExternalFormatter:
    """Runs an external Markdown formatter as a stdin -> stdout filter.

    Usage:
        formatter = ExternalFormatter.discover()
        if formatter is not None:
            text = await formatter.format(text)
    """

    def __init__(
        self,
        executable: str | Path,
        args: tuple[str, ...] = ("-",),
        timeout: float = EXTERNAL_FORMATTER_TIMEOUT_SECS,
    ) -> None:
        self.executable = Path(executable)
        self.args = args
        self.timeout = timeout

    @classmethod
    def discover(cls, timeout: float = EXTERNAL_FORMATTER_TIMEOUT_SECS) -> ExternalFormatter | None:
        path = discover_formatter()
        if path is None:
            return None
        log.debug("Using external formatter %s", path)
        return cls(path, timeout=timeout)

    def _check_executable(self) -> None:
        if not self.executable.exists():
            raise FormatterNotFound(f"{EXTERNAL_FORMATTER_NAME} not found at {self.executable}")
        if not _is_executable_file(self.executable):
            raise FormatterNotExecutable(f"{self.executable} is not executable")

    async def _run(self, args: tuple[str, ...], stdin: bytes | None) -> tuple[int, bytes, bytes]:
        self._check_executable()
        try:
            proc = await asyncio.create_subprocess_exec(
                str(self.executable), *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise FormatterNotFound(str(e)) from e
        except PermissionError as e:
            raise FormatterNotExecutable(str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(stdin), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise FormatterTimeout(self.timeout) from None
        return proc.returncode, stdout, stderr

    async def format(self, text: str) -> str:
        """Format a whole document. Raises a FormatterError subclass on failure."""
        code, stdout, stderr = await self._run(self.args, text.encode("utf-8"))
        if code != 0:
            raise FormatterProcessError(code, stderr.decode("utf-8", errors="replace"))
        try:
            result = stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidFormatterOutput(
                f"{EXTERNAL_FORMATTER_NAME} returned output that is not valid UTF-8: {e}"
            ) from e
        if not result.strip():
            raise EmptyFormatterOutput(f"{EXTERNAL_FORMATTER_NAME} returned empty output")
        return result

    async def has_tight_lists_plugin(self) -> bool:
        """Whether ``--help`` mentions the tight-lists extension."""
        try:
            code, stdout, _stderr = await self._run(("--help",), None)
        except FormatterError as e:
            log.debug("Plugin check failed: %s", e)
            return False
        return code == 0 and TIGHT_LISTS_PLUGIN_MARKER in stdout.decode("utf-8", errors="replace")
