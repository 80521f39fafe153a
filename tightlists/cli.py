"""
tightlists CLI — tight-list formatting for Markdown files.

Commands:
  tightlists format   - Rewrite .md files in place (or filter stdin -> stdout)
  tightlists watch    - Auto-format a folder of notes while you edit them
  tightlists resolve  - Show the effective policy for a document path
  tightlists toggle   - Turn auto-format on or off, globally or per folder
  tightlists doctor   - Report external formatter (mdformat) availability
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import tempfile
from pathlib import Path

from tightlists import MARKDOWN_SUFFIX, SETTINGS_FILENAME, WATCH_POLL_INTERVAL_SECS, __version__


def _load_settings(args: argparse.Namespace, root: Path | None = None):
    """Settings from --config, or the settings file in ``root``."""
    from tightlists.config import ConfigError, Settings, read_settings

    config = getattr(args, "config", None)
    path = Path(config) if config else (root / SETTINGS_FILENAME if root else None)
    if path is None or not path.is_file():
        if config:
            print(f"Error: Config file not found: {config}", file=sys.stderr)
            sys.exit(1)
        return Settings()
    try:
        return read_settings(path)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _formatter_or_exit():
    from tightlists.external import ExternalFormatter

    formatter = ExternalFormatter.discover()
    if formatter is None:
        print(
            "Error: mdformat not found. Install with: pipx install mdformat",
            file=sys.stderr,
        )
        sys.exit(1)
    return formatter


def _write_atomic(path: Path, text: str) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp", prefix=".md_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        os.chmod(tmp_path, path.stat().st_mode & 0o777)
        os.replace(tmp_path, str(path))
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def cmd_format(args: argparse.Namespace) -> None:
    """Rewrite files in place; with no files, act as a stdin -> stdout filter."""
    from tightlists.external import FormatterError
    from tightlists.pipeline import run_formatter
    from tightlists.rules import FormatPolicy

    policy = FormatPolicy(enabled=True, use_external_formatter=args.external)
    formatter = _formatter_or_exit() if args.external else None

    def _format(text: str) -> str:
        return asyncio.run(run_formatter(text, policy, formatter))

    if not args.files:
        text = sys.stdin.read()
        try:
            sys.stdout.write(_format(text))
        except FormatterError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        return

    changed = 0
    failed = 0
    for name in args.files:
        path = Path(name)
        if not path.is_file():
            print(f"Warning: '{name}' not found, skipping...", file=sys.stderr)
            continue
        if path.suffix != MARKDOWN_SUFFIX:
            print(f"Warning: '{name}' is not a {MARKDOWN_SUFFIX} file, skipping...", file=sys.stderr)
            continue

        try:
            with open(path, encoding="utf-8", newline="") as f:
                original = f.read()
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error processing {name}: {e}", file=sys.stderr)
            failed += 1
            continue
        try:
            formatted = _format(original)
        except FormatterError as e:
            print(f"Error processing {name}: {e}", file=sys.stderr)
            failed += 1
            continue

        if formatted == original:
            continue
        changed += 1
        if args.check:
            print(f"Would reformat: {name}")
        else:
            _write_atomic(path, formatted)
            print(f"Formatted: {name}")

    if args.check and changed:
        print(f"{changed} file(s) would be reformatted", file=sys.stderr)
        sys.exit(1)
    if failed:
        sys.exit(1)


def cmd_watch(args: argparse.Namespace) -> None:
    """Watch a folder and auto-format documents after edits settle."""
    from tightlists.watcher import run_watch

    root = Path(args.root)
    if not root.is_dir():
        print(f"Error: Not a directory: {args.root}", file=sys.stderr)
        sys.exit(1)
    config = Path(args.config) if args.config else None
    run_watch(root, config, poll_interval=args.interval, verbose=args.verbose)


def cmd_resolve(args: argparse.Namespace) -> None:
    """Print the effective policy for a document path and where it came from."""
    from tightlists.rules import find_rule

    settings = _load_settings(args, Path(args.root))
    policy = settings.policy_for(args.path)
    found = find_rule(args.path, settings.folder_rules)

    print(f"Policy for {args.path}")
    print(f"  source:    {'folder rule ' + repr(found[0]) if found else 'global default'}")
    print(f"  enabled:   {'yes' if policy.enabled else 'no'}")
    print(f"  formatter: {'mdformat' if policy.use_external_formatter else 'internal'}")
    print(f"  delay:     {policy.debounce_delay:g}s")


def cmd_toggle(args: argparse.Namespace) -> None:
    """Flip auto-format on or off, globally or for one folder, and save."""
    import dataclasses

    from tightlists.config import ConfigError, Settings, read_settings, save_settings
    from tightlists.rules import FolderRule, normalize_folder

    path = Path(args.config) if args.config else Path(args.root) / SETTINGS_FILENAME
    try:
        settings = read_settings(path) if path.is_file() else Settings()
    except (ConfigError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.folder:
        folder = normalize_folder(args.folder)
        if not folder:
            print("Error: --folder must be a non-empty folder path", file=sys.stderr)
            sys.exit(1)
        enabled = not settings.policy_for(folder).enabled
        rule = settings.folder_rules.get(folder, FolderRule())
        settings.folder_rules[folder] = dataclasses.replace(rule, enabled=enabled)
        scope = f"for {folder}"
    else:
        enabled = not settings.default.enabled
        settings.default = dataclasses.replace(settings.default, enabled=enabled)
        scope = "globally"

    save_settings(settings, path)
    print(f"Auto-format {'enabled' if enabled else 'disabled'} {scope} ({path})")


def cmd_doctor(args: argparse.Namespace) -> None:
    """Report whether mdformat and its tight-lists plugin are installed."""
    from tightlists.external import ExternalFormatter

    formatter = ExternalFormatter.discover()
    if formatter is None:
        print("mdformat: not found")
        print("  Install for enhanced formatting:")
        print("    pipx install mdformat")
        print("    pipx inject mdformat mdformat-gfm mdformat-frontmatter mdformat-tight-lists")
        return

    print(f"mdformat: {formatter.executable}")
    if asyncio.run(formatter.has_tight_lists_plugin()):
        print("  tight-lists plugin: installed")
    else:
        print("  tight-lists plugin: NOT FOUND — lists won't be tightened by mdformat")
        print("    pipx inject mdformat mdformat-tight-lists")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tightlists",
        description="Keep Markdown list blocks tight (no blank lines between items).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    p_format = sub.add_parser("format", help="Format .md files in place, or stdin when no files given")
    p_format.add_argument("files", nargs="*", help="Markdown files to rewrite")
    p_format.add_argument("--external", action="store_true", help="Use mdformat instead of the built-in rewriter")
    p_format.add_argument("--check", action="store_true", help="Report files that would change, write nothing")

    p_watch = sub.add_parser("watch", help="Auto-format a folder while you edit")
    p_watch.add_argument("root", help="Folder containing Markdown notes")
    p_watch.add_argument("--config", help=f"Settings file (default: <root>/{SETTINGS_FILENAME})")
    p_watch.add_argument("--interval", type=float, default=WATCH_POLL_INTERVAL_SECS, help="Poll interval in seconds")
    p_watch.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    p_resolve = sub.add_parser("resolve", help="Show the effective policy for a document")
    p_resolve.add_argument("path", help="Document path relative to the root, e.g. Notes/Daily/today.md")
    p_resolve.add_argument("--root", default=".", help="Folder holding the settings file")
    p_resolve.add_argument("--config", help="Settings file")

    p_toggle = sub.add_parser("toggle", help="Toggle auto-format globally or for a folder")
    p_toggle.add_argument("--folder", help="Toggle only this folder, e.g. Notes/Daily")
    p_toggle.add_argument("--root", default=".", help="Folder holding the settings file")
    p_toggle.add_argument("--config", help="Settings file")

    sub.add_parser("doctor", help="Check external formatter availability")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        print(f"tightlists {__version__} — tight Markdown lists\n")
        print("Usage:")
        print("  tightlists format [file.md ...] [--external] [--check]")
        print("  cat file.md | tightlists format > tight.md")
        print("  tightlists watch <folder> [--config settings.json]")
        print("  tightlists resolve <doc-path> [--root <folder>]")
        print("  tightlists toggle [--folder <folder>] [--root <folder>]")
        print("  tightlists doctor")
        print()
        print("Run 'tightlists <command> --help' for details on any command.")
        sys.exit(0)

    commands = {
        "format": cmd_format,
        "watch": cmd_watch,
        "resolve": cmd_resolve,
        "toggle": cmd_toggle,
        "doctor": cmd_doctor,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
